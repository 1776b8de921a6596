"""
Core module for compound bond evaluation.

This module provides the fundamental classes:
- Context: Compiled force bound to positions and global-parameter values
- State: Snapshot of positions, forces and energy
- Schemas: Bond, parameter and tabulated-function records
- Errors: ExpressionError, ReinitializationRequiredError
"""

from pybond.errors import ExpressionError, ReinitializationRequiredError

from .schemas import BondInfo, FunctionInfo, GlobalParameterInfo, PerBondParameterInfo
from .state import State
from .context import Context

__all__ = [
    # Classes
    "Context",
    "State",
    # Records
    "BondInfo",
    "FunctionInfo",
    "GlobalParameterInfo",
    "PerBondParameterInfo",
    # Errors
    "ExpressionError",
    "ReinitializationRequiredError",
]
