"""
pybond - Custom compound bond forces with analytic gradients.

A Python engine for user-defined bonded interactions. Users write the
energy of one bond as an algebraic expression; forces F = -∇E are
computed from symbolically differentiated expressions.

Main features:
- Expression language with distance/angle/dihedral geometry functions
- Per-bond parameters, global parameters and tabulated (spline) functions
- Symbolic differentiation, evaluated over vector lanes of bonds
- Conflict-free parallel force accumulation via bond coloring
- YAML configuration for complete force setup
"""

__version__ = "0.1.0"
__author__ = "pybond Team"

from .core import Context, State
from .errors import ExpressionError, ReinitializationRequiredError
from .force import CustomCompoundBondForce
from .function import TabulatedFunction

__all__ = [
    "Context",
    "State",
    "CustomCompoundBondForce",
    "TabulatedFunction",
    "ExpressionError",
    "ReinitializationRequiredError",
]
