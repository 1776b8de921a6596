"""
Force module for compound bond interactions.

This module provides:
- CustomCompoundBondForce: declarative force definition
- BondEvaluator: energies and forces of bonds from a compiled expression
- EvaluationDriver: all-bond evaluation with conflict-free accumulation
- color_bonds: particle-disjoint partitioning of bonds
"""

from .bond_evaluator import BondEvaluator
from .coloring import color_bonds
from .custom_compound_bond_force import CustomCompoundBondForce
from .evaluation_driver import EvaluationDriver

__all__ = [
    "CustomCompoundBondForce",
    "BondEvaluator",
    "EvaluationDriver",
    "color_bonds",
]
