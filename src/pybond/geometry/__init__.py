"""
Geometry module for compound bond expressions.

This module provides the geometric functions that may appear in an
energy expression, each returning its value and closed-form gradients:
- distance(p1, p2)
- angle(p1, p2, p3)
- dihedral(p1, p2, p3, p4)
"""

from .primitives import angle, dihedral, distance

# Expression name -> (number of particle arguments, primitive)
GEOMETRY_FUNCTIONS = {
    "distance": (2, distance),
    "angle": (3, angle),
    "dihedral": (4, dihedral),
}

__all__ = [
    "distance",
    "angle",
    "dihedral",
    "GEOMETRY_FUNCTIONS",
]
