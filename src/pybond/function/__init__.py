"""
Tabulated function module.

Provides TabulatedFunction, a natural cubic spline through uniformly
spaced samples that is zero outside its domain.
"""

from .tabulated import TabulatedFunction

__all__ = ["TabulatedFunction"]
