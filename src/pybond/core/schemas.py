"""
Record types stored by a compound bond force definition.

These are the plain data containers behind CustomCompoundBondForce.
Keeping them in one place lets the force definition, the YAML loader
and the evaluation engine agree on a single shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


# ------------------------------------------------------------------ #
#  Parameter declarations
# ------------------------------------------------------------------ #


@dataclass
class PerBondParameterInfo:
    """A named scalar whose value is supplied individually for each bond."""

    name: str


@dataclass
class GlobalParameterInfo:
    """A named scalar shared by all bonds, with a default value."""

    name: str
    default_value: float = 0.0


# ------------------------------------------------------------------ #
#  Bonds and tabulated functions
# ------------------------------------------------------------------ #


@dataclass
class BondInfo:
    """
    One bond: an ordered tuple of particle ids plus parameter values.

    Attributes:
        particles: Physical particle ids, one per label p1..pN.
        parameters: Per-bond parameter values in declaration order.
    """

    particles: List[int] = field(default_factory=list)
    parameters: List[float] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BondInfo":
        return cls(
            particles=[int(p) for p in d.get("particles", [])],
            parameters=[float(v) for v in d.get("parameters", [])],
        )


@dataclass
class FunctionInfo:
    """Declaration of a tabulated function used in the energy expression."""

    name: str
    values: List[float]
    min: float
    max: float

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FunctionInfo":
        return cls(
            name=str(d["name"]),
            values=[float(v) for v in d["values"]],
            min=float(d["min"]),
            max=float(d["max"]),
        )
