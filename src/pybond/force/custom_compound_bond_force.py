"""
Declarative definition of a custom compound bond force.

A "bond" is a single energy term that depends on the positions of a fixed
number of particles. How the energy depends on those positions is given by
a user supplied algebraic expression, evaluated for every bond.
"""
from typing import TYPE_CHECKING, List, Sequence, Tuple

from pybond.core.schemas import (
    BondInfo,
    FunctionInfo,
    GlobalParameterInfo,
    PerBondParameterInfo,
)

if TYPE_CHECKING:
    from pybond.core.context import Context


class CustomCompoundBondForce:
    """
    Bonded interaction defined by an algebraic energy expression.

    The particles of a bond are referred to as p1, p2, ... The expression
    may depend on:

    - x1, y1, z1, x2, ...: coordinates of the bond's particles;
    - distance(p1, p2): distance between two particles;
    - angle(p1, p2, p3): angle formed by three particles, vertex p2;
    - dihedral(p1, p2, p3, p4): dihedral angle about the p2-p3 axis;
    - per-bond parameters, global parameters and tabulated functions.

    Operators are + - * / ^ and the functions sqrt, exp, log, sin, cos,
    sec, csc, tan, cot, asin, acos, atan, sinh, cosh, tanh, erf, erfc,
    min, max, abs, step, delta. Intermediate values may be named with
    ';'-separated definitions: "k*(r-r0)^2; r=distance(p1,p2)".

    This class only stores the definition. It is compiled when a Context
    is created from it; afterwards only per-bond parameter values and
    tabulated function values can be pushed with
    update_parameters_in_context().

    Example (Urey-Bradley term):
        >>> force = CustomCompoundBondForce(
        ...     3,
        ...     "0.5*(kangle*(angle(p1,p2,p3)-theta0)^2"
        ...     "+kbond*(distance(p1,p3)-r0)^2)",
        ... )
        >>> for name in ("kangle", "kbond", "theta0", "r0"):
        ...     force.add_per_bond_parameter(name)
        >>> force.add_bond([0, 1, 2], [100.0, 50.0, 1.9, 2.4])
        0
    """

    def __init__(self, num_particles: int, energy: str) -> None:
        """
        Initialize the force definition.

        Args:
            num_particles: Number of particles used to define each bond.
            energy: Energy of one bond as an algebraic expression.
        """
        if num_particles < 1:
            raise ValueError(f"num_particles must be positive, got {num_particles}")
        self._num_particles = int(num_particles)
        self._energy = energy
        self._per_bond_parameters: List[PerBondParameterInfo] = []
        self._global_parameters: List[GlobalParameterInfo] = []
        self._bonds: List[BondInfo] = []
        self._functions: List[FunctionInfo] = []

    # ------------------------------------------------------------------ #
    #  Counts and expression
    # ------------------------------------------------------------------ #

    @property
    def num_particles_per_bond(self) -> int:
        return self._num_particles

    @property
    def num_bonds(self) -> int:
        return len(self._bonds)

    @property
    def num_per_bond_parameters(self) -> int:
        return len(self._per_bond_parameters)

    @property
    def num_global_parameters(self) -> int:
        return len(self._global_parameters)

    @property
    def num_functions(self) -> int:
        return len(self._functions)

    @property
    def energy_function(self) -> str:
        """Algebraic expression giving the energy of each bond."""
        return self._energy

    @energy_function.setter
    def energy_function(self, energy: str) -> None:
        self._energy = energy

    # ------------------------------------------------------------------ #
    #  Parameters
    # ------------------------------------------------------------------ #

    def _check_name(self, name: str) -> None:
        taken = (
            [p.name for p in self._per_bond_parameters]
            + [g.name for g in self._global_parameters]
            + [f.name for f in self._functions]
        )
        if name in taken:
            raise ValueError(f"Name '{name}' is already used by this force")

    def add_per_bond_parameter(self, name: str) -> int:
        """
        Add a per-bond parameter.

        Returns:
            Index of the new parameter.

        Raises:
            ValueError: If the name is taken or bonds already exist.
        """
        if self._bonds:
            raise ValueError(
                "Per-bond parameters must be declared before bonds are added"
            )
        self._check_name(name)
        self._per_bond_parameters.append(PerBondParameterInfo(name))
        return len(self._per_bond_parameters) - 1

    def get_per_bond_parameter_name(self, index: int) -> str:
        return self._per_bond_parameters[index].name

    def set_per_bond_parameter_name(self, index: int, name: str) -> None:
        if self._per_bond_parameters[index].name != name:
            self._check_name(name)
        self._per_bond_parameters[index].name = name

    @property
    def per_bond_parameter_names(self) -> List[str]:
        return [p.name for p in self._per_bond_parameters]

    def add_global_parameter(self, name: str, default_value: float) -> int:
        """
        Add a global parameter.

        Args:
            name: Parameter name.
            default_value: Value used by new contexts.

        Returns:
            Index of the new parameter.
        """
        self._check_name(name)
        self._global_parameters.append(GlobalParameterInfo(name, float(default_value)))
        return len(self._global_parameters) - 1

    def get_global_parameter_name(self, index: int) -> str:
        return self._global_parameters[index].name

    def set_global_parameter_name(self, index: int, name: str) -> None:
        if self._global_parameters[index].name != name:
            self._check_name(name)
        self._global_parameters[index].name = name

    def get_global_parameter_default_value(self, index: int) -> float:
        return self._global_parameters[index].default_value

    def set_global_parameter_default_value(self, index: int, default_value: float) -> None:
        self._global_parameters[index].default_value = float(default_value)

    @property
    def global_parameters(self) -> List[GlobalParameterInfo]:
        return list(self._global_parameters)

    # ------------------------------------------------------------------ #
    #  Bonds
    # ------------------------------------------------------------------ #

    def _make_bond(self, particles: Sequence[int], parameters: Sequence[float]) -> BondInfo:
        particles = [int(p) for p in particles]
        parameters = [float(v) for v in parameters]
        if len(particles) != self._num_particles:
            raise ValueError(
                f"A bond needs {self._num_particles} particle(s), got {len(particles)}"
            )
        if len(parameters) != len(self._per_bond_parameters):
            raise ValueError(
                f"A bond needs {len(self._per_bond_parameters)} parameter value(s), "
                f"got {len(parameters)}"
            )
        if any(p < 0 for p in particles):
            raise ValueError(f"Particle ids must be non-negative, got {particles}")
        return BondInfo(particles, parameters)

    def add_bond(self, particles: Sequence[int], parameters: Sequence[float] = ()) -> int:
        """
        Add a bond.

        Args:
            particles: Particle ids, one for each of p1..pN.
            parameters: Per-bond parameter values in declaration order.

        Returns:
            Index of the new bond.
        """
        self._bonds.append(self._make_bond(particles, parameters))
        return len(self._bonds) - 1

    def get_bond_parameters(self, index: int) -> Tuple[List[int], List[float]]:
        """Return (particles, parameters) of a bond."""
        bond = self._bonds[index]
        return list(bond.particles), list(bond.parameters)

    def set_bond_parameters(
        self, index: int, particles: Sequence[int], parameters: Sequence[float]
    ) -> None:
        """
        Replace the particles and parameter values of a bond.

        A built context only accepts new parameter values; changed
        particles require reinitializing it.
        """
        self._bonds[index] = self._make_bond(particles, parameters)

    @property
    def bonds(self) -> List[BondInfo]:
        return [BondInfo(list(b.particles), list(b.parameters)) for b in self._bonds]

    # ------------------------------------------------------------------ #
    #  Tabulated functions
    # ------------------------------------------------------------------ #

    def add_function(self, name: str, values: Sequence[float], min: float, max: float) -> int:
        """
        Add a tabulated function that may appear in the expression.

        Args:
            name: Name of the function as it appears in the expression.
            values: f(x) at uniformly spaced x between min and max.
            min: x of the first value.
            max: x of the last value.

        Returns:
            Index of the new function.

        Raises:
            ValueError: If the name is taken, fewer than 2 values are
                given, or min >= max.
        """
        self._check_name(name)
        info = FunctionInfo(name, [float(v) for v in values], float(min), float(max))
        self._validate_function(info)
        self._functions.append(info)
        return len(self._functions) - 1

    @staticmethod
    def _validate_function(info: FunctionInfo) -> None:
        if len(info.values) < 2:
            raise ValueError(
                f"Tabulated function '{info.name}' needs at least 2 values, "
                f"got {len(info.values)}"
            )
        if not info.min < info.max:
            raise ValueError(
                f"Tabulated function '{info.name}': min must be less than max, "
                f"got min={info.min}, max={info.max}"
            )

    def get_function_parameters(self, index: int) -> Tuple[str, List[float], float, float]:
        """Return (name, values, min, max) of a tabulated function."""
        info = self._functions[index]
        return info.name, list(info.values), info.min, info.max

    def set_function_parameters(
        self, index: int, name: str, values: Sequence[float], min: float, max: float
    ) -> None:
        if self._functions[index].name != name:
            self._check_name(name)
        info = FunctionInfo(name, [float(v) for v in values], float(min), float(max))
        self._validate_function(info)
        self._functions[index] = info

    @property
    def functions(self) -> List[FunctionInfo]:
        return [FunctionInfo(f.name, list(f.values), f.min, f.max) for f in self._functions]

    # ------------------------------------------------------------------ #
    #  Context updates
    # ------------------------------------------------------------------ #

    def update_parameters_in_context(self, context: "Context") -> None:
        """
        Copy per-bond parameter values and tabulated values into a context.

        Only values are updated. The expression, the particles of each
        bond, the number of bonds and the parameter schema are fixed once
        a context is built; changing them requires
        Context.reinitialize().

        Raises:
            ReinitializationRequiredError: If anything structural changed.
        """
        context.update_force_parameters(self)

    def get_name(self) -> str:
        """Return a short description of the force."""
        return f"CustomCompoundBond(N={self._num_particles}, '{self._energy}')"
