"""
Context class binding a compound bond force to particle positions.

This module provides the Context that compiles a force definition once,
holds live positions and global-parameter values, and publishes the
per-particle forces and total energy of each evaluation.
"""
import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pybond.errors import ReinitializationRequiredError
from pybond.expression.compiler import CompiledExpression
from pybond.force.evaluation_driver import EvaluationDriver
from pybond.function import TabulatedFunction

from .state import State

if TYPE_CHECKING:
    from pybond.force import CustomCompoundBondForce

logger = logging.getLogger(__name__)


class Context:
    """
    Live evaluation state of one compound bond force.

    Lifecycle:
        Creating a Context builds the force: the expression is compiled,
        bonds are validated and frozen, and the evaluation schedule is
        planned. Afterwards positions and global-parameter values may
        change freely, and per-bond parameter values or tabulated values
        may be pushed with CustomCompoundBondForce.update_parameters_in_context().
        Any structural change (expression, particles per bond, parameter
        or function declarations, bond particles, bond count) requires
        reinitialize().

    Attributes:
        force: Force definition the context was built from.
        compiled: Compiled expression shared by all bond evaluations.
        driver: Evaluation driver holding the frozen bond table.
        forces: (N, 3) forces published by the last evaluation.
        energy: Energy published by the last evaluation.

    Example:
        >>> force = CustomCompoundBondForce(2, "distance(p1,p2)")
        >>> force.add_bond([0, 1])
        0
        >>> context = Context(force, [[0, 0, 0], [3, 4, 0]])
        >>> forces, energy = context.compute_forces_and_energy()
        >>> energy
        5.0
    """

    def __init__(
        self,
        force: "CustomCompoundBondForce",
        positions: ArrayLike,
        num_workers: int = 1,
        chunk_size: int = 4096,
    ) -> None:
        """
        Build a context.

        Args:
            force: Force definition.
            positions: (N, 3) initial particle positions.
            num_workers: Worker threads used for evaluation.
            chunk_size: Maximum number of bonds per evaluation task.

        Raises:
            ExpressionError: If the expression does not compile.
            ValueError: If a bond or tabulated function is invalid.
        """
        self.force = force
        self.num_workers = num_workers
        self.chunk_size = chunk_size
        self._positions = self._check_positions(positions)
        self._lock = threading.RLock()
        self._step = 0
        self.driver: Optional[EvaluationDriver] = None
        self._build()

    @staticmethod
    def _check_positions(positions: ArrayLike) -> NDArray[np.floating]:
        positions = np.array(positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError(
                f"Positions must be (N, 3) array, got shape {positions.shape}"
            )
        return positions

    def _build(self, parameters: Optional[Dict[str, float]] = None) -> None:
        """
        Compile the force and plan its evaluation.

        Nothing on the context changes unless every step succeeds, so a
        failed rebuild leaves the previous built state usable.
        """
        force = self.force
        function_infos = force.functions
        tables: List[TabulatedFunction] = [
            TabulatedFunction(info.values, info.min, info.max) for info in function_infos
        ]
        compiled = CompiledExpression(
            force.energy_function,
            force.num_particles_per_bond,
            force.per_bond_parameter_names,
            [g.name for g in force.global_parameters],
            {info.name: table for info, table in zip(function_infos, tables)},
        )
        driver = EvaluationDriver(
            compiled,
            force.bonds,
            num_particles=len(self._positions),
            num_workers=self.num_workers,
            chunk_size=self.chunk_size,
        )

        values: Dict[str, float] = {
            g.name: g.default_value for g in force.global_parameters
        }
        if parameters:
            for name, value in parameters.items():
                if name in values:
                    values[name] = value

        old_driver = self.driver
        self._tables = tables
        self.compiled = compiled
        self.driver = driver
        self._parameters = values
        self._structure = self._signature(force)
        self.forces = np.zeros_like(self._positions)
        self.energy = 0.0
        if old_driver is not None:
            old_driver.close()
        logger.info(
            "Built context for %s with %d bond(s) over %d particle(s)",
            force.get_name(),
            driver.num_bonds,
            len(self._positions),
        )

    @staticmethod
    def _signature(force: "CustomCompoundBondForce") -> Tuple:
        return (
            force.energy_function,
            force.num_particles_per_bond,
            tuple(force.per_bond_parameter_names),
            tuple(g.name for g in force.global_parameters),
            tuple(f.name for f in force.functions),
            tuple(tuple(b.particles) for b in force.bonds),
        )

    # ------------------------------------------------------------------ #
    #  Positions and global parameters
    # ------------------------------------------------------------------ #

    @property
    def num_particles(self) -> int:
        return len(self._positions)

    @property
    def positions(self) -> NDArray[np.floating]:
        return self._positions.copy()

    @positions.setter
    def positions(self, positions: ArrayLike) -> None:
        positions = self._check_positions(positions)
        if positions.shape != self._positions.shape:
            raise ValueError(
                f"Positions shape {positions.shape} must match "
                f"{self._positions.shape}"
            )
        with self._lock:
            self._positions = positions

    def get_parameter(self, name: str) -> float:
        """Return the live value of a global parameter."""
        if name not in self._parameters:
            raise ValueError(f"Unknown global parameter '{name}'")
        return self._parameters[name]

    def set_parameter(self, name: str, value: float) -> None:
        """Set the live value of a global parameter (the default is unchanged)."""
        if name not in self._parameters:
            raise ValueError(f"Unknown global parameter '{name}'")
        with self._lock:
            self._parameters[name] = float(value)

    @property
    def parameters(self) -> Dict[str, float]:
        return dict(self._parameters)

    # ------------------------------------------------------------------ #
    #  Evaluation
    # ------------------------------------------------------------------ #

    def compute_forces_and_energy(self) -> Tuple[NDArray[np.floating], float]:
        """
        Evaluate every bond at the current positions.

        Returns:
            Tuple of ((N, 3) forces, total energy). Both are also published
            as the forces and energy attributes.
        """
        with self._lock:
            global_values = [
                self._parameters[name] for name in self.compiled.global_parameters
            ]
            forces = np.zeros_like(self._positions)
            energy = self.driver.compute(self._positions, global_values, forces)
            self.forces = forces
            self.energy = energy
            self._step += 1
        return forces.copy(), energy

    def compute_energy(self) -> float:
        return self.compute_forces_and_energy()[1]

    def compute_forces(self) -> NDArray[np.floating]:
        return self.compute_forces_and_energy()[0]

    def get_state(self) -> State:
        """Snapshot of positions and the last published forces and energy."""
        with self._lock:
            return State(
                positions=self._positions.copy(),
                forces=self.forces.copy(),
                energy=self.energy,
                step=self._step,
            )

    # ------------------------------------------------------------------ #
    #  Updates and rebuilds
    # ------------------------------------------------------------------ #

    def update_force_parameters(self, force: "CustomCompoundBondForce") -> None:
        """
        Push per-bond parameter values and tabulated values from a force.

        Raises:
            ReinitializationRequiredError: If the force's structure differs
                from the one this context was built with.
        """
        if force is not self.force:
            raise ValueError("The force was not used to build this context")

        current = self._signature(force)
        labels = (
            "Changing the energy expression",
            "Changing the number of particles per bond",
            "Changing per-bond parameter declarations",
            "Changing global parameter declarations",
            "Changing tabulated function declarations",
            "Changing the bonds' particles or adding bonds",
        )
        for label, old, new in zip(labels, self._structure, current):
            if old != new:
                raise ReinitializationRequiredError(label)

        bonds = force.bonds
        parameters = np.array(
            [b.parameters for b in bonds], dtype=np.float64
        ).reshape(len(bonds), force.num_per_bond_parameters)
        with self._lock:
            self.driver.update_parameters(parameters)
            for table, info in zip(self._tables, force.functions):
                table.set_values(info.values, info.min, info.max)
        logger.debug("Updated parameters of %d bond(s)", len(bonds))

    def reinitialize(self, preserve_state: bool = False) -> None:
        """
        Rebuild from the force definition, discarding the built state.

        Args:
            preserve_state: Keep live global-parameter values for names
                that still exist; otherwise reset them to their defaults.
        """
        with self._lock:
            kept = dict(self._parameters) if preserve_state else None
            self._build(kept)

    def close(self) -> None:
        """Release the worker pool."""
        if self.driver is not None:
            self.driver.close()

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
