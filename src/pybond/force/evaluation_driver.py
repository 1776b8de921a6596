"""
Evaluation driver for all bonds of a compound bond force.

The driver owns the frozen bond table (particle ids and parameter values),
runs the BondEvaluator over it in chunks, scatters the per-role forces into
the shared per-particle buffer, and reduces the energy.
"""
import logging
import weakref
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pybond.core.schemas import BondInfo
from pybond.expression import CompiledExpression

from .bond_evaluator import BondEvaluator
from .coloring import color_bonds

logger = logging.getLogger(__name__)


class EvaluationDriver:
    """
    Evaluates every bond and accumulates forces and energy.

    Concurrency:
        With num_workers > 1 the bonds are split into colors (groups
        sharing no particle) computed once at construction. Colors run one
        after the other; chunks of one color run concurrently on a thread
        pool, so concurrent scatters never touch the same particle row.
        With one worker all bonds are chunked in order and evaluated
        serially.

        Energy is reduced from per-chunk partial sums. Totals may differ
        in the last bits between worker counts or chunk sizes.

    Attributes:
        compiled: Shared compiled expression.
        num_particles: Number of particles in the context.
        particles: (B, N) particle ids of every bond.
        parameters: (B, P) per-bond parameter values.
        num_workers: Number of worker threads.
        chunk_size: Maximum number of bonds evaluated per task.

    Example:
        >>> driver = EvaluationDriver(compiled, bonds, num_particles=10)
        >>> forces = np.zeros((10, 3))
        >>> energy = driver.compute(positions, [], forces)
    """

    def __init__(
        self,
        compiled: CompiledExpression,
        bonds: Sequence[BondInfo],
        num_particles: int,
        num_workers: int = 1,
        chunk_size: int = 4096,
    ) -> None:
        """
        Freeze the bond table and plan the evaluation schedule.

        Args:
            compiled: Compiled energy expression.
            bonds: Bonds to evaluate.
            num_particles: Number of particles in the context.
            num_workers: Worker threads; 1 evaluates serially.
            chunk_size: Maximum bonds per evaluation task.

        Raises:
            ValueError: If a bond has the wrong number of particles or
                parameters, or references a particle out of range.
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

        self.compiled = compiled
        self.num_particles = num_particles
        self.num_workers = num_workers
        self.chunk_size = chunk_size
        self.evaluator = BondEvaluator(compiled)

        n_roles = compiled.num_particles
        n_params = len(compiled.per_bond_parameters)
        for index, bond in enumerate(bonds):
            self._validate_bond(index, bond, n_roles, n_params)

        self.particles: NDArray[np.intp] = np.array(
            [bond.particles for bond in bonds], dtype=np.intp
        ).reshape(len(bonds), n_roles)
        self.parameters: NDArray[np.floating] = np.array(
            [bond.parameters for bond in bonds], dtype=np.float64
        ).reshape(len(bonds), n_params)

        self.schedule = self._plan()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._finalizer: Optional[weakref.finalize] = None
        if num_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=num_workers, thread_name_prefix="pybond"
            )
            # Workers must not outlive an unclosed driver.
            self._finalizer = weakref.finalize(
                self, self._executor.shutdown, wait=False
            )
        logger.info(
            "Planned %d bond(s) in %d group(s) for %d worker(s)",
            len(bonds),
            len(self.schedule),
            num_workers,
        )

    def _validate_bond(self, index: int, bond: BondInfo, n_roles: int, n_params: int) -> None:
        if len(bond.particles) != n_roles:
            raise ValueError(
                f"Bond {index} has {len(bond.particles)} particle(s), expected {n_roles}"
            )
        if len(bond.parameters) != n_params:
            raise ValueError(
                f"Bond {index} has {len(bond.parameters)} parameter value(s), "
                f"expected {n_params}"
            )
        for p in bond.particles:
            if not 0 <= p < self.num_particles:
                raise ValueError(
                    f"Bond {index} references particle {p}, valid range is "
                    f"0..{self.num_particles - 1}"
                )

    def _chunks(self, members: NDArray[np.intp]) -> List[NDArray[np.intp]]:
        return [
            members[start:start + self.chunk_size]
            for start in range(0, len(members), self.chunk_size)
        ]

    def _plan(self) -> List[List[NDArray[np.intp]]]:
        """Group bond chunks; chunks within one group may run concurrently."""
        n_bonds = len(self.particles)
        if n_bonds == 0:
            return []
        if self.num_workers == 1:
            return [self._chunks(np.arange(n_bonds, dtype=np.intp))]
        return [self._chunks(members) for members in color_bonds(self.particles)]

    @property
    def num_bonds(self) -> int:
        return len(self.particles)

    def update_parameters(self, parameters: ArrayLike) -> None:
        """
        Replace per-bond parameter values.

        Particle ids, bond count and the parameter schema stay fixed.

        Raises:
            ValueError: If the shape of parameters does not match (B, P).
        """
        parameters = np.asarray(parameters, dtype=np.float64)
        if parameters.shape != self.parameters.shape:
            raise ValueError(
                f"Parameter array shape {parameters.shape} does not match "
                f"{self.parameters.shape}"
            )
        self.parameters = parameters.copy()

    def _run_chunk(
        self,
        members: NDArray[np.intp],
        positions: NDArray[np.floating],
        global_values: Sequence[float],
        forces: NDArray[np.floating],
    ) -> float:
        ids = self.particles[members]
        energies, bond_forces = self.evaluator.evaluate(
            positions[ids], self.parameters[members], global_values
        )
        # add.at sums repeated ids, including a particle listed twice in one bond.
        np.add.at(forces, ids, bond_forces)
        return float(np.sum(energies))

    def compute(
        self,
        positions: NDArray[np.floating],
        global_values: Sequence[float],
        forces: NDArray[np.floating],
    ) -> float:
        """
        Evaluate all bonds.

        Args:
            positions: (num_particles, 3) current positions.
            global_values: Current global-parameter values in slot order.
            forces: (num_particles, 3) buffer the forces are added into.

        Returns:
            Total energy of all bonds.
        """
        partial_sums: List[float] = []
        for group in self.schedule:
            if self._executor is not None and len(group) > 1:
                partial_sums.extend(
                    self._executor.map(
                        lambda members: self._run_chunk(
                            members, positions, global_values, forces
                        ),
                        group,
                    )
                )
            else:
                for members in group:
                    partial_sums.append(
                        self._run_chunk(members, positions, global_values, forces)
                    )
        return float(sum(partial_sums))

    def close(self) -> None:
        """Shut down the worker pool."""
        if self._executor is not None:
            self._finalizer.detach()
            self._executor.shutdown(wait=True)
            self._executor = None
            self._finalizer = None
