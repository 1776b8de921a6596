"""
State class for compound bond evaluations.

This module provides the State dataclass representing a snapshot of a
context after a force evaluation.
"""
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


@dataclass
class State:
    """
    Snapshot of a context at one evaluation.

    Attributes:
        positions: (N, 3) array of particle positions.
        forces: (N, 3) array of forces contributed by the bond force.
        energy: Total energy contributed by the bond force.
        step: Number of force evaluations performed by the context.

    Example:
        >>> import numpy as np
        >>> from pybond.core import State
        >>> state = State(
        ...     positions=np.zeros((4, 3)),
        ...     forces=np.zeros((4, 3)),
        ...     energy=0.0,
        ... )
    """
    positions: NDArray[np.floating]
    forces: NDArray[np.floating]
    energy: float = 0.0
    step: int = 0

    def __post_init__(self) -> None:
        """Validate state arrays after initialization."""
        self.positions = np.asarray(self.positions, dtype=np.float64)
        self.forces = np.asarray(self.forces, dtype=np.float64)

        if self.positions.ndim != 2 or self.positions.shape[1] != 3:
            raise ValueError(
                f"Positions must be (N, 3) array, got shape {self.positions.shape}"
            )
        if self.forces.shape != self.positions.shape:
            raise ValueError(
                f"Forces shape {self.forces.shape} must match "
                f"positions shape {self.positions.shape}"
            )

    @property
    def n_particles(self) -> int:
        """Return the number of particles in the state."""
        return self.positions.shape[0]

    def copy(self) -> "State":
        """Create a deep copy of the state."""
        return State(
            positions=self.positions.copy(),
            forces=self.forces.copy(),
            energy=self.energy,
            step=self.step,
        )
