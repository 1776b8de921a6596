"""
Evaluation of the compiled energy expression for bonds.

The BondEvaluator turns particle positions and parameter values into
bond energies and per-particle forces. It works on batches: every
variable slot holds one lane per bond, so a chunk of bonds costs one
walk over each tree.
"""
from typing import List, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pybond.expression import CompiledExpression, evaluate


def _lanes(value, n: int) -> NDArray[np.floating]:
    return np.broadcast_to(np.asarray(value, dtype=np.float64), (n,))


class BondEvaluator:
    """
    Computes energies and forces of bonds from a compiled expression.

    Forces are assembled as

        F_i = -∂E/∂r_i - Σ_k (∂E/∂g_k) ∇_i g_k

    where the first term comes from coordinate variables (x1, y2, ...) and
    the sum runs over the geometry terms g_k (distance, angle, dihedral)
    that involve particle i.

    Attributes:
        compiled: Shared, read-only compiled expression.

    Example:
        >>> compiled = CompiledExpression("distance(p1,p2)", 2)
        >>> evaluator = BondEvaluator(compiled)
        >>> energy, forces = evaluator.evaluate_bond(
        ...     np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]]), [], [])
    """

    def __init__(self, compiled: CompiledExpression) -> None:
        self.compiled = compiled

    def evaluate(
        self,
        positions: NDArray[np.floating],
        parameters: NDArray[np.floating],
        global_values: Sequence[float],
    ) -> Tuple[NDArray[np.floating], NDArray[np.floating]]:
        """
        Evaluate a batch of bonds.

        Args:
            positions: (n, N, 3) positions of each bond's particles, in
                role order p1..pN.
            parameters: (n, P) per-bond parameter values.
            global_values: (G,) current global-parameter values.

        Returns:
            Tuple of (energies (n,), forces (n, N, 3)). forces[b, i] is the
            force on the particle playing role i in bond b.
        """
        compiled = self.compiled
        n = positions.shape[0]
        values: List = [0.0] * compiled.num_variables

        for role in range(compiled.num_particles):
            for axis in range(3):
                values[3 * role + axis] = positions[:, role, axis]
        for i in range(len(compiled.per_bond_parameters)):
            values[compiled.parameter_offset + i] = parameters[:, i]
        for i, value in enumerate(global_values):
            values[compiled.global_offset + i] = float(value)

        gradients = []
        for k, term in enumerate(compiled.geometry_terms):
            value, grads = term.primitive(*(positions[:, role] for role in term.roles))
            values[compiled.geometry_offset + k] = value
            gradients.append(grads)

        functions = compiled.functions
        forces = np.zeros((n, compiled.num_particles, 3))
        with np.errstate(all="ignore"):
            energies = np.array(_lanes(evaluate(compiled.energy, values, functions), n))

            for slot, derivative in compiled.coordinate_derivatives.items():
                role, axis = divmod(slot, 3)
                forces[:, role, axis] -= _lanes(evaluate(derivative, values, functions), n)

            for k, derivative in compiled.geometry_derivatives.items():
                dedg = _lanes(evaluate(derivative, values, functions), n)[:, np.newaxis]
                term = compiled.geometry_terms[k]
                for role, grad in zip(term.roles, gradients[k]):
                    forces[:, role] -= dedg * grad
        return energies, forces

    def evaluate_bond(
        self,
        positions: ArrayLike,
        parameters: ArrayLike,
        global_values: Sequence[float],
    ) -> Tuple[float, NDArray[np.floating]]:
        """
        Evaluate a single bond.

        Args:
            positions: (N, 3) positions of the bond's particles.
            parameters: (P,) per-bond parameter values.
            global_values: (G,) global-parameter values.

        Returns:
            Tuple of (energy, (N, 3) forces per role).
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(
            1, self.compiled.num_particles, 3
        )
        parameters = np.asarray(parameters, dtype=np.float64).reshape(1, -1)
        energies, forces = self.evaluate(positions, parameters, global_values)
        return float(energies[0]), forces[0]
