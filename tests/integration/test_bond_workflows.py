"""
Integration tests for complete compound bond workflows.

Verifies physical invariants of whole-context evaluations: forces are the
negative gradient of the energy, and the energy of internal-coordinate
expressions is invariant under rigid motions.
"""
import numpy as np
import pytest
import yaml

from pybond import Context, CustomCompoundBondForce
from pybond.builder import load_context


TORSION = (
    "k*(1 + cos(3*dihedral(p1,p2,p3,p4) - phase))"
    " + kb*(distance(p2,p3) - r0)^2 + 0.1*angle(p1,p2,p3)^2"
)


def rotation_matrix(axis: np.ndarray, theta: float) -> np.ndarray:
    """Rodrigues rotation about a unit axis."""
    axis = axis / np.linalg.norm(axis)
    k = np.array([
        [0.0, -axis[2], axis[1]],
        [axis[2], 0.0, -axis[0]],
        [-axis[1], axis[0], 0.0],
    ])
    return np.eye(3) + np.sin(theta) * k + (1.0 - np.cos(theta)) * k @ k


@pytest.fixture
def torsion_force() -> CustomCompoundBondForce:
    """Four-body torsion + stretch + bend over a short chain."""
    force = CustomCompoundBondForce(4, TORSION)
    force.add_per_bond_parameter("k")
    force.add_per_bond_parameter("phase")
    force.add_global_parameter("kb", 20.0)
    force.add_global_parameter("r0", 1.2)
    force.add_bond([0, 1, 2, 3], [1.5, 0.0])
    force.add_bond([1, 2, 3, 4], [0.7, 0.3])
    force.add_bond([2, 3, 4, 5], [2.0, -0.4])
    return force


@pytest.fixture
def chain_positions() -> np.ndarray:
    """Slightly irregular zig-zag chain of six particles."""
    rng = np.random.default_rng(21)
    base = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.5, 0.1],
        [2.1, 0.0, -0.2],
        [3.0, 0.6, 0.4],
        [4.2, 0.1, 0.0],
        [5.0, 0.8, -0.5],
    ])
    return base + 0.05 * rng.normal(size=base.shape)


class TestForceConsistency:
    """Forces are -dE/dr for the whole context."""

    @pytest.mark.parametrize("num_workers", [1, 3])
    def test_forces_match_finite_difference(
        self,
        torsion_force: CustomCompoundBondForce,
        chain_positions: np.ndarray,
        num_workers: int,
    ) -> None:
        """Central differences of the total energy reproduce the forces."""
        with Context(torsion_force, chain_positions, num_workers=num_workers) as context:
            forces, _ = context.compute_forces_and_energy()

            h = 1e-6
            expected = np.zeros_like(forces)
            for i in range(len(chain_positions)):
                for axis in range(3):
                    plus = chain_positions.copy()
                    minus = chain_positions.copy()
                    plus[i, axis] += h
                    minus[i, axis] -= h
                    context.positions = plus
                    e_plus = context.compute_energy()
                    context.positions = minus
                    e_minus = context.compute_energy()
                    expected[i, axis] = -(e_plus - e_minus) / (2 * h)

        np.testing.assert_allclose(forces, expected, rtol=1e-5, atol=1e-6)


class TestRigidMotion:
    """Internal-coordinate energies are invariant under rigid motion."""

    def test_translation_and_rotation(
        self, torsion_force: CustomCompoundBondForce, chain_positions: np.ndarray
    ) -> None:
        """Energy is unchanged; forces rotate with the system."""
        context = Context(torsion_force, chain_positions)
        forces, energy = context.compute_forces_and_energy()

        rotation = rotation_matrix(np.array([0.3, -1.0, 0.5]), 0.8)
        moved = chain_positions @ rotation.T + np.array([4.0, -2.0, 7.5])
        context.positions = moved
        moved_forces, moved_energy = context.compute_forces_and_energy()

        assert moved_energy == pytest.approx(energy, rel=1e-10)
        np.testing.assert_allclose(moved_forces, forces @ rotation.T, atol=1e-9)

    def test_no_net_force_or_torque(
        self, torsion_force: CustomCompoundBondForce, chain_positions: np.ndarray
    ) -> None:
        """Forces sum to zero and exert no net torque."""
        forces, _ = Context(torsion_force, chain_positions).compute_forces_and_energy()
        np.testing.assert_allclose(forces.sum(axis=0), 0.0, atol=1e-10)
        torque = np.cross(chain_positions, forces).sum(axis=0)
        np.testing.assert_allclose(torque, 0.0, atol=1e-10)


class TestYamlWorkflow:
    """End-to-end setup from a YAML file."""

    def test_tabulated_pair_from_yaml(self, tmp_path) -> None:
        """A spline-defined pair energy reproduces its samples."""
        r = np.linspace(0.5, 3.0, 26)
        config = {
            "force": {
                "particles_per_bond": 2,
                "energy": "eps*u(r); r=distance(p1,p2)",
                "global_parameters": {"eps": 1.0},
                "functions": [
                    {"name": "u", "values": (1.0 / r ** 2).tolist(), "min": 0.5, "max": 3.0}
                ],
                "bonds": [{"particles": [0, 1]}, {"particles": [1, 2]}],
            },
            "context": {
                "positions": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 2.0, 0.0]],
                "parameters": {"eps": 3.0},
                "num_workers": 2,
            },
        }
        path = tmp_path / "pair.yaml"
        path.write_text(yaml.safe_dump(config))

        with load_context(path) as context:
            forces, energy = context.compute_forces_and_energy()

        # r=1 and r=2 are sample points of u(r) = 1/r^2.
        assert energy == pytest.approx(3.0 * (1.0 + 0.25), rel=1e-10)
        np.testing.assert_allclose(forces.sum(axis=0), 0.0, atol=1e-12)
        # Repulsive: particle 0 is pushed away from particle 1.
        assert forces[0, 0] < 0.0
