"""
Geometric primitives with closed-form gradients.

Each primitive takes 2, 3 or 4 particle positions and returns the scalar
quantity together with its gradient with respect to every input position.
Inputs may be single (3,) vectors or (n, 3) stacks, one row per bond, so a
whole batch of bonds is evaluated in one call.

Angles and dihedrals are computed with atan2 of a sine-like and a
cosine-like term. acos/asin of a ratio loses precision near 0 and π and
their derivatives diverge there.

Degenerate geometry (coincident points, collinear triples) does not raise:
the value is still defined by atan2 and the gradients are zero.
"""
from typing import Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

Gradients = Tuple[NDArray[np.floating], ...]


def _dot(u: NDArray[np.floating], v: NDArray[np.floating]) -> NDArray[np.floating]:
    return np.sum(u * v, axis=-1)


def _column(x: NDArray[np.floating]) -> NDArray[np.floating]:
    return np.expand_dims(x, -1)


def distance(
    a: ArrayLike, b: ArrayLike
) -> Tuple[NDArray[np.floating], Gradients]:
    """
    Distance |b - a| and its gradients.

    Args:
        a: (3,) or (n, 3) positions of the first particle.
        b: (3,) or (n, 3) positions of the second particle.

    Returns:
        Tuple of (r, (dr/da, dr/db)).

    Note:
        When a and b coincide, r = 0 and both gradients are zero. The
        direction of the bond is undefined there.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    delta = b - a
    r = np.asarray(np.sqrt(_dot(delta, delta)))

    valid = r > 0.0
    safe_r = np.where(valid, r, 1.0)
    unit = np.where(_column(valid), delta / _column(safe_r), 0.0)
    return r, (-unit, unit)


def angle(
    a: ArrayLike, b: ArrayLike, c: ArrayLike
) -> Tuple[NDArray[np.floating], Gradients]:
    """
    Angle at vertex b between (a - b) and (c - b), and its gradients.

    θ = atan2(|v1 × v2|, v1 · v2), with v1 = a - b and v2 = c - b.

    Args:
        a: (3,) or (n, 3) positions of the first particle.
        b: (3,) or (n, 3) positions of the vertex particle.
        c: (3,) or (n, 3) positions of the third particle.

    Returns:
        Tuple of (theta, (dθ/da, dθ/db, dθ/dc)), theta in [0, π].
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)
    v1 = a - b
    v2 = c - b

    normal = np.cross(v1, v2)
    normal_len = np.asarray(np.sqrt(_dot(normal, normal)))
    theta = np.asarray(np.arctan2(normal_len, _dot(v1, v2)))

    r1_sq = _dot(v1, v1)
    r2_sq = _dot(v2, v2)
    valid = (normal_len > 0.0) & (r1_sq > 0.0) & (r2_sq > 0.0)
    denom1 = np.where(valid, r1_sq * normal_len, 1.0)
    denom2 = np.where(valid, r2_sq * normal_len, 1.0)

    # In-plane unit directions that open the angle, scaled by 1/|v|.
    grad_a = np.cross(v1, normal) / _column(denom1)
    grad_c = -np.cross(v2, normal) / _column(denom2)
    grad_a = np.where(_column(valid), grad_a, 0.0)
    grad_c = np.where(_column(valid), grad_c, 0.0)
    grad_b = -(grad_a + grad_c)
    return theta, (grad_a, grad_b, grad_c)


def dihedral(
    a: ArrayLike, b: ArrayLike, c: ArrayLike, d: ArrayLike
) -> Tuple[NDArray[np.floating], Gradients]:
    """
    Signed dihedral angle about the b-c axis, and its gradients.

    Uses the IUPAC sign convention. With F = a - b, G = b - c, H = d - c,
    A = F × G and B = H × G:

        φ = atan2((B × A) · G / |G|, A · B)

    Gradients follow Blondel & Karplus, J. Comput. Chem. 17, 1132 (1996).

    Args:
        a, b, c, d: (3,) or (n, 3) particle positions.

    Returns:
        Tuple of (phi, (dφ/da, dφ/db, dφ/dc, dφ/dd)), phi in (-π, π].
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)
    d = np.asarray(d, dtype=np.float64)
    f = a - b
    g = b - c
    h = d - c

    cross_a = np.cross(f, g)
    cross_b = np.cross(h, g)
    a_sq = _dot(cross_a, cross_a)
    b_sq = _dot(cross_b, cross_b)
    g_len = np.sqrt(_dot(g, g))

    valid = (a_sq > 0.0) & (b_sq > 0.0) & (g_len > 0.0)
    safe_g = np.where(g_len > 0.0, g_len, 1.0)
    sin_term = _dot(np.cross(cross_b, cross_a), g) / safe_g
    phi = np.asarray(np.arctan2(sin_term, _dot(cross_a, cross_b)))

    safe_a = np.where(valid, a_sq, 1.0)
    safe_b = np.where(valid, b_sq, 1.0)
    safe_g = np.where(valid, g_len, 1.0)
    fg = _dot(f, g)
    hg = _dot(h, g)

    grad_a = _column(-safe_g / safe_a) * cross_a
    grad_d = _column(safe_g / safe_b) * cross_b
    scaled_a = _column(fg / (safe_a * safe_g)) * cross_a
    scaled_b = _column(hg / (safe_b * safe_g)) * cross_b
    grad_b = -grad_a + scaled_a - scaled_b
    grad_c = scaled_b - scaled_a - grad_d

    mask = _column(valid)
    grads = tuple(
        np.where(mask, grad, 0.0) for grad in (grad_a, grad_b, grad_c, grad_d)
    )
    return phi, grads
