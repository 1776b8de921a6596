"""
Conflict-free partitioning of bonds.

Two bonds conflict when they share a particle, because both scatter
forces into that particle's slot. Bonds of one color share no particles,
so a color may be evaluated by several workers at once without atomics.
"""
from collections import defaultdict
from typing import DefaultDict, List, Set

import numpy as np
from numpy.typing import NDArray


def color_bonds(particles: NDArray[np.intp]) -> List[NDArray[np.intp]]:
    """
    Greedy coloring of the bond conflict graph.

    Bonds are visited in order and each takes the smallest color not
    already used by any of its particles. The number of colors is at most
    one more than the largest number of bonds any single bond conflicts
    with.

    Args:
        particles: (B, N) particle ids of every bond.

    Returns:
        List of index arrays, one per color, each in increasing bond order.
    """
    particle_colors: DefaultDict[int, Set[int]] = defaultdict(set)
    colors: List[List[int]] = []

    for bond, ids in enumerate(particles):
        unique = set(int(p) for p in ids)
        used: Set[int] = set()
        for p in unique:
            used |= particle_colors[p]
        color = 0
        while color in used:
            color += 1
        if color == len(colors):
            colors.append([])
        colors[color].append(bond)
        for p in unique:
            particle_colors[p].add(color)

    return [np.array(members, dtype=np.intp) for members in colors]


def is_conflict_free(particles: NDArray[np.intp], members: NDArray[np.intp]) -> bool:
    """Check that no particle appears in two different bonds of a group."""
    seen: Set[int] = set()
    for bond in members:
        unique = set(int(p) for p in particles[bond])
        if seen & unique:
            return False
        seen |= unique
    return True
