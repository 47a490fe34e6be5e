"""Deterministic golden-angle sphere placement.

Nodes are laid out on a spiral over a sphere whose radius grows slowly with
insertion index, so early nodes stay near the center and later ones form
outer shells. The function is pure: the same index and estimate always give
the same point.
"""

import math

from storylines.core import constants
from storylines.graph.models import Vector3

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))


def position(index: int, estimated_total: int) -> Vector3:
    """Rest position of the node inserted at ``index``.

    Args:
        index: Insertion index (node count before this node was added)
        estimated_total: Expected node count once the current batch lands

    Returns:
        (x, y, z)
    """
    if index < 0:
        raise ValueError("index must be non-negative")

    radius = constants.LAYOUT_BASE_RADIUS + index ** (1.0 / 3.0) * constants.LAYOUT_RADIUS_GROWTH

    y = 1 - (index / max(1, estimated_total - 1)) * 2
    radius_at_y = math.sqrt(max(0.0, 1 - y * y))
    theta = GOLDEN_ANGLE * index

    return (
        math.cos(theta) * radius_at_y * radius,
        y * radius,
        math.sin(theta) * radius_at_y * radius,
    )


def midpoint(a: Vector3, b: Vector3) -> Vector3:
    return (
        (a[0] + b[0]) / 2,
        (a[1] + b[1]) / 2,
        (a[2] + b[2]) / 2,
    )
