"""
Plane geometry helpers shared by calibration, segmentation and measurement
"""

import math
from typing import Iterable, Sequence, Tuple

Coordinate = Tuple[float, float]


def euclidean_distance(p1: Coordinate, p2: Coordinate) -> float:
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def shoelace_sum(points: Sequence[Coordinate]) -> float:
    """
    Signed Shoelace sum over the points treated as a closed cycle

    Self-intersecting paths are summed as-is, so lobes with opposite winding
    cancel each other.
    """
    total = 0.0
    n = len(points)
    for i in range(n):
        x_i, y_i = points[i]
        x_j, y_j = points[(i + 1) % n]
        total += x_i * y_j - x_j * y_i
    return total


def shoelace_area(points: Sequence[Coordinate]) -> float:
    return abs(shoelace_sum(points)) / 2.0


def polygon_perimeter(points: Sequence[Coordinate]) -> float:
    """Sum of the edge lengths, including the closing edge back to the first point"""
    n = len(points)
    if n < 2:
        return 0.0
    return sum(euclidean_distance(points[i], points[(i + 1) % n]) for i in range(n))


def extent(points: Iterable[Coordinate]) -> Tuple[float, float, float, float]:
    """Return (min_x, max_x, min_y, max_y)"""
    xs, ys = zip(*points)
    return min(xs), max(xs), min(ys), max(ys)


def simple_ellipse_perimeter(length: float, width: float) -> float:
    """2*pi*sqrt((length*width)/2), the approximation used for automatic masks"""
    return 2.0 * math.pi * math.sqrt((length * width) / 2.0)


def ramanujan_ellipse_perimeter(length: float, width: float) -> float:
    """Ramanujan's first approximation, with length and width as full axes"""
    a = length / 2.0
    b = width / 2.0
    return math.pi * (3.0 * (a + b) - math.sqrt((3.0 * a + b) * (a + 3.0 * b)))
