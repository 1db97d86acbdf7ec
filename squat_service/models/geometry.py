"""
FORMCOACH Squat Service - Geometry

Planar angle and distance helpers for pose landmarks.
The z coordinate is ignored: all analysis happens in the image plane.
"""

import numpy as np


def _to_planar(point) -> np.ndarray:
    return np.array([float(point.x), float(point.y)])


def calculate_angle(a, b, c) -> float:
    """
    Calculate angle at point b formed by points a-b-c.

    Args:
        a, c: End points (anything with .x and .y)
        b: Vertex point

    Returns:
        Angle in degrees (0-180). Returns 0 when a or c coincides with b.
    """
    ba = _to_planar(a) - _to_planar(b)
    bc = _to_planar(c) - _to_planar(b)

    magnitude_ba = np.linalg.norm(ba)
    magnitude_bc = np.linalg.norm(bc)
    if magnitude_ba == 0 or magnitude_bc == 0:
        return 0.0

    cosine_angle = np.dot(ba, bc) / (magnitude_ba * magnitude_bc)
    cosine_angle = np.clip(cosine_angle, -1.0, 1.0)

    return float(np.degrees(np.arccos(cosine_angle)))


def calculate_distance(a, b) -> float:
    """Planar Euclidean distance between two landmarks."""
    dx = float(a.x) - float(b.x)
    dy = float(a.y) - float(b.y)
    return float(np.hypot(dx, dy))
