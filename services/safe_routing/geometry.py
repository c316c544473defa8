"""
Great-circle and planar helpers shared by the index, risk and diagnostics.

Distances to polylines are measured on a local equirectangular projection
(metres); it is accurate to well under a metre at city scale.
"""

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

from common.constants import EARTH_RADIUS_M

LatLng = Tuple[float, float]
XY = Tuple[float, float]


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two coordinates in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def polyline_length_m(points: Sequence[LatLng]) -> float:
    return sum(
        haversine_m(a[0], a[1], b[0], b[1]) for a, b in zip(points, points[1:])
    )


class LocalProjection:
    """Equirectangular projection centred on an origin, output in metres."""

    def __init__(self, origin_lat: float, origin_lng: float):
        self.origin_lat = origin_lat
        self.origin_lng = origin_lng
        self._kx = EARTH_RADIUS_M * math.cos(math.radians(origin_lat))
        self._ky = EARTH_RADIUS_M

    @classmethod
    def around(cls, points: Iterable[LatLng]) -> "LocalProjection":
        coords = np.asarray(list(points), dtype=float)
        if coords.size == 0:
            return cls(0.0, 0.0)
        return cls(float(coords[:, 0].mean()), float(coords[:, 1].mean()))

    def to_xy(self, lat: float, lng: float) -> XY:
        return (
            self._kx * math.radians(lng - self.origin_lng),
            self._ky * math.radians(lat - self.origin_lat),
        )

    def to_xy_array(self, points: Sequence[LatLng]) -> np.ndarray:
        coords = np.asarray(points, dtype=float).reshape(-1, 2)
        xs = self._kx * np.radians(coords[:, 1] - self.origin_lng)
        ys = self._ky * np.radians(coords[:, 0] - self.origin_lat)
        return np.column_stack((xs, ys))


def point_segment_distance(p: XY, a: XY, b: XY) -> float:
    """Minimum distance from p to the segment a-b (planar)."""
    ax, ay = a
    bx, by = b
    px, py = p
    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0.0:
        return math.hypot(px - ax, py - ay)
    t = ((px - ax) * dx + (py - ay) * dy) / seg_len_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def point_polyline_distance(p: XY, polyline: Sequence[XY]) -> float:
    if len(polyline) == 1:
        return math.hypot(p[0] - polyline[0][0], p[1] - polyline[0][1])
    return min(
        point_segment_distance(p, a, b) for a, b in zip(polyline, polyline[1:])
    )


def bounding_circle(polyline: np.ndarray) -> Tuple[XY, float]:
    """Centre (bbox midpoint) and radius enclosing every vertex of a polyline."""
    lo = polyline.min(axis=0)
    hi = polyline.max(axis=0)
    centre = (lo + hi) / 2.0
    radius = float(np.sqrt(((polyline - centre) ** 2).sum(axis=1)).max())
    return (float(centre[0]), float(centre[1])), radius
