"""
Geospatial index over road network nodes/edges and crime reports.

Coordinates are projected once onto the network's local plane and stored in
scipy KD-trees; all structures are immutable after construction so any
number of requests can query them concurrently.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from models.crime import CrimeReport, CrimeSnapshot
from models.network import Edge, Node, TravelMode
from services.safe_routing.errors import NoNetworkNearby
from services.safe_routing.geometry import (
    XY,
    LocalProjection,
    bounding_circle,
    point_polyline_distance,
)

logger = logging.getLogger(__name__)


def _tree(points: np.ndarray) -> Optional[cKDTree]:
    return cKDTree(points) if len(points) else None


class NetworkIndex:
    """Nearest-node and radius lookups over one road network."""

    def __init__(self, nodes: Dict[int, Node], edges: Sequence[Edge]):
        node_ids = sorted(nodes)
        self.projection = LocalProjection.around(
            nodes[node_id].coordinate for node_id in node_ids
        )

        self._node_ids = np.asarray(node_ids, dtype=np.int64)
        self._node_xy = self.projection.to_xy_array(
            [nodes[node_id].coordinate for node_id in node_ids]
        )
        row_of = {node_id: row for row, node_id in enumerate(node_ids)}

        # One tree per travel mode, holding only nodes touched by a usable edge
        self._mode_trees: Dict[TravelMode, Tuple[Optional[cKDTree], np.ndarray]] = {}
        for mode in TravelMode:
            usable = sorted(
                {e.source for e in edges if e.usable_by(mode)}
                | {e.target for e in edges if e.usable_by(mode)}
            )
            rows = np.asarray([row_of[n] for n in usable], dtype=np.int64)
            points = self._node_xy[rows] if len(rows) else np.empty((0, 2))
            self._mode_trees[mode] = (_tree(points), np.asarray(usable, dtype=np.int64))

        self._edge_xy: List[Tuple[XY, ...]] = []
        centres = []
        radii = []
        for edge in edges:
            xy = self.projection.to_xy_array(edge.geometry)
            self._edge_xy.append(tuple((float(x), float(y)) for x, y in xy))
            centre, radius = bounding_circle(xy)
            centres.append(centre)
            radii.append(radius)
        self._edge_modes = [edge.modes for edge in edges]
        self._edge_radii = np.asarray(radii, dtype=float)
        self._max_edge_radius = float(self._edge_radii.max()) if radii else 0.0
        self._edge_tree = _tree(np.asarray(centres, dtype=float).reshape(-1, 2))
        logger.debug(f"Indexed {len(node_ids)} nodes and {len(edges)} edges")

    def to_xy(self, lat: float, lng: float) -> XY:
        return self.projection.to_xy(lat, lng)

    def edge_polyline_xy(self, edge_id: int) -> Tuple[XY, ...]:
        return self._edge_xy[edge_id]

    def nearest_node(
        self, lat: float, lng: float, mode: TravelMode, max_distance_m: float
    ) -> Tuple[int, float]:
        """
        Snap a coordinate onto the closest node usable under mode.

        Returns:
            (node_id, distance_m)

        Raises:
            NoNetworkNearby: nothing usable within max_distance_m
        """
        tree, ids = self._mode_trees[TravelMode(mode)]
        if tree is not None:
            distance, row = tree.query(
                self.to_xy(lat, lng), k=1, distance_upper_bound=max_distance_m
            )
            if np.isfinite(distance):
                return int(ids[row]), float(distance)
        raise NoNetworkNearby(
            f"No {TravelMode(mode).value} network node within {max_distance_m:g} m "
            f"of ({lat}, {lng})",
            context={"lat": lat, "lng": lng},
        )

    def edges_within(
        self,
        lat: float,
        lng: float,
        radius_m: float,
        mode: Optional[TravelMode] = None,
    ) -> List[Tuple[int, float]]:
        """Edges whose polyline passes within radius_m, as (edge_id, distance) by distance."""
        if self._edge_tree is None:
            return []
        point = self.to_xy(lat, lng)
        found = []
        for edge_id in self._edge_tree.query_ball_point(
            point, radius_m + self._max_edge_radius
        ):
            if mode is not None and mode not in self._edge_modes[edge_id]:
                continue
            distance = point_polyline_distance(point, self._edge_xy[edge_id])
            if distance <= radius_m:
                found.append((edge_id, distance))
        found.sort(key=lambda item: (item[1], item[0]))
        return found

    def crime_index(self, snapshot: CrimeSnapshot) -> "CrimeIndex":
        return CrimeIndex(snapshot, self.projection)


class CrimeIndex:
    """KD-tree over one crime snapshot, in a network's projection."""

    def __init__(self, snapshot: CrimeSnapshot, projection: LocalProjection):
        self.snapshot = snapshot
        self.projection = projection
        self._reports = snapshot.reports
        self._xy = projection.to_xy_array([(r.lat, r.lng) for r in self._reports])
        self._tree = _tree(self._xy)

    def __len__(self) -> int:
        return len(self._reports)

    def reports_within(
        self, lat: float, lng: float, radius_m: float
    ) -> List[Tuple[CrimeReport, float]]:
        """Reports within radius_m of a point, in snapshot order."""
        if self._tree is None:
            return []
        px, py = self.projection.to_xy(lat, lng)
        rows = sorted(self._tree.query_ball_point((px, py), radius_m))
        found = []
        for row in rows:
            distance = float(np.hypot(self._xy[row][0] - px, self._xy[row][1] - py))
            if distance <= radius_m:
                found.append((self._reports[row], distance))
        return found

    def reports_near_polyline(
        self, polyline: Sequence[XY], radius_m: float
    ) -> List[Tuple[CrimeReport, float]]:
        """
        Reports whose minimum distance to the polyline is <= radius_m.

        Results are in snapshot order so sums over them are reproducible.
        """
        if self._tree is None or not polyline:
            return []
        centre, reach = bounding_circle(np.asarray(polyline, dtype=float))
        rows = sorted(self._tree.query_ball_point(centre, reach + radius_m))
        found = []
        for row in rows:
            point = (float(self._xy[row][0]), float(self._xy[row][1]))
            distance = point_polyline_distance(point, polyline)
            if distance <= radius_m:
                found.append((self._reports[row], distance))
        return found
