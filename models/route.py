"""
Route models: requests, tagged paths and route results.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from models.network import Edge, LatLng, TravelMode


class PathKind(str, Enum):
    """Role a path plays in a route result."""

    PRIMARY = "primary"
    ALTERNATIVE = "alternative"
    CANDIDATE = "candidate"
    DEBUG = "debug"


@dataclass(frozen=True)
class Path:
    """
    Ordered, cycle-free sequence of adjacent edges.

    base_cost and risk_cost are always the un-penalised costs under the
    request's crime snapshot; edge_risks[i] is the risk cost of edges[i].
    """

    kind: PathKind
    edges: Tuple[Edge, ...]
    base_cost: float
    risk_cost: float
    edge_risks: Tuple[float, ...]
    origin: Optional[LatLng] = None

    @property
    def total_cost(self) -> float:
        return self.base_cost + self.risk_cost

    @property
    def edge_ids(self) -> Tuple[int, ...]:
        return tuple(edge.id for edge in self.edges)

    @property
    def node_ids(self) -> List[int]:
        if not self.edges:
            return []
        return [self.edges[0].source] + [edge.target for edge in self.edges]

    def points(self) -> List[LatLng]:
        """Flattened polyline of the whole path, shared joints emitted once."""
        if not self.edges:
            return [self.origin] if self.origin is not None else []
        points: List[LatLng] = list(self.edges[0].geometry)
        for edge in self.edges[1:]:
            points.extend(edge.geometry[1:])
        return points

    def overlap_with(self, other: "Path") -> float:
        """Share of this path's edges that other also uses (0.0 - 1.0)."""
        if not self.edges:
            return 0.0
        other_ids = set(other.edge_ids)
        shared = sum(1 for edge_id in self.edge_ids if edge_id in other_ids)
        return shared / len(self.edges)

    def as_kind(self, kind: PathKind) -> "Path":
        return replace(self, kind=kind)


@dataclass(frozen=True)
class RouteRequest:
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    mode: TravelMode
    as_of: Optional[datetime] = None
    alternatives: Optional[int] = None
    budget_ms: Optional[int] = None


@dataclass(frozen=True)
class RouteResult:
    """Primary path, accepted alternatives and every candidate considered."""

    primary: Path
    alternatives: Tuple[Path, ...] = ()
    candidates: Tuple[Path, ...] = ()
    alternatives_truncated: bool = False
    network_key: Optional[str] = None
    crime_count: int = 0
    expanded_nodes: int = 0
