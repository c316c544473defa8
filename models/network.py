"""
Road network models for the safe routing service.

Nodes and edges are loaded from the external map-data provider and never
change afterwards; a RoadNetwork is an immutable snapshot shared by every
request that routes inside its district.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterator, Optional, Tuple

if TYPE_CHECKING:
    from services.safe_routing.spatial_index import NetworkIndex

LatLng = Tuple[float, float]


class TravelMode(str, Enum):
    """Travel mode an edge can be used under."""

    DRIVE = "drive"
    WALK = "walk"


ALL_MODES: FrozenSet[TravelMode] = frozenset(TravelMode)


@dataclass(frozen=True)
class Node:
    id: int
    lat: float
    lng: float

    @property
    def coordinate(self) -> LatLng:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Edge:
    """Directed road segment. geometry includes both end points."""

    id: int
    source: int
    target: int
    geometry: Tuple[LatLng, ...]
    base_cost: float
    modes: FrozenSet[TravelMode] = ALL_MODES

    def usable_by(self, mode: TravelMode) -> bool:
        return mode in self.modes


@dataclass(frozen=True)
class RoadNetwork:
    """Immutable road graph snapshot for one district."""

    key: str
    nodes: Dict[int, Node]
    edges: Tuple[Edge, ...]
    adjacency: Dict[int, Tuple[int, ...]]
    index: "NetworkIndex"
    heuristic_scale: float
    loaded_at: datetime
    district: Optional[str] = None
    stats: Dict[str, int] = field(default_factory=dict)

    def node(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def edge(self, edge_id: int) -> Edge:
        return self.edges[edge_id]

    def out_edges(self, node_id: int) -> Iterator[Edge]:
        for edge_id in self.adjacency.get(node_id, ()):
            yield self.edges[edge_id]

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)
