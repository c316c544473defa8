"""
Weighted graph view: the only thing the search sees.

Composes the shared road network, a travel-mode filter and one request's
crime snapshot into cost(edge) / neighbors(node) / heuristic(node, goal).
Risk values are memoised per request and shared by every penalised view
derived from the same base view.
"""

from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from models.network import Edge, LatLng, RoadNetwork, TravelMode
from models.route import Path, PathKind
from services.safe_routing.geometry import haversine_m
from services.safe_routing.risk import EdgeRisk, edge_risk
from services.safe_routing.settings import RiskParameters
from services.safe_routing.spatial_index import CrimeIndex


class WeightedGraphView:
    def __init__(
        self,
        network: RoadNetwork,
        mode: TravelMode,
        crimes: CrimeIndex,
        risk_params: RiskParameters,
        penalties: Optional[Mapping[int, float]] = None,
        *,
        _risk_memo: Optional[Dict[int, EdgeRisk]] = None,
    ):
        self.network = network
        self.mode = TravelMode(mode)
        self.crimes = crimes
        self.risk_params = risk_params
        self.penalties: Dict[int, float] = dict(penalties or {})
        self._risk_memo: Dict[int, EdgeRisk] = (
            _risk_memo if _risk_memo is not None else {}
        )

    def with_penalties(self, penalties: Mapping[int, float]) -> "WeightedGraphView":
        """Same network, mode and snapshot; different edge multipliers."""
        return WeightedGraphView(
            self.network,
            self.mode,
            self.crimes,
            self.risk_params,
            penalties,
            _risk_memo=self._risk_memo,
        )

    def neighbors(self, node_id: int) -> Iterator[Edge]:
        for edge in self.network.out_edges(node_id):
            if edge.usable_by(self.mode):
                yield edge

    def edge_risk(self, edge: Edge) -> EdgeRisk:
        cached = self._risk_memo.get(edge.id)
        if cached is None:
            cached = edge_risk(
                edge.id,
                self.network.index.edge_polyline_xy(edge.id),
                self.crimes,
                self.risk_params,
            )
            self._risk_memo[edge.id] = cached
        return cached

    def risk(self, edge: Edge) -> float:
        return self.edge_risk(edge).weight

    def true_cost(self, edge: Edge) -> float:
        return edge.base_cost + self.risk(edge)

    def cost(self, edge: Edge) -> float:
        return self.true_cost(edge) * self.penalties.get(edge.id, 1.0)

    def heuristic(self, node_id: int, goal_id: int) -> float:
        """Lower bound on remaining base cost; risk and penalties only add to it."""
        node = self.network.nodes[node_id]
        goal = self.network.nodes[goal_id]
        return haversine_m(node.lat, node.lng, goal.lat, goal.lng) * (
            self.network.heuristic_scale
        )

    def snap(self, lat: float, lng: float, max_distance_m: float) -> Tuple[int, float]:
        return self.network.index.nearest_node(lat, lng, self.mode, max_distance_m)

    def price(
        self,
        edges: Iterable[Edge],
        kind: PathKind,
        origin: Optional[LatLng] = None,
    ) -> Path:
        """Build a Path carrying its un-penalised cost breakdown."""
        edges = tuple(edges)
        risks = tuple(self.risk(edge) for edge in edges)
        base = 0.0
        for edge in edges:
            base += edge.base_cost
        risk_total = 0.0
        for value in risks:
            risk_total += value
        return Path(
            kind=kind,
            edges=edges,
            base_cost=base,
            risk_cost=risk_total,
            edge_risks=risks,
            origin=origin,
        )
