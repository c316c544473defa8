"""
Wire models of the safe routing API (camelCase JSON).
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.network import TravelMode
from models.route import Path, RouteRequest, RouteResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SafestRouteRequest(CamelModel):
    start_lat: float = Field(..., ge=-90, le=90)
    start_lng: float = Field(..., ge=-180, le=180)
    end_lat: float = Field(..., ge=-90, le=90)
    end_lng: float = Field(..., ge=-180, le=180)
    network_type: TravelMode = Field(...)
    as_of: Optional[datetime] = None
    alternatives: Optional[int] = Field(None, ge=0, le=10)
    budget_ms: Optional[int] = Field(None, gt=0, le=60000)

    def to_route_request(self) -> RouteRequest:
        return RouteRequest(
            start_lat=self.start_lat,
            start_lng=self.start_lng,
            end_lat=self.end_lat,
            end_lng=self.end_lng,
            mode=self.network_type,
            as_of=self.as_of,
            alternatives=self.alternatives,
            budget_ms=self.budget_ms,
        )


class CrimeCheckRequest(SafestRouteRequest):
    crime_lat: float = Field(..., ge=-90, le=90)
    crime_lng: float = Field(..., ge=-180, le=180)


class NetworkRefreshRequest(CamelModel):
    district: Optional[str] = None
    network_type: Optional[TravelMode] = None


class LatLngOut(CamelModel):
    lat: float
    lng: float


class EdgeRecord(CamelModel):
    from_lat: float
    from_lng: float
    to_lat: float
    to_lng: float
    weight: float


class SafestRouteResponse(CamelModel):
    route: List[LatLngOut]
    edge_weights: List[EdgeRecord]
    all_paths: List[List[EdgeRecord]]
    all_path_scores: List[float]
    alt_paths: List[List[EdgeRecord]]
    alt_path_scores: List[float]
    base_cost: float
    risk_cost: float
    alternatives_truncated: bool = False


class CrimeCheckResponse(CamelModel):
    result: Literal["yes", "no"]
    distance_m: Optional[float] = None
    route: List[LatLngOut]
    edge_weights: List[EdgeRecord]
    all_paths: List[List[EdgeRecord]]
    all_path_scores: List[float]
    alt_paths: List[List[EdgeRecord]]
    alt_path_scores: List[float]


class ContributionOut(CamelModel):
    report_id: str
    crime_type: str
    distance_m: float
    weight: float


class EdgeBreakdownOut(CamelModel):
    edge_id: int
    from_lat: float
    from_lng: float
    to_lat: float
    to_lng: float
    base_cost: float
    risk_cost: float
    contributions: List[ContributionOut]


class ExplainResponse(CamelModel):
    route: List[LatLngOut]
    base_cost: float
    risk_cost: float
    crime_reports: int
    edges: List[EdgeBreakdownOut]


class NetworkRefreshResponse(CamelModel):
    refreshed: List[str]


class RoutingFailure(BaseModel):
    route: List[LatLngOut] = []
    reason: str
    detail: str


def route_points(path: Path) -> List[LatLngOut]:
    return [LatLngOut(lat=lat, lng=lng) for lat, lng in path.points()]


def edge_records(path: Path) -> List[EdgeRecord]:
    """One record per edge; weight is the edge's risk cost."""
    return [
        EdgeRecord(
            from_lat=edge.geometry[0][0],
            from_lng=edge.geometry[0][1],
            to_lat=edge.geometry[-1][0],
            to_lng=edge.geometry[-1][1],
            weight=risk,
        )
        for edge, risk in zip(path.edges, path.edge_risks)
    ]


def safest_route_response(result: RouteResult) -> SafestRouteResponse:
    return SafestRouteResponse(
        route=route_points(result.primary),
        edge_weights=edge_records(result.primary),
        all_paths=[edge_records(path) for path in result.candidates],
        all_path_scores=[path.risk_cost for path in result.candidates],
        alt_paths=[edge_records(path) for path in result.alternatives],
        alt_path_scores=[path.risk_cost for path in result.alternatives],
        base_cost=result.primary.base_cost,
        risk_cost=result.primary.risk_cost,
        alternatives_truncated=result.alternatives_truncated,
    )
