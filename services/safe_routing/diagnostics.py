"""
Diagnostics: per-edge cost breakdown and the "passes near crime" check.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from models.network import LatLng
from models.route import Path
from services.safe_routing.geometry import point_polyline_distance
from services.safe_routing.graph_view import WeightedGraphView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContributionDetail:
    report_id: str
    crime_type: str
    distance_m: float
    weight: float


@dataclass(frozen=True)
class EdgeBreakdown:
    edge_id: int
    from_point: LatLng
    to_point: LatLng
    base_cost: float
    risk_cost: float
    contributions: Tuple[ContributionDetail, ...]


@dataclass(frozen=True)
class ProximityVerdict:
    passes_near: bool
    distance_m: Optional[float]
    threshold_m: float


def explain_path(view: WeightedGraphView, path: Path) -> List[EdgeBreakdown]:
    """Base cost, risk cost and contributing reports for every edge of path."""
    breakdown = []
    for edge in path.edges:
        risk = view.edge_risk(edge)
        breakdown.append(
            EdgeBreakdown(
                edge_id=edge.id,
                from_point=edge.geometry[0],
                to_point=edge.geometry[-1],
                base_cost=edge.base_cost,
                risk_cost=risk.weight,
                contributions=tuple(
                    ContributionDetail(
                        report_id=c.report.id,
                        crime_type=c.report.type.value,
                        distance_m=c.distance_m,
                        weight=c.weight,
                    )
                    for c in risk.contributions
                ),
            )
        )
    return breakdown


def route_distance_m(
    view: WeightedGraphView, path: Path, lat: float, lng: float
) -> Optional[float]:
    """Minimum planar distance (metres) from a point to the path polyline."""
    points = path.points()
    if not points:
        return None
    index = view.network.index
    polyline = [index.to_xy(p_lat, p_lng) for p_lat, p_lng in points]
    return point_polyline_distance(index.to_xy(lat, lng), polyline)


def check_crime_proximity(
    view: WeightedGraphView,
    path: Path,
    crime_lat: float,
    crime_lng: float,
    threshold_m: float,
) -> ProximityVerdict:
    """
    Decide whether path passes within threshold_m of a point.

    The boundary is inclusive: a point exactly threshold_m away counts as
    near. The point does not need to be part of the crime snapshot.
    """
    distance = route_distance_m(view, path, crime_lat, crime_lng)
    passes_near = distance is not None and distance <= threshold_m
    logger.debug(
        f"Proximity check ({crime_lat}, {crime_lng}): distance={distance}, "
        f"threshold={threshold_m}, near={passes_near}"
    )
    return ProximityVerdict(
        passes_near=passes_near, distance_m=distance, threshold_m=threshold_m
    )
