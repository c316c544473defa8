"""
Risk weighting: turns crime reports near an edge into a cost penalty.

For every report within radius_m of the edge polyline:

    contribution = multiplier * type_weight * severity * recency * falloff(d)

and the edge penalty is the sum of contributions (exactly 0.0 when no
report is nearby). The function is pure: the same edge, snapshot and
parameters always give the same value.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Tuple

from models.crime import CrimeReport
from services.safe_routing.geometry import XY
from services.safe_routing.settings import RiskParameters
from services.safe_routing.spatial_index import CrimeIndex

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class Contribution:
    report: CrimeReport
    distance_m: float
    weight: float


@dataclass(frozen=True)
class EdgeRisk:
    edge_id: int
    weight: float
    contributions: Tuple[Contribution, ...] = ()


def type_weight(report: CrimeReport, params: RiskParameters) -> float:
    weights = params.type_weights
    return weights.get(report.type.value, weights.get("other", 1.0))


def recency_factor(
    timestamp: datetime, as_of: datetime, params: RiskParameters
) -> float:
    age_days = max(0.0, (as_of - timestamp).total_seconds() / SECONDS_PER_DAY)
    for max_age, factor in params.recency_buckets:
        if age_days < max_age:
            return factor
    return params.recency_floor


def falloff(distance_m: float, params: RiskParameters) -> float:
    """Distance decay in [0, 1]; zero outside the radius."""
    if distance_m > params.radius_m:
        return 0.0
    if params.falloff == "flat":
        return 1.0
    if params.falloff == "inverse":
        return 1.0 / (1.0 + distance_m / params.sigma_m)
    return math.exp(-(distance_m * distance_m) / (2.0 * params.sigma_m**2))


def report_contribution(
    report: CrimeReport, distance_m: float, as_of: datetime, params: RiskParameters
) -> float:
    return (
        params.multiplier
        * type_weight(report, params)
        * max(report.severity, 0.0)
        * recency_factor(report.timestamp, as_of, params)
        * falloff(distance_m, params)
    )


def edge_risk(
    edge_id: int,
    polyline: Sequence[XY],
    crimes: CrimeIndex,
    params: RiskParameters,
) -> EdgeRisk:
    """Risk penalty of one edge against the request's crime snapshot."""
    as_of = crimes.snapshot.as_of
    contributions = []
    for report, distance in crimes.reports_near_polyline(polyline, params.radius_m):
        weight = report_contribution(report, distance, as_of, params)
        if weight > 0.0:
            contributions.append(Contribution(report, distance, weight))
    total = 0.0
    for contribution in contributions:
        total += contribution.weight
    return EdgeRisk(edge_id=edge_id, weight=total, contributions=tuple(contributions))
