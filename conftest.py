"""
Shared test fixtures for the safe routing service.

Test graphs are laid out in metres east/north of a point in central Dhaka
so every coordinate resolves to the Dhaka district:
- meters(east, north) converts a local offset to (lat, lng)
- graph_document / build_network turn a small node/edge description into
  a provider document or a ready RoadNetwork
- crime_at / snapshot_of build crime reports and snapshots at a fixed as_of
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from common.constants import EARTH_RADIUS_M
from models.crime import CrimeReport, CrimeSnapshot, CrimeType
from services.safe_routing.network_provider import build_road_network
from services.safe_routing.settings import EngineSettings, RiskParameters

BASE_LAT = 23.75
BASE_LNG = 90.39
AS_OF = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def offset(east_m: float, north_m: float) -> Tuple[float, float]:
    lat = BASE_LAT + math.degrees(north_m / EARTH_RADIUS_M)
    lng = BASE_LNG + math.degrees(
        east_m / (EARTH_RADIUS_M * math.cos(math.radians(BASE_LAT)))
    )
    return lat, lng


def make_document(
    nodes: Dict[int, Tuple[float, float]], edges: List[dict]
) -> dict:
    """
    nodes: id -> (east_m, north_m)
    edges: {"from", "to", "cost"?, "via"?: [(east, north), ...], "modes"?}
    """
    document_nodes = []
    for node_id, (east, north) in nodes.items():
        lat, lng = offset(east, north)
        document_nodes.append({"id": node_id, "lat": lat, "lng": lng})
    document_edges = []
    for item in edges:
        points = [nodes[item["from"]], *item.get("via", ()), nodes[item["to"]]]
        raw = {
            "from": item["from"],
            "to": item["to"],
            "geometry": [list(offset(east, north)) for east, north in points],
        }
        for key in ("cost", "length", "modes"):
            if key in item:
                raw[key] = item[key]
        document_edges.append(raw)
    return {"nodes": document_nodes, "edges": document_edges}


def two_way(a: int, b: int, **extra) -> List[dict]:
    return [{"from": a, "to": b, **extra}, {"from": b, "to": a, **extra}]


@pytest.fixture
def meters():
    return offset


@pytest.fixture
def graph_document():
    return make_document


@pytest.fixture
def build_network():
    def _build(nodes, edges, key: str = "dhaka_walk"):
        return build_road_network(key, make_document(nodes, edges), district="Dhaka")

    return _build


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def crime_at():
    counter = {"n": 0}

    def _crime(
        east_m: float,
        north_m: float,
        crime_type: str = "other",
        severity: float = 1.0,
        age: timedelta = timedelta(0),
        report_id: Optional[str] = None,
    ) -> CrimeReport:
        counter["n"] += 1
        lat, lng = offset(east_m, north_m)
        return CrimeReport(
            id=report_id or f"crime-{counter['n']}",
            lat=lat,
            lng=lng,
            type=CrimeType.parse(crime_type),
            timestamp=AS_OF - age,
            severity=severity,
        )

    return _crime


@pytest.fixture
def snapshot_of():
    def _snapshot(*reports: CrimeReport) -> CrimeSnapshot:
        return CrimeSnapshot(reports=tuple(reports), as_of=AS_OF)

    return _snapshot


@pytest.fixture
def flat_risk():
    """Risk model where a report adds exactly its severity inside 30 m."""
    return RiskParameters(radius_m=30.0, multiplier=1.0, falloff="flat")


@pytest.fixture
def engine_settings(flat_risk):
    return EngineSettings(risk=flat_risk)


@pytest.fixture
def abc_nodes():
    """A, B, C on a line 100 m apart."""
    return {1: (0.0, 0.0), 2: (100.0, 0.0), 3: (200.0, 0.0)}


@pytest.fixture
def abc_edges():
    """A->B and B->C cost 1, direct A->C cost 3 around a 300 m detour."""
    return [
        {"from": 1, "to": 2, "cost": 1.0},
        {"from": 2, "to": 3, "cost": 1.0},
        {"from": 1, "to": 3, "cost": 3.0, "via": [(0.0, 300.0), (200.0, 300.0)]},
    ]


@pytest.fixture
def abc_network(build_network, abc_nodes, abc_edges):
    return build_network(abc_nodes, abc_edges)


@pytest.fixture
def grid_network(build_network):
    """
    3x3 two-way street grid, 100 m blocks, edges cost their length.

        7 - 8 - 9
        |   |   |
        4 - 5 - 6
        |   |   |
        1 - 2 - 3
    """
    nodes = {}
    for row in range(3):
        for col in range(3):
            nodes[row * 3 + col + 1] = (col * 100.0, row * 100.0)
    edges = []
    for row in range(3):
        for col in range(3):
            node_id = row * 3 + col + 1
            if col < 2:
                edges += two_way(node_id, node_id + 1)
            if row < 2:
                edges += two_way(node_id, node_id + 3)
    return build_network(nodes, edges)
