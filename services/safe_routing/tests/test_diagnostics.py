# pytest services/safe_routing/tests/test_diagnostics.py -q

import pytest

from models.network import TravelMode
from models.route import PathKind
from services.safe_routing.diagnostics import (
    check_crime_proximity,
    explain_path,
    route_distance_m,
)
from services.safe_routing.graph_view import WeightedGraphView
from services.safe_routing.search import astar

pytestmark = pytest.mark.unit

THRESHOLD_M = 50.0
EPSILON_M = 0.01


@pytest.fixture
def straight_network(build_network):
    """One 400 m street running due east, in two blocks."""
    nodes = {1: (0.0, 0.0), 2: (200.0, 0.0), 3: (400.0, 0.0)}
    return build_network(nodes, [{"from": 1, "to": 2}, {"from": 2, "to": 3}])


@pytest.fixture
def straight_route(straight_network, snapshot_of, flat_risk):
    view = WeightedGraphView(
        straight_network,
        TravelMode.WALK,
        straight_network.index.crime_index(snapshot_of()),
        flat_risk,
    )
    return view, astar(view, 1, 3).path


@pytest.mark.parametrize(
    "north_m, expected",
    [
        (0.0, True),
        (THRESHOLD_M - EPSILON_M, True),
        (THRESHOLD_M + EPSILON_M, False),
        (-(THRESHOLD_M - EPSILON_M), True),
        (-(THRESHOLD_M + EPSILON_M), False),
    ],
)
def test_proximity_boundary(straight_route, meters, north_m, expected):
    view, path = straight_route
    lat, lng = meters(150.0, north_m)

    verdict = check_crime_proximity(view, path, lat, lng, THRESHOLD_M)

    assert verdict.passes_near is expected
    assert verdict.distance_m == pytest.approx(abs(north_m), abs=1e-4)
    assert verdict.threshold_m == THRESHOLD_M


def test_proximity_beyond_route_end(straight_route, meters):
    view, path = straight_route
    near_lat, near_lng = meters(400.0 + THRESHOLD_M - EPSILON_M, 0.0)
    far_lat, far_lng = meters(400.0 + THRESHOLD_M + EPSILON_M, 0.0)

    assert check_crime_proximity(view, path, near_lat, near_lng, THRESHOLD_M).passes_near
    assert not check_crime_proximity(view, path, far_lat, far_lng, THRESHOLD_M).passes_near


def test_proximity_ignores_crime_snapshot(
    straight_network, crime_at, snapshot_of, flat_risk, meters
):
    # A reported crime far away does not affect the verdict for a nearby point
    view = WeightedGraphView(
        straight_network,
        TravelMode.WALK,
        straight_network.index.crime_index(snapshot_of(crime_at(100.0, 500.0))),
        flat_risk,
    )
    path = astar(view, 1, 3).path
    lat, lng = meters(100.0, 10.0)

    assert check_crime_proximity(view, path, lat, lng, THRESHOLD_M).passes_near


def test_empty_route_measures_from_its_node(straight_route, meters):
    view, _ = straight_route
    path = astar(view, 2, 2).path
    lat, lng = meters(200.0, 30.0)

    assert route_distance_m(view, path, lat, lng) == pytest.approx(30.0, abs=1e-3)


def test_explain_lists_contributions(abc_network, crime_at, snapshot_of, flat_risk):
    report = crime_at(50.0, 0.0, crime_type="theft", severity=2.0, report_id="r-1")
    view = WeightedGraphView(
        abc_network,
        TravelMode.WALK,
        abc_network.index.crime_index(snapshot_of(report)),
        flat_risk,
    )
    path = view.price([abc_network.edge(0), abc_network.edge(1)], PathKind.DEBUG)

    breakdown = explain_path(view, path)

    assert [edge.edge_id for edge in breakdown] == [0, 1]
    first, second = breakdown
    assert first.base_cost == 1.0
    assert first.risk_cost == pytest.approx(6.0)
    assert [(c.report_id, c.crime_type) for c in first.contributions] == [("r-1", "theft")]
    assert first.contributions[0].distance_m == pytest.approx(0.0, abs=1e-6)
    assert second.risk_cost == 0.0
    assert second.contributions == ()
    assert sum(edge.risk_cost for edge in breakdown) == pytest.approx(path.risk_cost)
