# pytest services/safe_routing/tests/test_search.py -q

import heapq
import math
import random
import time

import pytest

from models.network import TravelMode
from models.route import PathKind
from services.safe_routing.errors import NoPathFound, RouteTimeout
from services.safe_routing.graph_view import WeightedGraphView
from services.safe_routing.search import SearchBudget, astar
from services.safe_routing.settings import RiskParameters

pytestmark = pytest.mark.unit


def _view(network, snapshot, risk):
    return WeightedGraphView(
        network, TravelMode.WALK, network.index.crime_index(snapshot), risk
    )


def _dijkstra(network, source, cost, reverse=False):
    """Plain Dijkstra over every edge; reverse=True gives distances *to* source."""
    links = {}
    for edge in network.edges:
        head, tail = (edge.target, edge.source) if reverse else (edge.source, edge.target)
        links.setdefault(head, []).append((tail, edge))
    dist = {source: 0.0}
    heap = [(0.0, source)]
    done = set()
    while heap:
        d, node = heapq.heappop(heap)
        if node in done:
            continue
        done.add(node)
        for other, edge in links.get(node, ()):
            candidate = d + cost(edge)
            if candidate < dist.get(other, math.inf):
                dist[other] = candidate
                heapq.heappush(heap, (candidate, other))
    return dist


def _random_network(build_network, rng, n_nodes=25, n_edges=70):
    nodes = {
        i: (rng.uniform(0.0, 1500.0), rng.uniform(0.0, 1500.0))
        for i in range(1, n_nodes + 1)
    }
    edges = []
    for _ in range(n_edges):
        a, b = rng.sample(sorted(nodes), 2)
        chord = math.dist(nodes[a], nodes[b])
        # Some costs fall well below the straight-line distance
        edges.append({"from": a, "to": b, "cost": chord * rng.uniform(0.2, 2.0)})
    return build_network(nodes, edges)


class TestEndToEnd:
    def test_crime_on_short_edge_picks_direct_edge(
        self, abc_network, crime_at, snapshot_of, flat_risk
    ):
        view = _view(abc_network, snapshot_of(crime_at(50.0, 0.0, severity=5.0)), flat_risk)
        result = astar(view, 1, 3)

        assert result.path.node_ids == [1, 3]
        assert result.path.total_cost == pytest.approx(3.0)
        assert result.path.risk_cost == 0.0
        assert result.path.kind is PathKind.PRIMARY

    def test_without_crime_picks_cheapest_line(self, abc_network, snapshot_of, flat_risk):
        result = astar(_view(abc_network, snapshot_of(), flat_risk), 1, 3)

        assert result.path.node_ids == [1, 2, 3]
        assert result.path.total_cost == pytest.approx(2.0)


def test_start_equals_goal_gives_empty_path(abc_network, snapshot_of, flat_risk):
    result = astar(_view(abc_network, snapshot_of(), flat_risk), 2, 2)

    assert result.path.edges == ()
    assert result.path.total_cost == 0.0
    assert result.path.points() == [abc_network.node(2).coordinate]


def test_no_path_against_edge_direction(abc_network, snapshot_of, flat_risk):
    with pytest.raises(NoPathFound) as exc_info:
        astar(_view(abc_network, snapshot_of(), flat_risk), 3, 1)
    assert exc_info.value.status_code == 404


class TestTieBreaking:
    def test_fewer_edges_wins_equal_cost(self, build_network, snapshot_of, flat_risk):
        nodes = {1: (0.0, 0.0), 2: (50.0, 50.0), 3: (100.0, 0.0)}
        edges = [
            {"from": 1, "to": 2, "cost": 1.0},
            {"from": 2, "to": 3, "cost": 1.0},
            {"from": 1, "to": 3, "cost": 2.0},
        ]
        network = build_network(nodes, edges)
        result = astar(_view(network, snapshot_of(), flat_risk), 1, 3)

        assert result.path.edge_ids == (2,)

    def test_first_discovered_wins_equal_cost_and_hops(
        self, build_network, snapshot_of, flat_risk
    ):
        nodes = {1: (0.0, 0.0), 2: (100.0, 0.0)}
        edges = [
            {"from": 1, "to": 2, "cost": 5.0, "via": [(50.0, 40.0)]},
            {"from": 1, "to": 2, "cost": 5.0, "via": [(50.0, -40.0)]},
        ]
        network = build_network(nodes, edges)
        view = _view(network, snapshot_of(), flat_risk)

        assert astar(view, 1, 2).path.edge_ids == (0,)
        assert astar(view, 1, 2).path.edge_ids == (0,)


class TestBudget:
    def test_expansion_cap(self, grid_network, snapshot_of, flat_risk):
        budget = SearchBudget(max_expansions=1)
        with pytest.raises(RouteTimeout) as exc_info:
            astar(_view(grid_network, snapshot_of(), flat_risk), 1, 9, budget=budget)
        assert exc_info.value.reason == "TIMEOUT"
        assert exc_info.value.status_code == 504

    def test_expired_deadline(self, grid_network, snapshot_of, flat_risk):
        budget = SearchBudget(deadline=time.monotonic() - 1.0)
        with pytest.raises(RouteTimeout):
            astar(_view(grid_network, snapshot_of(), flat_risk), 1, 9, budget=budget)

    def test_generous_budget_finds_route(self, grid_network, snapshot_of, flat_risk):
        budget = SearchBudget.from_ms(10_000, max_expansions=1000)
        result = astar(_view(grid_network, snapshot_of(), flat_risk), 1, 9, budget=budget)
        assert len(result.path.edges) == 4
        assert result.expanded > 0


@pytest.mark.parametrize("seed", range(12))
def test_heuristic_never_overestimates(build_network, snapshot_of, flat_risk, seed):
    rng = random.Random(seed)
    network = _random_network(build_network, rng)
    view = _view(network, snapshot_of(), flat_risk)
    goal = rng.choice(sorted(network.nodes))

    remaining = _dijkstra(network, goal, lambda e: e.base_cost, reverse=True)

    for node_id, true_remaining in remaining.items():
        assert view.heuristic(node_id, goal) <= true_remaining + 1e-6


@pytest.mark.parametrize("seed", range(8))
def test_astar_matches_dijkstra_with_crime(
    build_network, crime_at, snapshot_of, seed
):
    rng = random.Random(1000 + seed)
    network = _random_network(build_network, rng)
    reports = [
        crime_at(rng.uniform(0, 1500), rng.uniform(0, 1500), crime_type="robbery")
        for _ in range(30)
    ]
    view = _view(network, snapshot_of(*reports), RiskParameters(radius_m=80.0))
    start, goal = rng.sample(sorted(network.nodes), 2)

    best = _dijkstra(network, start, view.true_cost)
    if goal not in best:
        with pytest.raises(NoPathFound):
            astar(view, start, goal)
        return

    result = astar(view, start, goal)
    assert result.path.total_cost == pytest.approx(best[goal], rel=1e-9)
    assert result.path.risk_cost == pytest.approx(sum(result.path.edge_risks))
    assert len(set(result.path.edge_ids)) == len(result.path.edges)
    for first, second in zip(result.path.edges, result.path.edges[1:]):
        assert first.target == second.source
