"""
Safest-path search (A*).

Frontier entries are ordered by (cost so far + heuristic, edge count,
discovery order), so equal-cost paths resolve to the one with fewer edges and
then to the one found first. The heuristic is consistent, so a node's cost is
final the first time it is popped.
"""

import heapq
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from models.network import Edge
from models.route import Path, PathKind
from services.safe_routing.errors import NoPathFound, RouteTimeout
from services.safe_routing.graph_view import WeightedGraphView

logger = logging.getLogger(__name__)


def _same_cost(a: float, b: float) -> bool:
    return abs(a - b) <= 1e-9 * max(1.0, abs(a), abs(b))


def _improves(cost: float, n_hops: int, known_cost: float, known_hops: int) -> bool:
    if _same_cost(cost, known_cost):
        return n_hops < known_hops
    return cost < known_cost


@dataclass(frozen=True)
class SearchBudget:
    """Wall-clock deadline (time.monotonic) and/or node expansion cap."""

    deadline: Optional[float] = None
    max_expansions: Optional[int] = None

    @classmethod
    def from_ms(
        cls, budget_ms: Optional[int], max_expansions: Optional[int] = None
    ) -> "SearchBudget":
        deadline = None
        if budget_ms is not None:
            deadline = time.monotonic() + budget_ms / 1000.0
        return cls(deadline=deadline, max_expansions=max_expansions)

    def check(self, expanded: int) -> None:
        if self.max_expansions is not None and expanded > self.max_expansions:
            raise RouteTimeout(
                f"Search exceeded {self.max_expansions} node expansions",
                context={"expanded": expanded},
            )
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise RouteTimeout(
                "Search exceeded its time budget", context={"expanded": expanded}
            )


@dataclass(frozen=True)
class SearchResult:
    path: Path
    search_cost: float
    expanded: int


def astar(
    view: WeightedGraphView,
    start: int,
    goal: int,
    *,
    kind: PathKind = PathKind.PRIMARY,
    budget: Optional[SearchBudget] = None,
) -> SearchResult:
    """
    Find the minimum-cost path from start to goal under view.cost.

    Args:
        view: weighted graph view (mode filter, risk, penalties)
        start: snapped start node id
        goal: snapped goal node id
        kind: kind tag for the returned path
        budget: optional deadline / expansion cap

    Returns:
        SearchResult whose path carries the un-penalised cost breakdown

    Raises:
        NoPathFound: the frontier emptied before reaching goal
        RouteTimeout: the budget ran out
    """
    origin = view.network.nodes[start].coordinate
    if start == goal:
        return SearchResult(view.price((), kind, origin=origin), 0.0, 0)

    g_score: Dict[int, float] = {start: 0.0}
    hops: Dict[int, int] = {start: 0}
    came_from: Dict[int, Edge] = {}
    closed = set()
    seq = itertools.count()
    frontier = [(view.heuristic(start, goal), 0, next(seq), start)]
    expanded = 0

    while frontier:
        _, _, _, node = heapq.heappop(frontier)
        if node in closed:
            continue
        if node == goal:
            edges = _reconstruct(came_from, start, goal)
            logger.debug(
                f"A* reached goal {goal} from {start}: {len(edges)} edges, "
                f"{expanded} expansions"
            )
            return SearchResult(
                view.price(edges, kind, origin=origin), g_score[goal], expanded
            )
        closed.add(node)
        expanded += 1
        if budget is not None:
            budget.check(expanded)

        base = g_score[node]
        next_hops = hops[node] + 1
        for edge in view.neighbors(node):
            neighbor = edge.target
            if neighbor in closed:
                continue
            tentative = base + view.cost(edge)
            if neighbor not in g_score or _improves(
                tentative, next_hops, g_score[neighbor], hops[neighbor]
            ):
                g_score[neighbor] = tentative
                hops[neighbor] = next_hops
                came_from[neighbor] = edge
                heapq.heappush(
                    frontier,
                    (
                        tentative + view.heuristic(neighbor, goal),
                        next_hops,
                        next(seq),
                        neighbor,
                    ),
                )

    raise NoPathFound(
        f"No {view.mode.value} route between nodes {start} and {goal}",
        context={"start": start, "goal": goal, "expanded": expanded},
    )


def _reconstruct(came_from: Dict[int, Edge], start: int, goal: int) -> List[Edge]:
    edges: List[Edge] = []
    node = goal
    while node != start:
        edge = came_from[node]
        edges.append(edge)
        node = edge.source
    edges.reverse()
    return edges
