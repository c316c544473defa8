"""
Alternative-path generation by iterative penalty re-search.

After each accepted path every edge it uses becomes penalty_factor times more
expensive (penalties compound), and A* runs again on the penalised view. A
candidate is accepted only while its edge overlap with every accepted path,
measured both ways, stays under overlap_threshold. Scores reported for
candidates are always the un-penalised costs.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from models.route import Path, PathKind
from services.safe_routing.errors import NoPathFound, RouteTimeout
from services.safe_routing.graph_view import WeightedGraphView
from services.safe_routing.search import SearchBudget, astar
from services.safe_routing.settings import AlternativeParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlternativeSet:
    accepted: Tuple[Path, ...] = ()
    candidates: Tuple[Path, ...] = ()
    truncated: bool = False
    attempts: int = 0
    expanded: int = 0


def overlap(a: Path, b: Path) -> float:
    """Symmetric edge overlap: the larger of the two directed shares."""
    return max(a.overlap_with(b), b.overlap_with(a))


def is_distinct(candidate: Path, accepted: List[Path], threshold: float) -> bool:
    return all(overlap(candidate, path) < threshold for path in accepted)


def _penalise(penalties: Dict[int, float], path: Path, factor: float) -> None:
    for edge_id in path.edge_ids:
        penalties[edge_id] = penalties.get(edge_id, 1.0) * factor


def generate_alternatives(
    view: WeightedGraphView,
    start: int,
    goal: int,
    primary: Path,
    params: AlternativeParameters,
    *,
    count: Optional[int] = None,
    budget: Optional[SearchBudget] = None,
) -> AlternativeSet:
    """
    Produce up to count structurally distinct alternatives to primary.

    Generation stops when count alternatives are accepted, the attempt cap
    (count * attempt_multiplier) is reached, a search returns a path already
    seen, a candidate is rejected (when stop_on_rejection is set), or the
    budget runs out. Only the last case marks the set as truncated.
    """
    wanted = params.count if count is None else count
    if wanted <= 0 or not primary.edges:
        return AlternativeSet()

    accepted: List[Path] = [primary]
    alternatives: List[Path] = []
    candidates: List[Path] = []
    penalties: Dict[int, float] = {}
    _penalise(penalties, primary, params.penalty_factor)
    seen = {primary.edge_ids}
    max_attempts = wanted * params.attempt_multiplier
    attempts = 0
    expanded = 0
    truncated = False

    while len(alternatives) < wanted and attempts < max_attempts:
        attempts += 1
        try:
            result = astar(
                view.with_penalties(penalties),
                start,
                goal,
                kind=PathKind.CANDIDATE,
                budget=budget,
            )
        except RouteTimeout as e:
            logger.warning(
                f"Alternative search stopped after {len(alternatives)} "
                f"alternatives: {e.detail}"
            )
            truncated = True
            break
        except NoPathFound:
            break
        expanded += result.expanded
        candidate = result.path
        if candidate.edge_ids in seen:
            break
        seen.add(candidate.edge_ids)

        if is_distinct(candidate, accepted, params.overlap_threshold):
            alternative = candidate.as_kind(PathKind.ALTERNATIVE)
            alternatives.append(alternative)
            accepted.append(alternative)
            candidates.append(alternative)
            _penalise(penalties, alternative, params.penalty_factor)
        else:
            candidates.append(candidate)
            if params.stop_on_rejection:
                break
            _penalise(penalties, candidate, params.penalty_factor)

    logger.debug(
        f"Generated {len(alternatives)}/{wanted} alternatives in {attempts} attempts"
    )
    return AlternativeSet(
        accepted=tuple(alternatives),
        candidates=tuple(candidates),
        truncated=truncated,
        attempts=attempts,
        expanded=expanded,
    )
