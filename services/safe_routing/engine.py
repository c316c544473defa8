"""
Safe routing engine.

SafeRoutingEngine is the synchronous, CPU-bound core: given a road network,
a crime snapshot and a request it snaps, searches and generates
alternatives. SafeRoutingService wraps it with the I/O around a request:
region lookup, network registry, crime store with retry, and a worker
thread for the search.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from models.crime import CrimeSnapshot
from models.network import RoadNetwork, TravelMode
from models.route import PathKind, RouteRequest, RouteResult
from services.safe_routing.alternatives import generate_alternatives
from services.safe_routing.crime_store import (
    CrimeReportStore,
    build_snapshot,
    fetch_with_retry,
)
from services.safe_routing.diagnostics import (
    EdgeBreakdown,
    ProximityVerdict,
    check_crime_proximity,
    explain_path,
)
from services.safe_routing.errors import InvalidCoordinates
from services.safe_routing.graph_view import WeightedGraphView
from services.safe_routing.network_provider import NetworkRegistry
from services.safe_routing.regions import District, RegionCatalog
from services.safe_routing.search import SearchBudget, astar
from services.safe_routing.settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Explanation:
    route: RouteResult
    edges: List[EdgeBreakdown]


@dataclass(frozen=True)
class ProximityCheck:
    verdict: ProximityVerdict
    route: RouteResult


class SafeRoutingEngine:
    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def view(
        self, network: RoadNetwork, mode: TravelMode, snapshot: CrimeSnapshot
    ) -> WeightedGraphView:
        crimes = network.index.crime_index(snapshot)
        return WeightedGraphView(network, mode, crimes, self.settings.risk)

    def budget(self, request: RouteRequest) -> SearchBudget:
        budget_ms = request.budget_ms or self.settings.budget_ms
        return SearchBudget.from_ms(budget_ms, self.settings.max_expansions)

    def snap(self, view: WeightedGraphView, request: RouteRequest) -> Tuple[int, int]:
        max_snap = self.settings.max_snap_m
        start, start_dist = view.snap(request.start_lat, request.start_lng, max_snap)
        goal, goal_dist = view.snap(request.end_lat, request.end_lng, max_snap)
        logger.debug(
            f"Snapped start to node {start} ({start_dist:.1f} m), "
            f"end to node {goal} ({goal_dist:.1f} m)"
        )
        return start, goal

    def compute(
        self,
        network: RoadNetwork,
        request: RouteRequest,
        snapshot: CrimeSnapshot,
        *,
        kind: PathKind = PathKind.PRIMARY,
        alternatives: Optional[int] = None,
    ) -> RouteResult:
        """
        Safest route plus alternatives for one request.

        Raises:
            InvalidCoordinates: an end point does not snap onto the network
            NoPathFound: no route under the requested mode
            RouteTimeout: the primary search ran out of budget
        """
        view = self.view(network, request.mode, snapshot)
        return self.search(view, request, kind=kind, alternatives=alternatives)

    def search(
        self,
        view: WeightedGraphView,
        request: RouteRequest,
        *,
        kind: PathKind = PathKind.PRIMARY,
        alternatives: Optional[int] = None,
    ) -> RouteResult:
        """Same as compute, over a view the caller already built."""
        network = view.network
        start, goal = self.snap(view, request)
        budget = self.budget(request)

        primary = astar(view, start, goal, kind=kind, budget=budget)
        if alternatives is None:
            alternatives = request.alternatives
        generated = generate_alternatives(
            view,
            start,
            goal,
            primary.path,
            self.settings.alternatives,
            count=alternatives,
            budget=budget,
        )
        return RouteResult(
            primary=primary.path,
            alternatives=generated.accepted,
            candidates=(primary.path,) + generated.candidates,
            alternatives_truncated=generated.truncated,
            network_key=network.key,
            crime_count=len(view.crimes),
            expanded_nodes=primary.expanded + generated.expanded,
        )

    def explain(
        self, network: RoadNetwork, request: RouteRequest, snapshot: CrimeSnapshot
    ) -> Explanation:
        """Primary route with the per-edge base/risk breakdown."""
        view = self.view(network, request.mode, snapshot)
        result = self.search(view, request, kind=PathKind.DEBUG, alternatives=0)
        return Explanation(route=result, edges=explain_path(view, result.primary))

    def check_crime_proximity(
        self,
        network: RoadNetwork,
        request: RouteRequest,
        snapshot: CrimeSnapshot,
        crime_lat: float,
        crime_lng: float,
    ) -> ProximityCheck:
        view = self.view(network, request.mode, snapshot)
        result = self.search(view, request)
        verdict = check_crime_proximity(
            view, result.primary, crime_lat, crime_lng, self.settings.proximity_m
        )
        return ProximityCheck(verdict=verdict, route=result)


def _check_coordinate(lat: float, lng: float, label: str) -> None:
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinates(f"{label} coordinate is not a number")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise InvalidCoordinates(f"{label} coordinate ({lat}, {lng}) is out of range")


class SafeRoutingService:
    """Async front of the engine: one instance per running app."""

    def __init__(
        self,
        registry: NetworkRegistry,
        crime_store: CrimeReportStore,
        settings: Optional[EngineSettings] = None,
        region: Optional[RegionCatalog] = None,
        *,
        upstream_attempts: int = 3,
        upstream_backoff_s: float = 0.2,
    ):
        self.registry = registry
        self.crime_store = crime_store
        self.engine = SafeRoutingEngine(settings)
        self.region = region or RegionCatalog()
        self.upstream_attempts = upstream_attempts
        self.upstream_backoff_s = upstream_backoff_s

    @property
    def settings(self) -> EngineSettings:
        return self.engine.settings

    def resolve_district(self, request: RouteRequest) -> District:
        """District whose graph serves the request (the one holding the start)."""
        _check_coordinate(request.start_lat, request.start_lng, "Start")
        _check_coordinate(request.end_lat, request.end_lng, "End")
        district = self.region.find_district(request.start_lat, request.start_lng)
        if district is None:
            raise InvalidCoordinates(
                f"Start ({request.start_lat}, {request.start_lng}) is outside "
                f"the serviceable region"
            )
        if not self.region.contains(request.end_lat, request.end_lng):
            raise InvalidCoordinates(
                f"End ({request.end_lat}, {request.end_lng}) is outside "
                f"the serviceable region"
            )
        return district

    async def snapshot_for(self, district: District, as_of: datetime) -> CrimeSnapshot:
        lookback = self.settings.lookback_days
        bounds = district.expanded(self.settings.risk.radius_m)
        reports = await fetch_with_retry(
            self.crime_store,
            bounds,
            as_of - timedelta(days=lookback),
            as_of,
            attempts=self.upstream_attempts,
            backoff_s=self.upstream_backoff_s,
        )
        return build_snapshot(reports, as_of, lookback, bounds)

    async def prepare(self, request: RouteRequest) -> Tuple[RoadNetwork, CrimeSnapshot]:
        district = self.resolve_district(request)
        network = await run_in_threadpool(self.registry.get, district.name, request.mode)
        as_of = request.as_of or datetime.now(timezone.utc)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        snapshot = await self.snapshot_for(district, as_of)
        logger.info(
            f"Routing in {network.key}: {network.node_count} nodes, "
            f"{len(snapshot)} crime reports as of {as_of.isoformat()}"
        )
        return network, snapshot

    async def compute_route(self, request: RouteRequest) -> RouteResult:
        network, snapshot = await self.prepare(request)
        return await run_in_threadpool(self.engine.compute, network, request, snapshot)

    async def explain(self, request: RouteRequest) -> Explanation:
        network, snapshot = await self.prepare(request)
        return await run_in_threadpool(self.engine.explain, network, request, snapshot)

    async def check_crime_proximity(
        self, request: RouteRequest, crime_lat: float, crime_lng: float
    ) -> ProximityCheck:
        _check_coordinate(crime_lat, crime_lng, "Crime")
        network, snapshot = await self.prepare(request)
        return await run_in_threadpool(
            self.engine.check_crime_proximity,
            network,
            request,
            snapshot,
            crime_lat,
            crime_lng,
        )

    async def refresh_networks(
        self, district: Optional[str] = None, mode: Optional[TravelMode] = None
    ) -> List[str]:
        name = None
        if district is not None:
            found = self.region.get(district)
            if found is None:
                raise InvalidCoordinates(f"Unknown district: {district}")
            name = found.name
        return await run_in_threadpool(self.registry.refresh, name, mode)
