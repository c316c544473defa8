# Run:
# uvicorn services.safe_routing.main:app --host 0.0.0.0 --port 20002 --reload
# Docs: http://127.0.0.1:20002/docs

import logging
import time
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Request
from fastapi.responses import JSONResponse

# Load environment variables from .env file before the config is read
load_dotenv()

from libs.config import config
from libs.fastapi_service import FastAPIServiceFactory, ServiceAppConfig
from libs.redis_client import get_redis_client
from services.safe_routing.crime_store import (
    CachedCrimeStore,
    CrimeReportStore,
    HttpCrimeStore,
    InMemoryCrimeStore,
)
from services.safe_routing.engine import SafeRoutingService
from services.safe_routing.errors import RoutingError, UpstreamDataUnavailable
from services.safe_routing.network_provider import FileNetworkProvider, NetworkRegistry
from services.safe_routing.schemas import (
    ContributionOut,
    CrimeCheckRequest,
    CrimeCheckResponse,
    EdgeBreakdownOut,
    ExplainResponse,
    NetworkRefreshRequest,
    NetworkRefreshResponse,
    RoutingFailure,
    SafestRouteRequest,
    SafestRouteResponse,
    route_points,
    safest_route_response,
)
from services.safe_routing.settings import EngineSettings

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "safe_routing"

_service: Optional[SafeRoutingService] = None


class UnconfiguredCrimeStore:
    """Fails every fetch: routing without crime data is never done silently."""

    async def fetch_reports(self, bounds, since, until):
        raise UpstreamDataUnavailable(
            "No crime report store configured "
            "(set SAFE_ROUTING_CRIME_STORE_URL or SAFE_ROUTING_CRIME_FILE)"
        )


def build_crime_store() -> CrimeReportStore:
    if not config.validate_crime_store_config():
        logger.warning("No crime report store configured; route requests will fail")
        return UnconfiguredCrimeStore()
    if config.CRIME_STORE_URL:
        store = HttpCrimeStore(config.CRIME_STORE_URL, config.CRIME_STORE_TIMEOUT_S)
    else:
        store = InMemoryCrimeStore.from_json_file(config.CRIME_FILE)
    if config.CRIME_CACHE_ENABLED:
        store = CachedCrimeStore(store, get_redis_client(), config.CRIME_CACHE_TTL_S)
    return store


def get_routing_service() -> SafeRoutingService:
    """Get the routing service instance (singleton, built on first request)."""
    global _service
    if _service is None:
        settings = EngineSettings.from_config(config)
        registry = NetworkRegistry(
            FileNetworkProvider(config.NETWORK_DIR),
            attempts=config.UPSTREAM_ATTEMPTS,
            backoff_s=config.UPSTREAM_BACKOFF_S,
        )
        _service = SafeRoutingService(
            registry,
            build_crime_store(),
            settings,
            upstream_attempts=config.UPSTREAM_ATTEMPTS,
            upstream_backoff_s=config.UPSTREAM_BACKOFF_S,
        )
        logger.info(
            f"Safe routing service ready: networks from {config.NETWORK_DIR}, "
            f"risk falloff={settings.risk.falloff} radius={settings.risk.radius_m} m"
        )
    return _service


def _health() -> dict:
    if _service is None:
        return {"networks": []}
    return {"networks": _service.registry.loaded()}


factory = FastAPIServiceFactory(
    ServiceAppConfig(
        title="Safe Routing Service",
        description="Crime-aware safest route, alternatives and route diagnostics.",
        service_name=SERVICE_NAME,
        health_probe=_health,
    )
)
app = factory.create_app()

# ========= Metrics =========

SAFE_ROUTE_REQUESTS_TOTAL = factory.add_business_metric(
    "safe_routing_route_requests_total",
    "Safest route computations by outcome",
    ["outcome"],
)
SAFE_ROUTE_ALTERNATIVES_TOTAL = factory.add_business_metric(
    "safe_routing_alternatives_total",
    "Alternative routes returned",
)
CRIME_CHECKS_TOTAL = factory.add_business_metric(
    "safe_routing_crime_checks_total",
    "Crime proximity checks by verdict",
    ["result"],
)
NETWORK_REFRESHES_TOTAL = factory.add_business_metric(
    "safe_routing_network_refreshes_total",
    "Out-of-band road network refreshes",
)
SEARCH_DURATION = factory.add_business_histogram(
    "safe_routing_search_duration_seconds",
    "Wall time of a route computation (network, crimes and search)",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

FAILURE_RESPONSES = {
    400: {"model": RoutingFailure},
    404: {"model": RoutingFailure},
    503: {"model": RoutingFailure},
    504: {"model": RoutingFailure},
}


@app.exception_handler(RoutingError)
async def routing_error_handler(request: Request, exc: RoutingError):
    logger.warning(
        f"{request.method} {request.url.path} failed: {exc.reason} - {exc.detail}"
    )
    if request.url.path == "/api/routes/safest":
        SAFE_ROUTE_REQUESTS_TOTAL.labels(outcome=exc.reason.lower()).inc()
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {"service": SERVICE_NAME, "status": "running"}


@app.post(
    "/api/routes/safest",
    response_model=SafestRouteResponse,
    responses=FAILURE_RESPONSES,
)
async def safest_route(
    body: SafestRouteRequest,
    service: SafeRoutingService = Depends(get_routing_service),
):
    start = time.perf_counter()
    result = await service.compute_route(body.to_route_request())
    SEARCH_DURATION.labels(operation="safest").observe(time.perf_counter() - start)
    SAFE_ROUTE_REQUESTS_TOTAL.labels(outcome="ok").inc()
    SAFE_ROUTE_ALTERNATIVES_TOTAL.inc(len(result.alternatives))
    logger.info(
        f"Safest route in {result.network_key}: {len(result.primary.edges)} edges, "
        f"base={result.primary.base_cost:.1f} risk={result.primary.risk_cost:.1f}, "
        f"{len(result.alternatives)} alternatives"
        + (" (truncated)" if result.alternatives_truncated else "")
    )
    return safest_route_response(result)


@app.post(
    "/api/routes/debug-crime-check",
    response_model=CrimeCheckResponse,
    responses=FAILURE_RESPONSES,
)
async def debug_crime_check(
    body: CrimeCheckRequest,
    service: SafeRoutingService = Depends(get_routing_service),
):
    start = time.perf_counter()
    check = await service.check_crime_proximity(
        body.to_route_request(), body.crime_lat, body.crime_lng
    )
    SEARCH_DURATION.labels(operation="debug_crime_check").observe(
        time.perf_counter() - start
    )
    result = "yes" if check.verdict.passes_near else "no"
    CRIME_CHECKS_TOTAL.labels(result=result).inc()
    route = safest_route_response(check.route)
    return CrimeCheckResponse(
        result=result,
        distance_m=check.verdict.distance_m,
        route=route.route,
        edge_weights=route.edge_weights,
        all_paths=route.all_paths,
        all_path_scores=route.all_path_scores,
        alt_paths=route.alt_paths,
        alt_path_scores=route.alt_path_scores,
    )


@app.post(
    "/api/routes/explain",
    response_model=ExplainResponse,
    responses=FAILURE_RESPONSES,
)
async def explain_route(
    body: SafestRouteRequest,
    service: SafeRoutingService = Depends(get_routing_service),
):
    explanation = await service.explain(body.to_route_request())
    primary = explanation.route.primary
    return ExplainResponse(
        route=route_points(primary),
        base_cost=primary.base_cost,
        risk_cost=primary.risk_cost,
        crime_reports=explanation.route.crime_count,
        edges=[
            EdgeBreakdownOut(
                edge_id=edge.edge_id,
                from_lat=edge.from_point[0],
                from_lng=edge.from_point[1],
                to_lat=edge.to_point[0],
                to_lng=edge.to_point[1],
                base_cost=edge.base_cost,
                risk_cost=edge.risk_cost,
                contributions=[
                    ContributionOut(
                        report_id=c.report_id,
                        crime_type=c.crime_type,
                        distance_m=c.distance_m,
                        weight=c.weight,
                    )
                    for c in edge.contributions
                ],
            )
            for edge in explanation.edges
        ],
    )


@app.post(
    "/api/network/refresh",
    response_model=NetworkRefreshResponse,
    responses=FAILURE_RESPONSES,
)
async def refresh_network(
    body: NetworkRefreshRequest,
    service: SafeRoutingService = Depends(get_routing_service),
):
    refreshed = await service.refresh_networks(body.district, body.network_type)
    NETWORK_REFRESHES_TOTAL.inc()
    return NetworkRefreshResponse(refreshed=refreshed)
