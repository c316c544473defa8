"""
FastAPI service factory for SafeRoute services.
Creates the app with CORS, /health, Prometheus /metrics and request metrics,
so a service module only registers its own routes.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


def _route_path(request: Request) -> str:
    """Route template ("/api/routes/safest") rather than the raw URL."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class ServiceMetrics:
    """Prometheus metrics of one service, kept in a private registry."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.registry = CollectorRegistry()

        # Names carry the service prefix, e.g. safe_routing_http_requests_total
        self.http_requests = Counter(
            f"{service_name}_http_requests_total",
            f"HTTP requests handled by {service_name}, by route template",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.http_latency = Histogram(
            f"{service_name}_http_request_seconds",
            f"End-to-end HTTP latency of {service_name}",
            ["method", "path"],
            registry=self.registry,
        )

    def record_request(self, method: str, path: str, status: int, seconds: float):
        self.http_requests.labels(method=method, path=path, status=str(status)).inc()
        self.http_latency.labels(method=method, path=path).observe(seconds)

    def render(self) -> bytes:
        return generate_latest(self.registry)


class CORSMiddlewareConfig:
    def __init__(
        self,
        allow_origins: Optional[List[str]] = None,
        allow_credentials: bool = True,
        allow_methods: Optional[List[str]] = None,
        allow_headers: Optional[List[str]] = None,
    ):
        self.allow_origins = allow_origins or ["*"]
        self.allow_credentials = allow_credentials
        self.allow_methods = allow_methods or ["*"]
        self.allow_headers = allow_headers or ["*"]


class ServiceAppConfig:
    """Configuration for creating a service FastAPI app."""

    def __init__(
        self,
        title: str,
        description: str,
        service_name: str,
        version: str = "1.0.0",
        cors_config: Optional[CORSMiddlewareConfig] = None,
        health_probe: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self.title = title
        self.description = description
        self.service_name = service_name
        self.version = version
        self.cors_config = cors_config or CORSMiddlewareConfig()
        self.health_probe = health_probe


class FastAPIServiceFactory:
    """
    Builds a FastAPI app with the middleware and endpoints every service shares.

    Business metrics are registered on the factory's registry with
    add_business_metric / add_business_histogram so they show up on /metrics.
    """

    def __init__(self, config: ServiceAppConfig):
        self.config = config
        self.metrics = ServiceMetrics(config.service_name)

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title=self.config.title,
            description=self.config.description,
            version=self.config.version,
        )
        cors = self.config.cors_config
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_credentials=cors.allow_credentials,
            allow_methods=cors.allow_methods,
            allow_headers=cors.allow_headers,
        )

        self._add_health_endpoint(app)
        self._add_metrics_middleware(app)
        self._add_metrics_endpoint(app)

        app.state.metrics = self.metrics
        app.state.service_name = self.config.service_name
        return app

    def _add_metrics_middleware(self, app: FastAPI):
        metrics = self.metrics

        @app.middleware("http")
        async def prometheus_middleware(request: Request, call_next):
            start = time.perf_counter()
            response = await call_next(request)
            metrics.record_request(
                request.method,
                _route_path(request),
                response.status_code,
                time.perf_counter() - start,
            )
            return response

    def _add_metrics_endpoint(self, app: FastAPI):
        metrics = self.metrics

        @app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def _add_health_endpoint(self, app: FastAPI):
        service_name = self.config.service_name
        probe = self.config.health_probe

        @app.get("/health")
        async def health_check():
            body = {"status": "ok", "service": service_name}
            if probe is not None:
                body.update(probe())
            return body

    def add_business_metric(
        self, name: str, description: str, labels: Optional[Sequence[str]] = None
    ) -> Counter:
        """Register a business counter on the service registry."""
        return Counter(
            name, description, list(labels or []), registry=self.metrics.registry
        )

    def add_business_histogram(
        self,
        name: str,
        description: str,
        labels: Optional[Sequence[str]] = None,
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        """Register a business histogram on the service registry."""
        kwargs = {"registry": self.metrics.registry}
        if buckets is not None:
            kwargs["buckets"] = tuple(buckets)
        return Histogram(name, description, list(labels or []), **kwargs)
