"""
Error taxonomy for the safe routing engine.

Every failure a route request can end in is a RoutingError subclass carrying
a machine-readable reason code and the HTTP status it maps to.
"""

from typing import Optional


class RoutingError(Exception):
    """Base class for request-level routing failures."""

    reason = "ROUTING_ERROR"
    status_code = 500

    def __init__(self, detail: str, *, context: Optional[dict] = None):
        super().__init__(detail)
        self.detail = detail
        self.context = context or {}

    def to_dict(self) -> dict:
        return {"route": [], "reason": self.reason, "detail": self.detail}


class InvalidCoordinates(RoutingError):
    """Coordinate outside the serviceable region or not resolvable to the network."""

    reason = "INVALID_COORDINATES"
    status_code = 400


class NoNetworkNearby(InvalidCoordinates):
    """No usable network node within the maximum snap distance."""


class NoPathFound(RoutingError):
    """Start and end are not connected under the requested travel mode."""

    reason = "NO_PATH_FOUND"
    status_code = 404


class RouteTimeout(RoutingError):
    """Search exceeded its time or expansion budget."""

    reason = "TIMEOUT"
    status_code = 504


class UpstreamDataUnavailable(RoutingError):
    """Crime store or road network provider could not be reached or loaded."""

    reason = "UPSTREAM_DATA_UNAVAILABLE"
    status_code = 503
