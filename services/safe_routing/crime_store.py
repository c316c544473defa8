"""
Read-only access to the external crime report store.

The routing engine never talks to a store directly: SafeRoutingService
fetches reports (with retry, optionally through the Redis cache) and freezes
them into a CrimeSnapshot for one request.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol

import httpx

from common.constants import CRIME_CACHE_KEY_PREFIX
from libs.redis_client import RedisClient
from models.crime import CrimeReport, CrimeSnapshot, CrimeType
from services.safe_routing.errors import UpstreamDataUnavailable
from services.safe_routing.regions import District

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """ISO-8601 string or epoch seconds -> timezone-aware datetime (naive = UTC)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_report(raw: dict) -> CrimeReport:
    """
    Build a CrimeReport from a store document.

    Accepts the location either as a GeoJSON point
    ({"type": "Point", "coordinates": [lng, lat]}) or as flat lat/lng fields.

    Raises:
        KeyError, TypeError, ValueError: the document is not a crime report
    """
    location = raw.get("location")
    if isinstance(location, dict) and "coordinates" in location:
        lng, lat = location["coordinates"][:2]
    else:
        lat, lng = raw["lat"], raw["lng"]
    timestamp = raw.get("time", raw.get("timestamp"))
    if timestamp is None:
        raise KeyError("time")
    severity = raw.get("severity")
    return CrimeReport(
        id=str(raw.get("id", raw.get("_id", ""))),
        lat=float(lat),
        lng=float(lng),
        type=CrimeType.parse(raw.get("type", "other")),
        timestamp=parse_timestamp(timestamp),
        severity=1.0 if severity is None else float(severity),
    )


def report_to_dict(report: CrimeReport) -> dict:
    return {
        "id": report.id,
        "lat": report.lat,
        "lng": report.lng,
        "type": report.type.value,
        "time": report.timestamp.isoformat(),
        "severity": report.severity,
    }


def parse_reports(rows: Iterable[dict], source: str) -> List[CrimeReport]:
    reports = []
    skipped = 0
    for row in rows:
        try:
            reports.append(parse_report(row))
        except (AttributeError, KeyError, TypeError, ValueError, IndexError):
            skipped += 1
    if skipped:
        logger.warning(f"Skipped {skipped} malformed crime reports from {source}")
    return reports


def _in_window(report: CrimeReport, since: datetime, until: datetime) -> bool:
    return since <= report.timestamp <= until


def _in_bounds(report: CrimeReport, bounds: District) -> bool:
    return bounds.contains(report.lat, report.lng)


class CrimeReportStore(Protocol):
    async def fetch_reports(
        self, bounds: District, since: datetime, until: datetime
    ) -> List[CrimeReport]:
        """Reports inside bounds whose time lies in [since, until]."""
        ...


class InMemoryCrimeStore:
    def __init__(self, reports: Iterable[CrimeReport] = ()):
        self.reports: List[CrimeReport] = list(reports)

    def add(self, report: CrimeReport) -> None:
        self.reports.append(report)

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryCrimeStore":
        """Load a JSON array (or {"reports": [...]}) of crime report documents."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise UpstreamDataUnavailable(
                f"Crime report file {path} could not be read: {e}",
                context={"path": path},
            ) from e
        if isinstance(payload, dict):
            payload = payload.get("reports", [])
        store = cls(parse_reports(payload, path))
        logger.info(f"Loaded {len(store.reports)} crime reports from {path}")
        return store

    async def fetch_reports(
        self, bounds: District, since: datetime, until: datetime
    ) -> List[CrimeReport]:
        return [
            report
            for report in self.reports
            if _in_bounds(report, bounds) and _in_window(report, since, until)
        ]


class HttpCrimeStore:
    """Crime store reached over HTTP (GET {base_url}/api/crimes)."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=httpx.Timeout(timeout_s)
        )

    async def close(self):
        await self.client.aclose()

    async def fetch_reports(
        self, bounds: District, since: datetime, until: datetime
    ) -> List[CrimeReport]:
        params = {
            "minLat": bounds.min_lat,
            "minLng": bounds.min_lng,
            "maxLat": bounds.max_lat,
            "maxLng": bounds.max_lng,
            "since": since.isoformat(),
            "until": until.isoformat(),
        }
        try:
            response = await self.client.get("/api/crimes", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamDataUnavailable(
                f"Crime store returned {e.response.status_code}",
                context={"status": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            raise UpstreamDataUnavailable(f"Crime store unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamDataUnavailable(f"Crime store sent invalid JSON: {e}") from e

        if isinstance(payload, dict):
            payload = payload.get("reports", [])
        if not isinstance(payload, list):
            raise UpstreamDataUnavailable("Crime store response is not a report list")
        # The store may ignore the filters; apply them again
        return [
            report
            for report in parse_reports(payload, self.base_url)
            if _in_bounds(report, bounds) and _in_window(report, since, until)
        ]


class CachedCrimeStore:
    """
    Short-lived Redis cache in front of another store.

    Entries are keyed by bounds, the day `since` falls on and the TTL-sized
    bucket `until` falls in, so requests arriving within one TTL share an
    entry. When Redis is unavailable every call goes straight to the inner
    store.
    """

    def __init__(self, inner: CrimeReportStore, redis: RedisClient, ttl_s: int = 30):
        self.inner = inner
        self.redis = redis
        self.ttl_s = max(1, int(ttl_s))

    def cache_key(self, bounds: District, since: datetime, until: datetime) -> str:
        bucket = int(until.timestamp() // self.ttl_s)
        return (
            f"{CRIME_CACHE_KEY_PREFIX}{bounds.min_lat:.5f},{bounds.min_lng:.5f},"
            f"{bounds.max_lat:.5f},{bounds.max_lng:.5f}:"
            f"{since.astimezone(timezone.utc).date().isoformat()}:{bucket}"
        )

    async def fetch_reports(
        self, bounds: District, since: datetime, until: datetime
    ) -> List[CrimeReport]:
        key = self.cache_key(bounds, since, until)
        cached = self.redis.get_json(key)
        if isinstance(cached, list):
            logger.debug(f"Crime cache hit: {key}")
            return [
                report
                for report in parse_reports(cached, "cache")
                if _in_window(report, since, until)
            ]

        day_start = datetime.combine(
            since.astimezone(timezone.utc).date(),
            datetime.min.time(),
            tzinfo=timezone.utc,
        )
        reports = await self.inner.fetch_reports(bounds, day_start, until)
        self.redis.set_json(key, [report_to_dict(r) for r in reports], ttl=self.ttl_s)
        return [report for report in reports if _in_window(report, since, until)]


async def fetch_with_retry(
    store: CrimeReportStore,
    bounds: District,
    since: datetime,
    until: datetime,
    *,
    attempts: int = 3,
    backoff_s: float = 0.2,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List[CrimeReport]:
    """
    Fetch reports, retrying UpstreamDataUnavailable with exponential backoff.

    Raises:
        UpstreamDataUnavailable: every attempt failed
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return await store.fetch_reports(bounds, since, until)
        except UpstreamDataUnavailable as e:
            if attempt + 1 >= attempts:
                logger.error(
                    f"Crime store failed after {attempts} attempts: {e.detail}"
                )
                raise
            delay = min(5.0, backoff_s * (2**attempt))
            logger.warning(
                f"Crime store failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.2f}s: {e.detail}"
            )
            await sleep(delay)


def build_snapshot(
    reports: Iterable[CrimeReport],
    as_of: datetime,
    lookback_days: int,
    bounds: District,
) -> CrimeSnapshot:
    """
    Freeze reports into a snapshot for one request.

    Reports newer than as_of or older than the lookback window are dropped.
    Reports are ordered by (timestamp, id) so risk sums do not depend on the
    order the store returned them in.

    Raises:
        UpstreamDataUnavailable: the store returned a report outside the
            bounds it was asked for
    """
    since = as_of - timedelta(days=lookback_days)
    kept = []
    for report in reports:
        if not _in_window(report, since, as_of):
            continue
        if not _in_bounds(report, bounds):
            raise UpstreamDataUnavailable(
                f"Crime store returned report {report.id} at "
                f"({report.lat}, {report.lng}) outside the requested bounds "
                f"of {bounds.name}",
                context={"report_id": report.id},
            )
        kept.append(report)
    kept.sort(key=lambda r: (r.timestamp, r.id))
    return CrimeSnapshot(reports=tuple(kept), as_of=as_of)
