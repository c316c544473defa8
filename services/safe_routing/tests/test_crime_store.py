# pytest services/safe_routing/tests/test_crime_store.py -q

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from models.crime import CrimeType
from services.safe_routing.crime_store import (
    CachedCrimeStore,
    HttpCrimeStore,
    InMemoryCrimeStore,
    build_snapshot,
    fetch_with_retry,
    parse_report,
    parse_reports,
    parse_timestamp,
    report_to_dict,
)
from services.safe_routing.errors import UpstreamDataUnavailable
from services.safe_routing.regions import District, RegionCatalog

pytestmark = pytest.mark.unit

BOUNDS = District("Dhaka", 23.60, 90.20, 24.00, 90.60)
UNTIL = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
SINCE = UNTIL - timedelta(days=90)


def _row(report_id, lat=23.75, lng=90.39, when=UNTIL, **extra):
    return {
        "id": report_id,
        "lat": lat,
        "lng": lng,
        "type": "robbery",
        "time": when.isoformat(),
        **extra,
    }


class TestParsing:
    def test_timestamps(self):
        assert parse_timestamp("2025-06-01T12:00:00Z") == UNTIL
        assert parse_timestamp("2025-06-01T12:00:00") == UNTIL
        assert parse_timestamp("2025-06-01T18:00:00+06:00") == UNTIL
        assert parse_timestamp(UNTIL.timestamp()) == UNTIL

    def test_geojson_location(self):
        report = parse_report(
            {
                "_id": "abc",
                "location": {"type": "Point", "coordinates": [90.39, 23.75]},
                "type": "Theft",
                "timestamp": "2025-06-01T12:00:00Z",
                "severity": 3,
            }
        )
        assert report.id == "abc"
        assert (report.lat, report.lng) == (23.75, 90.39)
        assert report.type is CrimeType.THEFT
        assert report.severity == 3.0

    def test_defaults(self):
        report = parse_report({"lat": 23.75, "lng": 90.39, "time": "2025-06-01T12:00:00Z"})
        assert report.type is CrimeType.OTHER
        assert report.severity == 1.0

    def test_unknown_type_maps_to_other(self):
        assert parse_report(_row("r", type="pickpocketing")).type is CrimeType.OTHER

    def test_malformed_rows_are_skipped(self):
        rows = [
            _row("ok"),
            {"lat": 23.75, "lng": 90.39},
            {"id": "bad", "lat": "north", "lng": 90.39, "time": "2025-06-01"},
            "not a report",
        ]
        assert [r.id for r in parse_reports(rows, "test")] == ["ok"]

    def test_dict_round_trip(self):
        report = parse_report(_row("r-1", severity=2.5))
        assert parse_report(report_to_dict(report)) == report


@pytest.mark.asyncio
async def test_in_memory_store_filters_bounds_and_window():
    store = InMemoryCrimeStore(
        parse_reports(
            [
                _row("inside"),
                _row("old", when=SINCE - timedelta(seconds=1)),
                _row("future", when=UNTIL + timedelta(seconds=1)),
                _row("edge-of-window", when=SINCE),
                _row("sylhet", lat=24.9, lng=91.9),
            ],
            "test",
        )
    )

    reports = await store.fetch_reports(BOUNDS, SINCE, UNTIL)

    assert sorted(r.id for r in reports) == ["edge-of-window", "inside"]


def test_in_memory_store_from_file(tmp_path):
    path = tmp_path / "crimes.json"
    path.write_text(json.dumps({"reports": [_row("a"), _row("b")]}))

    assert [r.id for r in InMemoryCrimeStore.from_json_file(str(path)).reports] == ["a", "b"]

    with pytest.raises(UpstreamDataUnavailable):
        InMemoryCrimeStore.from_json_file(str(tmp_path / "missing.json"))


class TestHttpCrimeStore:
    @pytest.mark.asyncio
    async def test_fetch_passes_bounds_and_refilters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(
                200, json={"reports": [_row("a"), _row("far", lat=22.0, lng=91.0)]}
            )

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://crime-store"
        )
        store = HttpCrimeStore("http://crime-store", client=client)

        reports = await store.fetch_reports(BOUNDS, SINCE, UNTIL)
        await store.close()

        assert [r.id for r in reports] == ["a"]
        assert seen["path"] == "/api/crimes"
        assert float(seen["params"]["minLat"]) == BOUNDS.min_lat
        assert float(seen["params"]["maxLng"]) == BOUNDS.max_lng
        assert parse_timestamp(seen["params"]["since"]) == SINCE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, content=b"<html>"),
            httpx.Response(200, json={"reports": "nope"}),
        ],
    )
    async def test_bad_responses_are_upstream_errors(self, response):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: response),
            base_url="http://crime-store",
        )
        store = HttpCrimeStore("http://crime-store", client=client)

        with pytest.raises(UpstreamDataUnavailable) as exc_info:
            await store.fetch_reports(BOUNDS, SINCE, UNTIL)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://crime-store"
        )
        store = HttpCrimeStore("http://crime-store", client=client)

        with pytest.raises(UpstreamDataUnavailable):
            await store.fetch_reports(BOUNDS, SINCE, UNTIL)


class TestFetchWithRetry:
    @pytest.mark.asyncio
    async def test_recovers_after_failures(self):
        store = MagicMock()
        store.fetch_reports = AsyncMock(
            side_effect=[
                UpstreamDataUnavailable("down"),
                UpstreamDataUnavailable("down"),
                ["report"],
            ]
        )
        sleep = AsyncMock()

        result = await fetch_with_retry(
            store, BOUNDS, SINCE, UNTIL, attempts=3, backoff_s=0.2, sleep=sleep
        )

        assert result == ["report"]
        assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.2, 0.4])

    @pytest.mark.asyncio
    async def test_raises_after_last_attempt(self):
        store = MagicMock()
        store.fetch_reports = AsyncMock(side_effect=UpstreamDataUnavailable("down"))
        sleep = AsyncMock()

        with pytest.raises(UpstreamDataUnavailable):
            await fetch_with_retry(store, BOUNDS, SINCE, UNTIL, attempts=2, sleep=sleep)
        assert store.fetch_reports.await_count == 2
        assert sleep.await_count == 1


class TestCachedCrimeStore:
    @pytest.mark.asyncio
    async def test_miss_fetches_day_and_stores(self):
        inner = InMemoryCrimeStore(
            parse_reports(
                [_row("early", when=SINCE - timedelta(hours=1)), _row("late")], "test"
            )
        )
        redis = MagicMock()
        redis.get_json.return_value = None
        store = CachedCrimeStore(inner, redis, ttl_s=30)

        reports = await store.fetch_reports(BOUNDS, SINCE, UNTIL)

        assert [r.id for r in reports] == ["late"]
        key, cached = redis.set_json.call_args.args
        assert key == store.cache_key(BOUNDS, SINCE, UNTIL)
        assert redis.set_json.call_args.kwargs == {"ttl": 30}
        # The whole day of `since` is cached so later requests can reuse it
        assert sorted(row["id"] for row in cached) == ["early", "late"]

    @pytest.mark.asyncio
    async def test_hit_skips_inner_store(self):
        inner = MagicMock()
        inner.fetch_reports = AsyncMock()
        redis = MagicMock()
        redis.get_json.return_value = [
            _row("cached"),
            _row("stale", when=SINCE - timedelta(hours=1)),
        ]
        store = CachedCrimeStore(inner, redis)

        reports = await store.fetch_reports(BOUNDS, SINCE, UNTIL)

        assert [r.id for r in reports] == ["cached"]
        inner.fetch_reports.assert_not_awaited()

    def test_key_buckets_by_ttl(self):
        store = CachedCrimeStore(InMemoryCrimeStore(), MagicMock(), ttl_s=30)
        bucket_start = datetime.fromtimestamp(
            (UNTIL.timestamp() // 30) * 30, tz=timezone.utc
        )

        same = store.cache_key(BOUNDS, SINCE, bucket_start + timedelta(seconds=29))
        assert store.cache_key(BOUNDS, SINCE, bucket_start) == same
        assert store.cache_key(BOUNDS, SINCE, bucket_start + timedelta(seconds=30)) != same
        assert store.cache_key(BOUNDS, SINCE, bucket_start).startswith("crime_reports:")


class TestBuildSnapshot:
    def test_orders_and_windows_reports(self):
        reports = parse_reports(
            [
                _row("b", when=UNTIL - timedelta(days=1)),
                _row("a", when=UNTIL - timedelta(days=1)),
                _row("c", when=UNTIL - timedelta(days=3)),
                _row("too-old", when=UNTIL - timedelta(days=91)),
                _row("future", when=UNTIL + timedelta(minutes=1)),
            ],
            "test",
        )

        snapshot = build_snapshot(reports, UNTIL, 90, BOUNDS)

        assert [r.id for r in snapshot] == ["c", "a", "b"]
        assert snapshot.as_of == UNTIL

    def test_report_in_margin_outside_every_district(self):
        # 20 m south of the Dhaka box, in no district box at all
        reports = parse_reports([_row("margin", lat=23.59982, lng=90.25)], "test")
        assert RegionCatalog().find_district(23.59982, 90.25) is None

        snapshot = build_snapshot(reports, UNTIL, 90, BOUNDS.expanded(50.0))

        assert [r.id for r in snapshot] == ["margin"]

    def test_report_outside_fetch_bounds_is_upstream_error(self):
        reports = parse_reports([_row("abroad", lat=51.5, lng=-0.12)], "test")

        with pytest.raises(UpstreamDataUnavailable) as exc_info:
            build_snapshot(reports, UNTIL, 90, BOUNDS)
        assert exc_info.value.status_code == 503
        assert "abroad" in exc_info.value.detail
