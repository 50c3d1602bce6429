import asyncio

import pytest

from sado_poi.config import AreaSource, SheetsConfig
from sado_poi.errors import ConfigError, NetworkError, ParseError
from sado_poi.http import RequestMetrics
from sado_poi.models import SheetTable
from sado_poi.retry import FetchState
from sado_poi.store import PoiStore, load_pois, merge_area_pois

COLUMNS = {"id": 0, "name": 1, "wkt": 2}


class RecordingLog:
    def __init__(self):
        self.events = []

    def log(self, level, message, context=None):
        self.events.append((level, message, dict(context or {})))

    def with_kind(self, kind):
        return [ctx for _, _, ctx in self.events if ctx.get("kind") == kind]


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class ScriptedSource:
    """Serves tables per area; a list value is consumed one outcome per call."""

    def __init__(self, outcomes, delay=0.0):
        self.outcomes = outcomes
        self.delay = delay
        self.calls = []

    async def fetch(self, area):
        self.calls.append(area)
        delay = self.delay.get(area, 0.0) if isinstance(self.delay, dict) else self.delay
        if delay:
            await asyncio.sleep(delay)
        outcome = self.outcomes[area]
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _table(*rows):
    return SheetTable(header=("id", "name", "wkt"), rows=tuple(rows))


def _config(areas=("A", "B"), max_retries=3):
    return SheetsConfig(
        areas={
            area: AreaSource(area_id=area, label=area, sheet_name=area, index_columns=COLUMNS)
            for area in areas
        },
        max_retries=max_retries,
        retry_delay=0.0,
        request_timeout=5.0,
    )


def _store(source, config=None, log=None, sleep=None):
    return PoiStore(
        source,
        config or _config(),
        log=log or RecordingLog(),
        sleep=sleep or FakeSleep(),
        metrics=RequestMetrics(),
    )


TABLE_A = _table(("p1", "Alpha", "POINT (138.40 38.05)"))
TABLE_B = _table(("p1", "Beta", "POINT (138.30 38.00)"), ("p2", "Gamma", "POINT (138.35 38.02)"))


def test_cache_hit_skips_fetch():
    source = ScriptedSource({"A": TABLE_A})
    store = _store(source)

    first = load_pois(store, ["A"])
    second = load_pois(store, ["A"])
    assert source.calls == ["A"]
    assert first.data == second.data
    assert store.metrics.cache_hits == 1
    assert store.cached_areas() == ["A"]


def test_invalidate_forces_refetch():
    source = ScriptedSource({"A": TABLE_A})
    store = _store(source)

    load_pois(store, ["A"])
    assert store.invalidate("A") is True
    assert store.invalidate("A") is False
    load_pois(store, ["A"])
    assert source.calls == ["A", "A"]

    store.clear()
    assert store.cached_areas() == []


def test_refresh_replaces_cached_data():
    source = ScriptedSource({"A": [TABLE_A, _table(("p9", "Renamed", "POINT (138.40 38.05)"))]})
    store = _store(source)

    load_pois(store, ["A"])
    result = asyncio.run(store.refresh(["A"]))
    assert [p.id for p in result.data] == ["p9"]
    assert source.calls == ["A", "A"]


def test_concurrent_requests_share_one_fetch():
    source = ScriptedSource({"A": TABLE_A}, delay=0.02)
    store = _store(source)

    async def scenario():
        return await asyncio.gather(store.get_pois(["A"]), store.get_pois(["A"]))

    first, second = asyncio.run(scenario())
    assert source.calls == ["A"]
    assert first.data == second.data
    assert store.metrics.inflight_joins == 1
    assert store.inflight_areas() == []


def test_duplicate_area_ids_in_one_request_fetch_once():
    source = ScriptedSource({"A": TABLE_A})
    store = _store(source)

    result = load_pois(store, ["A", "A"])
    assert source.calls == ["A"]
    assert len(result.data) == 1


def test_cancelled_fetch_is_not_cached():
    source = ScriptedSource({"A": TABLE_A}, delay=0.2)
    store = _store(source)

    async def scenario():
        task = asyncio.ensure_future(store.get_pois(["A"]))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert store.cached_areas() == []
    assert store.inflight_areas() == []
    assert store.last_fetches["A"].state is FetchState.FAILED


def test_fetch_survives_one_of_two_cancelled_callers():
    source = ScriptedSource({"A": TABLE_A}, delay=0.05)
    store = _store(source)

    async def scenario():
        first = asyncio.ensure_future(store.get_pois(["A"]))
        second = asyncio.ensure_future(store.get_pois(["A"]))
        await asyncio.sleep(0.01)
        first.cancel()
        return await second

    result = asyncio.run(scenario())
    assert [p.id for p in result.data] == ["p1"]
    assert source.calls == ["A"]
    assert store.cached_areas() == ["A"]


def test_invalidate_during_fetch_skips_cache_write():
    source = ScriptedSource({"A": TABLE_A}, delay=0.05)
    store = _store(source)

    async def scenario():
        task = asyncio.ensure_future(store.get_pois(["A"]))
        await asyncio.sleep(0.01)
        store.invalidate("A")
        return await task

    result = asyncio.run(scenario())
    assert [p.id for p in result.data] == ["p1"]
    assert store.cached_areas() == []


def test_duplicate_ids_last_write_wins_with_one_warning():
    log = RecordingLog()
    store = _store(ScriptedSource({"A": TABLE_A, "B": TABLE_B}), log=log)

    result = load_pois(store, ["A", "B"])
    assert [(p.id, p.name) for p in result.data] == [("p1", "Beta"), ("p2", "Gamma")]
    warnings = log.with_kind("DuplicateIdWarning")
    assert len(warnings) == 1
    assert warnings[0]["count"] == 1
    assert warnings[0]["ids"] == ["p1"]


def test_merge_follows_requested_area_order():
    result = load_pois(_store(ScriptedSource({"A": TABLE_A, "B": _table(("p2", "Gamma", ""))})), ["B", "A"])
    assert [p.id for p in result.data] == ["p2", "p1"]


def test_merge_area_pois_without_collisions_logs_nothing():
    log = RecordingLog()
    assert merge_area_pois(["A"], {"A": []}, log) == []
    assert log.events == []


def test_partial_failure_keeps_sibling_data():
    log = RecordingLog()
    source = ScriptedSource({"A": TABLE_A, "B": NetworkError("HTTP 404", status=404, body="not found")})
    store = _store(source, log=log)

    result = load_pois(store, ["A", "B"])
    assert [p.id for p in result.data] == ["p1"]
    assert not result.ok
    assert result.failed_areas() == ["B"]
    error = result.errors[0]
    assert (error.kind, error.status, error.attempts) == ("network", 404, 1)
    assert store.cached_areas() == ["A"]
    assert store.metrics.failed_areas == 1
    assert any(level == "error" and ctx.get("area") == "B" for level, _, ctx in log.events)


def test_transient_failure_is_retried_by_store():
    sleep = FakeSleep()
    source = ScriptedSource({"A": [NetworkError("HTTP 503", status=503), TABLE_A]})
    store = _store(source, sleep=sleep)

    result = load_pois(store, ["A"])
    assert result.ok
    assert source.calls == ["A", "A"]
    assert store.last_fetches["A"].attempts == 2
    assert store.metrics.retries == 1


def test_exhausted_retries_report_attempts():
    source = ScriptedSource({"A": [NetworkError("HTTP 500", status=500) for _ in range(4)]})
    store = _store(source, config=_config(max_retries=3))

    result = load_pois(store, ["A"])
    assert result.data == []
    assert result.errors[0].attempts == 4
    assert result.errors[0].kind == "network"
    assert store.cached_areas() == []


def test_parse_failure_is_area_scoped():
    store = _store(ScriptedSource({"A": ParseError("bad body"), "B": TABLE_B}))

    result = load_pois(store, ["A", "B"])
    assert result.errors[0].kind == "parse"
    assert [p.id for p in result.data] == ["p1", "p2"]


def test_unknown_area_is_config_error():
    source = ScriptedSource({"A": TABLE_A})
    store = _store(source)

    with pytest.raises(ConfigError):
        load_pois(store, ["A", "ZZZ"])
    assert source.calls == []


def test_source_config_error_propagates():
    store = _store(ScriptedSource({"A": ConfigError("no csv for A")}))

    with pytest.raises(ConfigError):
        load_pois(store, ["A"])


def test_config_error_cancels_sibling_fetches():
    source = ScriptedSource({"A": ConfigError("no csv for A"), "B": TABLE_B}, delay={"B": 0.05})
    store = _store(source)

    async def scenario():
        with pytest.raises(ConfigError):
            await store.get_pois(["A", "B"])
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert sorted(source.calls) == ["A", "B"]
    assert store.cached_areas() == []
    assert store.inflight_areas() == []
    assert store.last_fetches["B"].state is FetchState.FAILED
