"""POI store: per-area ingestion, single-flight fetches, merge and cache."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .cache import AreaCache
from .config import SheetsConfig
from .errors import ConfigError, DuplicateIdWarning, NetworkError, ParseError
from .events import EventLog, default_event_log
from .http import RequestMetrics
from .models import AreaError, Poi, PoiResult
from .normalize import RowParser
from .retry import AreaFetch, RetryPolicy, Sleep, describe_error
from .sources import AreaSourceReader

AreaOutcome = Union[List[Poi], AreaError]


def area_error_from_exception(area: str, exc: BaseException, attempts: int) -> AreaError:
    if isinstance(exc, asyncio.TimeoutError):
        kind = "timeout"
    elif isinstance(exc, NetworkError):
        kind = "network"
    elif isinstance(exc, ParseError):
        kind = "parse"
    else:
        kind = "unexpected"
    return AreaError(
        area=area,
        kind=kind,
        message=describe_error(exc),
        status=getattr(exc, "status", None),
        attempts=attempts,
    )


def merge_area_pois(
    areas: Sequence[str],
    pois_by_area: Mapping[str, Iterable[Poi]],
    log: Optional[EventLog] = None,
) -> List[Poi]:
    """Flatten in area order; on id collision the later POI wins.

    The surviving POI keeps the position of the first occurrence.
    """
    merged: Dict[str, Poi] = {}
    duplicate_ids: List[str] = []
    for area in areas:
        for poi in pois_by_area.get(area, ()):
            if poi.id in merged:
                duplicate_ids.append(poi.id)
            merged[poi.id] = poi
    if duplicate_ids:
        (log or default_event_log()).log(
            "warn",
            "Duplicate POI ids merged (last write wins)",
            {
                "kind": DuplicateIdWarning.__name__,
                "count": len(duplicate_ids),
                "ids": sorted(set(duplicate_ids))[:20],
            },
        )
    return list(merged.values())


class _Inflight:
    def __init__(self, task: "asyncio.Task[AreaOutcome]") -> None:
        self.task = task
        self.waiters = 0


class PoiStore:
    def __init__(
        self,
        source: AreaSourceReader,
        config: SheetsConfig,
        cache: Optional[AreaCache] = None,
        parser: Optional[RowParser] = None,
        policy: Optional[RetryPolicy] = None,
        log: Optional[EventLog] = None,
        sleep: Sleep = asyncio.sleep,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        config.validate(require_credentials=False)
        self.source = source
        self.config = config
        self.log = log or default_event_log()
        self.cache = cache if cache is not None else AreaCache(ttl_seconds=config.cache_ttl)
        self.parser = parser or RowParser(config, log=self.log)
        self.policy = policy or RetryPolicy.from_config(config)
        self.sleep = sleep
        self.metrics = metrics if metrics is not None else RequestMetrics()
        self.last_fetches: Dict[str, AreaFetch] = {}
        self._inflight: Dict[str, _Inflight] = {}
        self._generation: Dict[str, int] = defaultdict(int)

    # --- public API ---

    async def get_pois(self, areas: Iterable[str]) -> PoiResult:
        ordered = list(dict.fromkeys(areas))
        for area in ordered:
            self.config.area(area)

        tasks = [asyncio.ensure_future(self._area_pois(area)) for area in ordered]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            # abandoned siblings must not write the cache
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        pois_by_area: Dict[str, List[Poi]] = {}
        errors: List[AreaError] = []
        for area, outcome in zip(ordered, outcomes):
            if isinstance(outcome, AreaError):
                errors.append(outcome)
            else:
                pois_by_area[area] = outcome
        data = merge_area_pois(ordered, pois_by_area, self.log)
        return PoiResult(data=data, errors=errors)

    async def refresh(self, areas: Iterable[str]) -> PoiResult:
        areas = list(areas)
        for area in areas:
            self.invalidate(area)
        return await self.get_pois(areas)

    def invalidate(self, area: str) -> bool:
        self._generation[area] += 1
        return self.cache.invalidate(area)

    def clear(self) -> None:
        for area in list(self._generation) + self.cache.areas():
            self._generation[area] += 1
        self.cache.clear()

    def cached_areas(self) -> List[str]:
        return self.cache.areas()

    def inflight_areas(self) -> List[str]:
        return list(self._inflight)

    # --- internals ---

    async def _area_pois(self, area: str) -> AreaOutcome:
        cached = self.cache.get(area)
        if cached is not None:
            self.metrics.inc("cache_hits")
            return list(cached)

        flight = self._inflight.get(area)
        if flight is None:
            task = asyncio.ensure_future(self._ingest(area, self._generation[area]))
            flight = _Inflight(task)
            self._inflight[area] = flight
            task.add_done_callback(lambda _t, a=area, f=flight: self._forget(a, f))
        else:
            self.metrics.inc("inflight_joins")

        flight.waiters += 1
        try:
            outcome = await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            flight.waiters -= 1
            if flight.waiters <= 0 and not flight.task.done():
                self._forget(area, flight)
                flight.task.cancel()
                self.log.log("info", "Fetch abandoned by all callers", {"area": area})
            raise
        flight.waiters -= 1
        if isinstance(outcome, AreaError):
            return outcome
        return list(outcome)

    def _forget(self, area: str, flight: _Inflight) -> None:
        if self._inflight.get(area) is flight:
            del self._inflight[area]

    async def _ingest(self, area: str, generation: int) -> AreaOutcome:
        fetch = AreaFetch(area, self.policy, sleep=self.sleep, log=self.log, metrics=self.metrics)
        self.last_fetches[area] = fetch
        try:
            table = await fetch.run(lambda: self.source.fetch(area))
            pois = self.parser.parse_rows(area, table)
        except ConfigError:
            raise
        except Exception as exc:
            error = area_error_from_exception(area, exc, fetch.attempts)
            self.metrics.inc("failed_areas")
            context: Dict[str, Any] = error.to_dict()
            if isinstance(exc, NetworkError) and exc.body:
                context["body"] = exc.body[:200]
            self.log.log("error", "Area fetch failed", context)
            return error

        if self._generation[area] != generation:
            self.log.log("info", "Area invalidated during fetch, result not cached", {"area": area})
        else:
            self.cache.set(area, pois)
        return pois


def load_pois(store: PoiStore, areas: Iterable[str]) -> PoiResult:
    """Blocking wrapper for scripts and the CLI."""
    return asyncio.run(store.get_pois(list(areas)))
