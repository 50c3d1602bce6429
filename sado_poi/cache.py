"""In-memory per-area cache of ingested POIs."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import Poi


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass(frozen=True)
class CacheEntry:
    pois: Tuple[Poi, ...]
    stored_at: float
    fetched_at: str


class AreaCache:
    """AreaId -> POIs, written only after a successful fetch+parse.

    Created once per session. Entries live until ``invalidate``/``clear`` or,
    when ``ttl_seconds`` is set, until they expire.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def _expired(self, entry: CacheEntry) -> bool:
        if self.ttl_seconds is None:
            return False
        return self.clock() - entry.stored_at >= self.ttl_seconds

    def entry(self, area: str) -> Optional[CacheEntry]:
        entry = self._entries.get(area)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[area]
            return None
        return entry

    def get(self, area: str) -> Optional[Tuple[Poi, ...]]:
        entry = self.entry(area)
        return entry.pois if entry is not None else None

    def set(self, area: str, pois: Iterable[Poi]) -> None:
        self._entries[area] = CacheEntry(tuple(pois), self.clock(), utc_now_iso())

    def invalidate(self, area: str) -> bool:
        return self._entries.pop(area, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def areas(self) -> List[str]:
        return [area for area in list(self._entries) if self.entry(area) is not None]

    def __contains__(self, area: object) -> bool:
        return isinstance(area, str) and self.entry(area) is not None

    def __len__(self) -> int:
        return len(self.areas())
