"""Coordinate extraction and validation.

Two extraction strategies are interchangeable per source: a WKT ``POINT (lng lat)``
column, or explicit latitude/longitude columns. ``FallbackStrategy`` chains them.
Invalid results are replaced by the configured default coordinate; a row is
never dropped for a bad coordinate.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Sequence, Tuple

from . import config
from .columns import ColumnMap
from .errors import CoordinateWarning
from .events import EventLog, default_event_log
from .geo import haversine_km, in_bbox, is_null_island, is_valid_lat_lng, parse_float
from .models import Coordinates

_NUMBER = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?"
WKT_POINT_RE = re.compile(rf"POINT\s*\(\s*({_NUMBER})\s+({_NUMBER})\s*\)", re.IGNORECASE)


def parse_wkt_point(text: Optional[str]) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lng)`` parsed from a WKT point, unvalidated, or None."""
    if not text:
        return None
    match = WKT_POINT_RE.search(text)
    if match is None:
        return None
    lng = float(match.group(1))
    lat = float(match.group(2))
    return lat, lng


@dataclass(frozen=True)
class Extraction:
    lat: Optional[float]
    lng: Optional[float]
    raw: Dict[str, str] = field(default_factory=dict)
    source: str = ""

    @property
    def parsed(self) -> bool:
        return self.lat is not None and self.lng is not None


def rejection_reason(extraction: Extraction) -> Optional[str]:
    if not extraction.parsed:
        if not any(extraction.raw.values()):
            return "missing"
        return "unparseable"
    lat, lng = extraction.lat, extraction.lng
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return "non_finite"
    if not is_valid_lat_lng(lat, lng):
        return "out_of_range"
    if is_null_island(lat, lng):
        return "null_island"
    return None


class CoordinateStrategy(Protocol):
    name: str

    def required_fields(self) -> Tuple[str, ...]:
        ...

    def extract(self, row: Sequence[str], columns: ColumnMap) -> Extraction:
        ...


class WktStrategy:
    name = "wkt"

    def __init__(self, field: str = "wkt") -> None:
        self.field = field

    def required_fields(self) -> Tuple[str, ...]:
        return (self.field,)

    def extract(self, row: Sequence[str], columns: ColumnMap) -> Extraction:
        text = columns.get(row, self.field)
        parsed = parse_wkt_point(text)
        if parsed is None:
            return Extraction(None, None, {"wkt": text}, self.name)
        return Extraction(parsed[0], parsed[1], {"wkt": text}, self.name)


class LatLngColumnsStrategy:
    name = "columns"

    def __init__(self, lat_field: str = "lat", lng_field: str = "lng") -> None:
        self.lat_field = lat_field
        self.lng_field = lng_field

    def required_fields(self) -> Tuple[str, ...]:
        return (self.lat_field, self.lng_field)

    def extract(self, row: Sequence[str], columns: ColumnMap) -> Extraction:
        lat_text = columns.get(row, self.lat_field)
        lng_text = columns.get(row, self.lng_field)
        raw = {"lat": lat_text, "lng": lng_text}
        return Extraction(parse_float(lat_text), parse_float(lng_text), raw, self.name)


class FallbackStrategy:
    name = "auto"

    def __init__(self, strategies: Sequence[CoordinateStrategy]) -> None:
        if not strategies:
            raise ValueError("FallbackStrategy needs at least one strategy")
        self.strategies = list(strategies)

    def required_fields(self) -> Tuple[str, ...]:
        # Any one strategy's columns is enough; report the first as required.
        return self.strategies[0].required_fields()

    def extract(self, row: Sequence[str], columns: ColumnMap) -> Extraction:
        raw: Dict[str, str] = {}
        last: Optional[Extraction] = None
        for strategy in self.strategies:
            extraction = strategy.extract(row, columns)
            if rejection_reason(extraction) is None:
                return extraction
            raw.update(extraction.raw)
            if last is None or (extraction.parsed and not last.parsed):
                last = extraction
        assert last is not None
        return Extraction(last.lat, last.lng, raw, last.source)


def strategy_for_mode(mode: str) -> CoordinateStrategy:
    if mode == "wkt":
        return WktStrategy()
    if mode == "columns":
        return LatLngColumnsStrategy()
    if mode == "auto":
        return FallbackStrategy([WktStrategy(), LatLngColumnsStrategy()])
    raise ValueError(f"Unknown coordinate mode: {mode}")


@dataclass(frozen=True)
class Resolution:
    coordinates: Coordinates
    defaulted: bool = False
    suspicious: bool = False
    reason: Optional[str] = None


class CoordinateResolver:
    def __init__(
        self,
        strategy: CoordinateStrategy,
        default: Coordinates = config.DEFAULT_CENTER,
        region_bbox: Optional[Dict[str, float]] = None,
        log: Optional[EventLog] = None,
    ) -> None:
        self.strategy = strategy
        self.default = default
        self.region_bbox = region_bbox
        self.log = log or default_event_log()

    def resolve(
        self,
        row: Sequence[str],
        columns: ColumnMap,
        name: str = "",
        poi_id: str = "",
        area: str = "",
    ) -> Resolution:
        extraction = self.strategy.extract(row, columns)
        reason = rejection_reason(extraction)
        if reason is not None:
            self.log.log(
                "warn",
                "Invalid coordinates, using default",
                {
                    "kind": CoordinateWarning.__name__,
                    "reason": reason,
                    "strategy": extraction.source or self.strategy.name,
                    "raw": dict(extraction.raw),
                    "name": name,
                    "id": poi_id,
                    "area": area,
                },
            )
            return Resolution(self.default, defaulted=True, reason=reason)

        point = Coordinates(lat=extraction.lat, lng=extraction.lng)
        if not in_bbox(point, self.region_bbox):
            self.log.log(
                "warn",
                "Coordinates outside region bounds",
                {
                    "kind": CoordinateWarning.__name__,
                    "reason": "outside_region",
                    "raw": dict(extraction.raw),
                    "lat": point.lat,
                    "lng": point.lng,
                    "distance_km": round(
                        haversine_km(point.lat, point.lng, self.default.lat, self.default.lng), 1
                    ),
                    "name": name,
                    "id": poi_id,
                    "area": area,
                },
            )
            return Resolution(point, suspicious=True)
        return Resolution(point)
