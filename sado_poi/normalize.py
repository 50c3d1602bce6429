"""Row validation and POI assembly.

``RowParser`` turns one area's SheetTable into immutable ``Poi`` records. The
only hard rejection is a missing name; everything else falls back to empty
strings or the default coordinate.
"""
from __future__ import annotations

import itertools
import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .categories import FLAG_FIELDS, classify, infer_poi_type, is_truthy
from .columns import ColumnMap, build_column_map
from .config import AreaSource, SheetsConfig
from .coords import CoordinateResolver, strategy_for_mode
from .errors import RowValidationError
from .events import EventLog, default_event_log
from .models import DAY_FIELDS, BusinessHours, Poi, PoiFlags, SheetTable

_KATAKANA_START = 0x30A1
_KATAKANA_END = 0x30F6
_WHITESPACE_RE = re.compile(r"\s+")
_FALSY_TEXT = frozenset({"", "false", "0", "no", "n", "なし", "無し", "無", "×", "-"})


def normalize_search_text(*parts: Optional[str]) -> str:
    """Lowercase, NFKC-fold and map katakana to hiragana for matching."""
    text = " ".join(p for p in parts if p)
    text = unicodedata.normalize("NFKC", text).lower()
    text = "".join(
        chr(ord(ch) - 0x60) if _KATAKANA_START <= ord(ch) <= _KATAKANA_END else ch for ch in text
    )
    return _WHITESPACE_RE.sub(" ", text).strip()


def slugify(name: str, limit: int = 24) -> str:
    slug = _WHITESPACE_RE.sub("_", unicodedata.normalize("NFKC", name).strip().lower())
    return slug[:limit] or "unknown"


def _has_value(text: str) -> bool:
    return unicodedata.normalize("NFKC", text).strip().lower() not in _FALSY_TEXT


def position_id(area: str, row_index: int) -> str:
    return f"{area}-{row_index}"


class NameCounterIds:
    """``{slug(name)}-{n}``; stable within one parse only."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)

    def __call__(self, area: str, row_index: int, name: str) -> str:
        return f"{slugify(name)}-{next(self._counter)}"


def id_factory(strategy: str) -> Callable[[str, int, str], str]:
    if strategy == "position":
        return lambda area, row_index, name: position_id(area, row_index)
    if strategy == "name_counter":
        return NameCounterIds()
    raise ValueError(f"Unknown id strategy: {strategy}")


def is_blank_row(row: Sequence[str]) -> bool:
    return not any((cell or "").strip() for cell in row)


def business_hours_from_row(row: Sequence[str], columns: ColumnMap) -> BusinessHours:
    values = {day: columns.get(row, day) for day in DAY_FIELDS}
    return BusinessHours(
        holiday_info=columns.get(row, "holiday_info"),
        summary=columns.get(row, "hours_summary"),
        **values,
    )


def flags_from_row(row: Sequence[str], columns: ColumnMap) -> PoiFlags:
    parking = columns.get(row, "parking")
    payment = columns.get(row, "payment")
    cashless = columns.get(row, "cashless")
    return PoiFlags(
        is_closed=is_truthy(columns.get(row, "closed")),
        has_parking=_has_value(parking),
        has_cashless=is_truthy(cashless) or (not columns.has("cashless") and _has_value(payment)),
    )


@dataclass
class ParseStats:
    total: int = 0
    emitted: int = 0
    rejected: int = 0
    blank: int = 0
    defaulted: int = 0
    suspicious: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "emitted": self.emitted,
            "rejected": self.rejected,
            "blank": self.blank,
            "defaulted": self.defaulted,
            "suspicious": self.suspicious,
        }


class RowParser:
    """Synchronous per-area parser. No suspension points."""

    def __init__(
        self,
        config: SheetsConfig,
        log: Optional[EventLog] = None,
    ) -> None:
        self.config = config
        self.log = log or default_event_log()
        self.last_stats: Dict[str, ParseStats] = {}

    def column_map_for(self, source: AreaSource, table: SheetTable) -> ColumnMap:
        return build_column_map(source.column_mode, table.header, index_table=source.index_columns)

    def resolver_for(self, source: AreaSource) -> CoordinateResolver:
        return CoordinateResolver(
            strategy_for_mode(source.coordinate_mode),
            default=self.config.default_center,
            region_bbox=self.config.region_bbox,
            log=self.log,
        )

    def parse_rows(self, area: str, table: SheetTable) -> List[Poi]:
        source = self.config.area(area)
        columns = self.column_map_for(source, table)
        resolver = self.resolver_for(source)
        make_id = id_factory(source.id_strategy)
        stats = ParseStats()

        required = ("name",) + resolver.strategy.required_fields()
        missing = columns.missing(required)
        if missing and table.rows:
            self.log.log(
                "warn",
                "Sheet is missing expected columns",
                {
                    "area": area,
                    "missing": missing,
                    "mapped": columns.fields(),
                    "mode": columns.mode,
                    "header": list(table.header),
                },
            )

        pois: List[Poi] = []
        for row_index, row in enumerate(table.rows):
            stats.total += 1
            if is_blank_row(row):
                stats.blank += 1
                self.log.log("debug", "Skipping blank row", {"area": area, "row": row_index})
                continue
            poi = self.build_poi(area, source, row_index, row, columns, resolver, make_id, stats)
            if poi is not None:
                pois.append(poi)
                stats.emitted += 1

        self.last_stats[area] = stats
        self.log.log("info", "Parsed area rows", dict(area=area, **stats.as_dict()))
        return pois

    def build_poi(
        self,
        area: str,
        source: AreaSource,
        row_index: int,
        row: Sequence[str],
        columns: ColumnMap,
        resolver: CoordinateResolver,
        make_id: Callable[[str, int, str], str],
        stats: ParseStats,
    ) -> Optional[Poi]:
        name = columns.get(row, "name")
        explicit_id = columns.get(row, "id")
        if not name:
            stats.rejected += 1
            self.log.log(
                "warn",
                "Row rejected: name is required",
                {
                    "kind": RowValidationError.__name__,
                    "area": area,
                    "row": row_index,
                    "id": explicit_id,
                    "address": columns.get(row, "address"),
                },
            )
            return None

        poi_id = explicit_id or make_id(area, row_index, name)
        resolution = resolver.resolve(row, columns, name=name, poi_id=poi_id, area=area)
        if resolution.defaulted:
            stats.defaulted += 1
        if resolution.suspicious:
            stats.suspicious += 1

        genre = columns.get(row, "genre")
        category_text = columns.get(row, "category_text")
        flag_values = {flag: is_truthy(columns.get(row, flag)) for flag in FLAG_FIELDS}
        categories = classify(flag_values, genre, category_text)
        address = columns.get(row, "address")
        district = columns.get(row, "district")

        return Poi(
            id=poi_id,
            name=name,
            coordinates=resolution.coordinates,
            area=area,
            category=categories[0],
            categories=categories,
            type=infer_poi_type(genre, default=source.poi_type),
            genre=genre,
            business_hours=business_hours_from_row(row, columns),
            contact=columns.get(row, "contact"),
            address=address,
            payment=columns.get(row, "payment"),
            parking=columns.get(row, "parking"),
            information=columns.get(row, "information"),
            view_url=columns.get(row, "view"),
            district=district,
            flags=flags_from_row(row, columns),
            search_text=normalize_search_text(name, genre, address, district, source.label),
            row_index=row_index,
            coordinates_defaulted=resolution.defaulted,
        )
