"""Source readers: fetch raw rows for one area, independent of parsing."""
from __future__ import annotations

import asyncio
import csv
import io
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple
from urllib.parse import quote

from .config import ENV_API_KEY, ENV_SPREADSHEET_ID, SheetsConfig
from .errors import ConfigError, ParseError
from .http import HttpClient
from .models import SheetTable

logger = logging.getLogger(__name__)


class AreaSourceReader(Protocol):
    async def fetch(self, area: str) -> SheetTable:
        ...


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def build_table(rows: Iterable[Sequence[Any]]) -> SheetTable:
    rows = [tuple(_cell_text(c) for c in row) for row in rows]
    while rows and not any(cell.strip() for cell in rows[0]):
        rows.pop(0)
    if not rows:
        return SheetTable()
    header = tuple(h.strip().lstrip("\ufeff") for h in rows[0])
    return SheetTable(header=header, rows=tuple(rows[1:]))


def parse_values_response(payload: Any) -> SheetTable:
    """Convert a Sheets ``values.get`` payload into a SheetTable.

    Row 0 is the header. A missing ``values`` key means an empty sheet.
    """
    if not isinstance(payload, dict):
        raise ParseError(f"Expected a JSON object, got {type(payload).__name__}")
    values = payload.get("values")
    if values is None:
        return SheetTable()
    if not isinstance(values, list):
        raise ParseError(f"'values' must be a list, got {type(values).__name__}")
    for idx, row in enumerate(values):
        if not isinstance(row, list):
            raise ParseError(f"Row {idx} is not a list ({type(row).__name__})")
    return build_table(values)


def parse_csv_text(text: str) -> SheetTable:
    if not text or not text.strip():
        return SheetTable()
    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        reader = csv.reader(io.StringIO(text, newline=""), strict=True)
        rows = list(reader)
    except csv.Error as exc:
        raise ParseError(f"Malformed CSV: {exc}") from exc
    return build_table(rows)


class SheetsSource:
    def __init__(self, config: SheetsConfig, http_client: Optional[HttpClient] = None) -> None:
        missing = []
        if not config.api_key.strip():
            missing.append(f"{ENV_API_KEY} is not set")
        if not config.spreadsheet_id.strip():
            missing.append(f"{ENV_SPREADSHEET_ID} is not set")
        if missing:
            raise ConfigError("Missing Sheets credentials: " + "; ".join(missing), missing)
        self.config = config
        self.http = http_client or HttpClient(config.api_key, timeout=config.request_timeout)

    def url_for(self, area: str) -> str:
        src = self.config.area(area)
        return (
            f"{self.config.base_url}/{quote(self.config.spreadsheet_id, safe='')}"
            f"/values/{quote(src.a1_range, safe='')}"
        )

    def fetch_sync(self, area: str) -> SheetTable:
        url = self.url_for(area)
        payload = self.http.get_json(url)
        table = parse_values_response(payload)
        logger.debug("Fetched %s rows for %s", len(table), area)
        return table

    async def fetch(self, area: str) -> SheetTable:
        return await asyncio.to_thread(self.fetch_sync, area)


class CsvSource:
    """Serves areas from raw CSV text already in memory."""

    def __init__(self, texts: Mapping[str, str]) -> None:
        self.texts: Dict[str, str] = dict(texts)

    @classmethod
    def from_paths(cls, paths: Mapping[str, str]) -> "CsvSource":
        texts = {}
        for area, path in paths.items():
            file_path = Path(path)
            if not file_path.exists():
                raise ConfigError(f"CSV for {area} not found: {file_path}", [f"missing file {file_path}"])
            texts[area] = file_path.read_text(encoding="utf-8-sig")
        return cls(texts)

    def areas(self) -> List[str]:
        return list(self.texts)

    async def fetch(self, area: str) -> SheetTable:
        try:
            text = self.texts[area]
        except KeyError:
            raise ConfigError(f"No CSV source for area {area}", [f"area {area!r} has no CSV"]) from None
        return parse_csv_text(text)


def parse_area_assignments(items: Sequence[str]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for item in items:
        if "=" not in item:
            raise ConfigError(f"Expected AREA=PATH, got {item!r}", [f"bad assignment {item!r}"])
        area, path = item.split("=", 1)
        pairs.append((area.strip(), path.strip()))
    return pairs
