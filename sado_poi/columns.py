"""Column mapping: resolve semantic fields to cell values of a raw row."""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import config


class ColumnMap:
    """Field name -> column index, built once per sheet."""

    mode = "index"

    def __init__(self, indices: Mapping[str, int]) -> None:
        self.indices: Dict[str, int] = {k: int(v) for k, v in indices.items() if v is not None and int(v) >= 0}

    def has(self, field: str) -> bool:
        return field in self.indices

    def index_of(self, field: str) -> Optional[int]:
        return self.indices.get(field)

    def get(self, row: Sequence[str], field: str) -> str:
        idx = self.index_of(field)
        if idx is None or idx >= len(row):
            return ""
        value = row[idx]
        if value is None:
            return ""
        return str(value).strip()

    def fields(self) -> List[str]:
        return sorted(self.indices)

    def missing(self, required: Iterable[str]) -> List[str]:
        return [f for f in required if f not in self.indices]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.indices!r})"


class IndexColumnMap(ColumnMap):
    mode = "index"


class HeaderColumnMap(ColumnMap):
    mode = "header"

    @classmethod
    def from_header(
        cls,
        header: Sequence[str],
        candidates: Mapping[str, Tuple[str, ...]] = config.HEADER_CANDIDATES,
    ) -> "HeaderColumnMap":
        positions: Dict[str, int] = {}
        for idx, name in enumerate(header):
            key = (name or "").strip()
            # first occurrence wins for repeated header names
            if key and key not in positions:
                positions[key] = idx
        indices: Dict[str, int] = {}
        for field, names in candidates.items():
            for name in names:
                if name in positions:
                    indices[field] = positions[name]
                    break
        return cls(indices)


def build_column_map(
    mode: str,
    header: Sequence[str] = (),
    index_table: Optional[Mapping[str, int]] = None,
    candidates: Optional[Mapping[str, Tuple[str, ...]]] = None,
) -> ColumnMap:
    if mode == "index":
        return IndexColumnMap(index_table if index_table is not None else config.LEGACY_INDEX_COLUMNS)
    if mode == "header":
        return HeaderColumnMap.from_header(header, candidates or config.HEADER_CANDIDATES)
    raise ValueError(f"Unknown column mode: {mode}")
