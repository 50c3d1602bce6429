"""Output writers for ingested POIs."""
from __future__ import annotations

import csv
import json
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, TextIO

from .cache import utc_now_iso
from .models import Poi, PoiResult

CSV_FIELDS = [
    "id",
    "name",
    "lat",
    "lng",
    "area",
    "category",
    "categories",
    "type",
    "genre",
    "address",
    "contact",
    "payment",
    "parking",
    "is_closed",
    "has_parking",
    "has_cashless",
    "business_hours",
    "information",
    "view_url",
    "coordinates_defaulted",
]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    with atomic_writer(path, mode="w", encoding=encoding) as f:
        f.write(text)


def write_json_object(path: str, payload: Any) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_pois_json(path: str, pois: Iterable[Poi]) -> None:
    write_json_object(path, [poi.to_dict() for poi in pois])


def poi_csv_row(poi: Poi) -> Dict[str, Any]:
    data = poi.to_dict()
    out = {key: data.get(key, "") for key in CSV_FIELDS}
    out["categories"] = "|".join(poi.categories)
    out["business_hours"] = ""
    if not poi.business_hours.is_empty():
        hours = {k: v for k, v in poi.business_hours.to_dict().items() if v}
        out["business_hours"] = json.dumps(hours, ensure_ascii=False)
    return out


def write_pois_csv(path: str, pois: Iterable[Poi]) -> None:
    rows: List[Dict[str, Any]] = [poi_csv_row(poi) for poi in pois]
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def build_summary(result: PoiResult, areas: Iterable[str], metrics: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    counts: Dict[str, int] = {}
    categories: Dict[str, int] = {}
    defaulted = 0
    for poi in result.data:
        counts[poi.area] = counts.get(poi.area, 0) + 1
        categories[poi.category] = categories.get(poi.category, 0) + 1
        if poi.coordinates_defaulted:
            defaulted += 1
    return {
        "generated_at": utc_now_iso(),
        "areas_requested": list(areas),
        "poi_count": len(result.data),
        "poi_count_by_area": counts,
        "poi_count_by_category": dict(sorted(categories.items())),
        "coordinates_defaulted": defaulted,
        "errors": [e.to_dict() for e in result.errors],
        "metrics": dict(metrics or {}),
    }


def write_summary(path: str, summary: Dict[str, Any]) -> None:
    write_json_object(path, summary)
