"""Geospatial helpers."""
from __future__ import annotations

import math
import unicodedata
from typing import Dict, Optional

from .models import Coordinates


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def is_valid_lat_lng(lat: float, lng: float) -> bool:
    return math.isfinite(lat) and math.isfinite(lng) and abs(lat) <= 90 and abs(lng) <= 180


def is_null_island(lat: float, lng: float, tolerance: float = 0.001) -> bool:
    return abs(lat) < tolerance and abs(lng) < tolerance


def in_bbox(point: Coordinates, bbox: Optional[Dict[str, float]]) -> bool:
    if not bbox:
        return True
    return (
        bbox["lat_min"] <= point.lat <= bbox["lat_max"]
        and bbox["lng_min"] <= point.lng <= bbox["lng_max"]
    )


def parse_float(text: str) -> Optional[float]:
    if text is None:
        return None
    cleaned = unicodedata.normalize("NFKC", str(text)).strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None
