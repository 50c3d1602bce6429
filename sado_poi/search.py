"""Filtering of ingested POIs by category, area, status and text."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Poi
from .normalize import normalize_search_text


def filter_by_text(pois: Iterable[Poi], text: Optional[str]) -> List[Poi]:
    needle = normalize_search_text(text or "")
    if not needle:
        return list(pois)
    return [p for p in pois if needle in p.search_text]


def filter_pois(
    pois: Iterable[Poi],
    categories: Optional[Iterable[str]] = None,
    areas: Optional[Iterable[str]] = None,
    include_open: bool = True,
    include_closed: bool = False,
    text: Optional[str] = None,
) -> List[Poi]:
    """Empty/None filters match everything; status filters always apply."""
    wanted_categories = set(categories or ())
    wanted_areas = set(areas or ())
    out: List[Poi] = []
    for poi in pois:
        if wanted_categories and not wanted_categories.intersection(poi.categories):
            continue
        if wanted_areas and poi.area not in wanted_areas:
            continue
        if poi.is_closed and not include_closed:
            continue
        if not poi.is_closed and not include_open:
            continue
        out.append(poi)
    return filter_by_text(out, text)
