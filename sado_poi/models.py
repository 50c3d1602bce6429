"""Immutable records produced by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DAY_FIELDS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
    "holiday",
)


class PoiType(str, Enum):
    RESTAURANT = "restaurant"
    PARKING = "parking"
    TOILET = "toilet"
    ATTRACTION = "attraction"
    SHOP = "shop"
    OTHER = "other"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class SheetTable:
    """Header row plus data rows of one sheet, as plain strings."""

    header: Tuple[str, ...] = ()
    rows: Tuple[Tuple[str, ...], ...] = ()

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class BusinessHours:
    monday: str = ""
    tuesday: str = ""
    wednesday: str = ""
    thursday: str = ""
    friday: str = ""
    saturday: str = ""
    sunday: str = ""
    holiday: str = ""
    holiday_info: str = ""
    summary: str = ""

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in DAY_FIELDS + ("holiday_info", "summary"))

    def to_dict(self) -> Dict[str, str]:
        out = {name: getattr(self, name) for name in DAY_FIELDS}
        out["holiday_info"] = self.holiday_info
        out["summary"] = self.summary
        return out


@dataclass(frozen=True)
class PoiFlags:
    is_closed: bool = False
    has_parking: bool = False
    has_cashless: bool = False


@dataclass(frozen=True)
class Poi:
    id: str
    name: str
    coordinates: Coordinates
    area: str
    category: str
    categories: Tuple[str, ...]
    type: PoiType
    genre: str = ""
    business_hours: BusinessHours = field(default_factory=BusinessHours)
    contact: str = ""
    address: str = ""
    payment: str = ""
    parking: str = ""
    information: str = ""
    view_url: str = ""
    district: str = ""
    flags: PoiFlags = field(default_factory=PoiFlags)
    search_text: str = ""
    row_index: int = -1
    coordinates_defaulted: bool = False

    @property
    def lat(self) -> float:
        return self.coordinates.lat

    @property
    def lng(self) -> float:
        return self.coordinates.lng

    @property
    def is_closed(self) -> bool:
        return self.flags.is_closed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "area": self.area,
            "category": self.category,
            "categories": list(self.categories),
            "type": self.type.value,
            "genre": self.genre,
            "business_hours": self.business_hours.to_dict(),
            "contact": self.contact,
            "address": self.address,
            "payment": self.payment,
            "parking": self.parking,
            "information": self.information,
            "view_url": self.view_url,
            "district": self.district,
            "is_closed": self.flags.is_closed,
            "has_parking": self.flags.has_parking,
            "has_cashless": self.flags.has_cashless,
            "search_text": self.search_text,
            "coordinates_defaulted": self.coordinates_defaulted,
        }


@dataclass(frozen=True)
class AreaError:
    area: str
    kind: str
    message: str
    status: Optional[int] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "area": self.area,
            "kind": self.kind,
            "message": self.message,
            "status": self.status,
            "attempts": self.attempts,
        }


@dataclass
class PoiResult:
    data: List[Poi]
    errors: List[AreaError]

    @property
    def ok(self) -> bool:
        return not self.errors

    def failed_areas(self) -> List[str]:
        return [e.area for e in self.errors]
