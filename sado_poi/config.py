"""Project configuration.

Loads source definitions from sources_config.json when available, falling back
to the built-in Sado sheet layout. Credentials come from the environment.
Keep API request shapes and column layouts centralized here.
"""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigError
from .models import Coordinates, PoiType

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

SHEETS_VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_SHEET_RANGE = "A:AX"

# --- Environment variable names ---

ENV_API_KEY = "GOOGLE_SHEETS_API_KEY"
ENV_SPREADSHEET_ID = "GOOGLE_SPREADSHEET_ID"
ENV_MAX_RETRIES = "SHEETS_MAX_RETRIES"
ENV_RETRY_DELAY = "SHEETS_RETRY_DELAY"
ENV_REQUEST_TIMEOUT = "SHEETS_REQUEST_TIMEOUT"
ENV_CACHE_TTL = "SHEETS_CACHE_TTL"

# --- Geography ---

# Sado island centroid, substituted for missing/invalid coordinates.
DEFAULT_CENTER = Coordinates(lat=38.0317, lng=138.3698)
REGION_BBOX: Dict[str, float] = {"lat_min": 37.5, "lat_max": 38.5, "lng_min": 138.0, "lng_max": 138.6}

# --- Retry / HTTP ---

MAX_RETRIES = 3
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_MAX_DELAY_SECONDS = 30.0
REQUEST_TIMEOUT_SECONDS = 30.0
BACKOFF_MODE = "linear"

# --- Cache ---

# None keeps entries until invalidated.
CACHE_TTL_SECONDS: Optional[float] = None

# --- Column layouts ---

COLUMN_MODES = ("index", "header")
COORDINATE_MODES = ("wkt", "columns", "auto")
ID_STRATEGIES = ("position", "name_counter")

# Wide sheet layout used by the region sheets (0-based column indices).
LEGACY_INDEX_COLUMNS: Dict[str, int] = {
    "wkt": 1,
    "name": 32,
    "genre": 33,
    "category_text": 34,
    "parking": 35,
    "payment": 36,
    "monday": 37,
    "tuesday": 38,
    "wednesday": 39,
    "thursday": 40,
    "friday": 41,
    "saturday": 42,
    "sunday": 43,
    "holiday": 44,
    "holiday_info": 45,
    "information": 46,
    "view": 47,
    "contact": 48,
    "address": 49,
}

# Header names per field, in priority order. Matching is exact after strip.
HEADER_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "id": ("ID", "id"),
    "name": ("名称（入力）", "名称", "name"),
    "wkt": ("WKT（入力）", "WKT", "wkt"),
    "lat": ("北緯", "緯度", "lat", "latitude"),
    "lng": ("東経", "経度", "lng", "lon", "longitude"),
    "closed": ("閉店情報（入力）", "閉店情報", "closed"),
    "genre": ("ジャンル（入力）", "ジャンル", "genre"),
    "category_text": ("カテゴリー（入力）", "カテゴリー", "category"),
    "japanese": ("和食カテゴリー（入力）", "和食カテゴリー", "japanese"),
    "western": ("洋食カテゴリー（入力）", "洋食カテゴリー", "western"),
    "other": ("その他カテゴリー（入力）", "その他カテゴリー", "other"),
    "retail": ("販売カテゴリー（入力）", "販売カテゴリー", "retail"),
    "parking": ("駐車場情報（入力）", "駐車場情報", "parking"),
    "cashless": ("キャッシュレス（入力）", "キャッシュレス", "cashless"),
    "payment": ("支払い方法（入力）", "支払い方法", "payment"),
    "contact": ("問い合わせ（入力）", "問い合わせ", "電話番号", "phone"),
    "address": ("所在地（入力）", "所在地", "address"),
    "district": ("地区（入力）", "地区", "district"),
    "hours_summary": ("営業時間（入力）", "営業時間", "business_hours"),
    "monday": ("月曜日", "monday"),
    "tuesday": ("火曜日", "tuesday"),
    "wednesday": ("水曜日", "wednesday"),
    "thursday": ("木曜日", "thursday"),
    "friday": ("金曜日", "friday"),
    "saturday": ("土曜日", "saturday"),
    "sunday": ("日曜日", "sunday"),
    "holiday": ("祝祭日", "holiday"),
    "holiday_info": ("定休日について（入力）", "定休日について", "holiday_info"),
    "information": ("関連情報（入力）", "関連情報", "information"),
    "view": ("Google マップで見る（入力）", "Google マップで見る", "view"),
}


@dataclass(frozen=True)
class AreaSource:
    area_id: str
    label: str
    sheet_name: str
    sheet_range: str = DEFAULT_SHEET_RANGE
    column_mode: str = "index"
    coordinate_mode: str = "wkt"
    poi_type: Optional[PoiType] = None
    id_strategy: str = "position"
    index_columns: Optional[Dict[str, int]] = None

    @property
    def a1_range(self) -> str:
        return f"{self.sheet_name}!{self.sheet_range}"


def _area(area_id: str, label: str, **kwargs: Any) -> Tuple[str, AreaSource]:
    kwargs.setdefault("sheet_name", label)
    return area_id, AreaSource(area_id=area_id, label=label, **kwargs)


DEFAULT_AREAS: Dict[str, AreaSource] = dict(
    [
        _area("RYOTSU_AIKAWA", "両津・相川地区", poi_type=PoiType.RESTAURANT),
        _area("KANAI_SAWADA_NIIBO_HATANO_MANO", "金井・佐和田・新穂・畑野・真野地区", poi_type=PoiType.RESTAURANT),
        _area("AKADOMARI_HAMOCHI_OGI", "赤泊・羽茂・小木地区", poi_type=PoiType.RESTAURANT),
        _area("SNACK", "スナック", column_mode="header", coordinate_mode="auto", poi_type=PoiType.RESTAURANT),
        _area("PUBLIC_TOILET", "公共トイレ", column_mode="header", coordinate_mode="auto", poi_type=PoiType.TOILET),
        _area("PARKING", "駐車場", column_mode="header", coordinate_mode="auto", poi_type=PoiType.PARKING),
        _area("RECOMMEND", "おすすめ"),
    ]
)


BBOX_KEYS = ("lat_min", "lat_max", "lng_min", "lng_max")


def bbox_problems(bbox: Optional[Mapping[str, Any]]) -> List[str]:
    if bbox is None:
        return []
    problems: List[str] = []
    values: Dict[str, float] = {}
    for key in BBOX_KEYS:
        value = bbox.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            problems.append(f"region_bbox.{key} must be a finite number")
        else:
            values[key] = float(value)
    if len(values) == len(BBOX_KEYS):
        if values["lat_min"] > values["lat_max"]:
            problems.append("region_bbox: lat_min must be <= lat_max")
        if values["lng_min"] > values["lng_max"]:
            problems.append("region_bbox: lng_min must be <= lng_max")
    return problems


@dataclass(frozen=True)
class SheetsConfig:
    api_key: str = ""
    spreadsheet_id: str = ""
    areas: Dict[str, AreaSource] = field(default_factory=lambda: dict(DEFAULT_AREAS))
    base_url: str = SHEETS_VALUES_URL
    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_BASE_DELAY_SECONDS
    retry_max_delay: float = RETRY_MAX_DELAY_SECONDS
    backoff: str = BACKOFF_MODE
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    cache_ttl: Optional[float] = CACHE_TTL_SECONDS
    default_center: Coordinates = DEFAULT_CENTER
    region_bbox: Optional[Dict[str, float]] = field(default_factory=lambda: dict(REGION_BBOX))

    def area(self, area_id: str) -> AreaSource:
        try:
            return self.areas[area_id]
        except KeyError:
            raise ConfigError(f"Unknown area: {area_id}", [f"area {area_id!r} is not configured"]) from None

    def problems(self, require_credentials: bool = True) -> List[str]:
        problems: List[str] = []
        if require_credentials:
            if not self.api_key.strip():
                problems.append(f"{ENV_API_KEY} is not set")
            if not self.spreadsheet_id.strip():
                problems.append(f"{ENV_SPREADSHEET_ID} is not set")
        if not self.areas:
            problems.append("no areas configured")
        for area_id, src in self.areas.items():
            if not src.sheet_name.strip():
                problems.append(f"area {area_id}: sheet_name is empty")
            if src.column_mode not in COLUMN_MODES:
                problems.append(f"area {area_id}: column_mode must be one of {', '.join(COLUMN_MODES)}")
            if src.coordinate_mode not in COORDINATE_MODES:
                problems.append(
                    f"area {area_id}: coordinate_mode must be one of {', '.join(COORDINATE_MODES)}"
                )
            if src.id_strategy not in ID_STRATEGIES:
                problems.append(f"area {area_id}: id_strategy must be one of {', '.join(ID_STRATEGIES)}")
        if self.max_retries < 0:
            problems.append("max_retries must be >= 0")
        if self.retry_delay < 0:
            problems.append("retry_delay must be >= 0")
        if self.request_timeout <= 0:
            problems.append("request_timeout must be > 0")
        if self.backoff not in ("linear", "exponential"):
            problems.append("backoff must be 'linear' or 'exponential'")
        center = self.default_center
        if not (math.isfinite(center.lat) and math.isfinite(center.lng)) or abs(center.lat) > 90 or abs(center.lng) > 180:
            problems.append("default_center is out of range")
        problems.extend(bbox_problems(self.region_bbox))
        return problems

    def validate(self, require_credentials: bool = True) -> "SheetsConfig":
        problems = self.problems(require_credentials=require_credentials)
        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems), problems)
        return self


def _env_number(env: Mapping[str, str], name: str, cast, default):
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}", [f"{name} is not a number"]) from None


def _json_number(data: Mapping[str, Any], key: str, cast, default):
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}", [f"{key} is not a number"])
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}", [f"{key} is not a number"]) from None


def _json_object(value: Any, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(
            f"{where} must be a JSON object, got {type(value).__name__}",
            [f"{where} is not an object"],
        )
    return value


def _parse_area(area_id: str, data: Dict[str, Any], base: Optional[AreaSource]) -> AreaSource:
    data = _json_object(data, f"area {area_id}")
    label = data.get("label") or (base.label if base else area_id)
    poi_type = data.get("poi_type")
    values: Dict[str, Any] = {
        "area_id": area_id,
        "label": label,
        "sheet_name": data.get("sheet_name") or (base.sheet_name if base else label),
    }
    for key in ("sheet_range", "column_mode", "coordinate_mode", "id_strategy"):
        if key in data:
            values[key] = str(data[key])
    if poi_type is not None:
        try:
            values["poi_type"] = PoiType(poi_type)
        except ValueError:
            raise ConfigError(f"area {area_id}: unknown poi_type {poi_type!r}", [f"area {area_id}: bad poi_type"]) from None
    if "index_columns" in data:
        columns = _json_object(data["index_columns"], f"area {area_id}: index_columns")
        values["index_columns"] = {
            str(k): _json_number(columns, k, int, None) for k in columns
        }
    if base is not None:
        return replace(base, **values)
    return AreaSource(**values)


def _parse_center(value: Any) -> Coordinates:
    center = _json_object(value, "default_center")
    if "lat" not in center or "lng" not in center:
        raise ConfigError("default_center needs lat and lng", ["default_center is missing lat or lng"])
    return Coordinates(
        lat=_json_number(center, "lat", float, None),
        lng=_json_number(center, "lng", float, None),
    )


def load_sheets_config(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> SheetsConfig:
    """Build a SheetsConfig from the environment plus an optional JSON file.

    The JSON file may override retry settings and add or replace areas:
    {"areas": {"PARKING": {"sheet_name": "...", "column_mode": "header"}},
     "max_retries": 3, "retry_delay": 1.0, "default_center": {"lat": .., "lng": ..}}
    Malformed values raise ConfigError. Returns an unvalidated config; call
    validate() once at startup.
    """
    if env is None:
        env = os.environ
    if path is None:
        path = str(_REPO_ROOT / "sources_config.json")

    data: Dict[str, Any] = {}
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {config_path}: {exc}", [str(exc)]) from exc
        data = _json_object(data, str(config_path))

    areas = dict(DEFAULT_AREAS)
    for area_id, area_data in _json_object(data.get("areas") or {}, "areas").items():
        areas[area_id] = _parse_area(area_id, area_data or {}, areas.get(area_id))

    default_center = DEFAULT_CENTER
    if data.get("default_center"):
        default_center = _parse_center(data["default_center"])

    bbox = data.get("region_bbox", REGION_BBOX)
    if bbox:
        bbox = dict(_json_object(bbox, "region_bbox"))

    return SheetsConfig(
        api_key=(env.get(ENV_API_KEY) or data.get("api_key") or "").strip(),
        spreadsheet_id=(env.get(ENV_SPREADSHEET_ID) or data.get("spreadsheet_id") or "").strip(),
        areas=areas,
        max_retries=_env_number(env, ENV_MAX_RETRIES, int, _json_number(data, "max_retries", int, MAX_RETRIES)),
        retry_delay=_env_number(
            env, ENV_RETRY_DELAY, float, _json_number(data, "retry_delay", float, RETRY_BASE_DELAY_SECONDS)
        ),
        retry_max_delay=_json_number(data, "retry_max_delay", float, RETRY_MAX_DELAY_SECONDS),
        backoff=str(data.get("backoff", BACKOFF_MODE)),
        request_timeout=_env_number(
            env, ENV_REQUEST_TIMEOUT, float, _json_number(data, "request_timeout", float, REQUEST_TIMEOUT_SECONDS)
        ),
        cache_ttl=_env_number(env, ENV_CACHE_TTL, float, _json_number(data, "cache_ttl", float, CACHE_TTL_SECONDS)),
        default_center=default_center,
        region_bbox=bbox or None,
    )
