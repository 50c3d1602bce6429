"""Category inference from flag columns and free-text genre."""
from __future__ import annotations

import unicodedata
from typing import Dict, List, Mapping, Optional, Tuple

from .models import PoiType

JAPANESE = "japanese"
WESTERN = "western"
OTHER = "other"
RETAIL = "retail"
FUSION = "fusion"
UNSPECIFIED = "unspecified"

FOOD_FLAGS = (JAPANESE, WESTERN, OTHER)
FLAG_FIELDS = FOOD_FLAGS + (RETAIL,)

TRUTHY_VALUES = frozenset({"true", "1", "yes", "y", "○", "◯", "有", "あり"})

# Ordered: earlier entries win the primary category when several match.
GENRE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    JAPANESE: ("日本料理", "和食", "寿司", "すし", "鮨", "そば", "蕎麦", "うどん", "定食", "丼", "居酒屋", "割烹"),
    WESTERN: ("洋食", "イタリアン", "フレンチ", "パスタ", "ピザ", "洋菓子", "パン", "カフェ", "ハンバーガー"),
    OTHER: ("エスニック", "アジア", "中華", "ラーメン", "韓国", "タイ料理", "インド料理", "ファストフード"),
    RETAIL: ("物産", "販売", "ショップ", "マーケット", "お土産", "土産", "特産"),
}

POI_TYPE_PATTERNS: Dict[PoiType, Tuple[str, ...]] = {
    PoiType.PARKING: ("駐車場", "パーキング", "parking"),
    PoiType.TOILET: ("トイレ", "手洗い", "お手洗い", "wc", "化粧室"),
    PoiType.RESTAURANT: (
        "食堂", "レストラン", "カフェ", "喫茶", "居酒屋", "バー", "スナック",
        "食事", "ランチ", "寿司", "そば", "うどん", "ラーメン", "料理",
    ),
    PoiType.ATTRACTION: ("観光", "名所", "史跡", "旧跡", "神社", "寺院", "寺", "公園"),
    PoiType.SHOP: ("スーパー", "コンビニ", "パン", "販売", "ショップ", "物産", "店"),
}


def fold(text: Optional[str]) -> str:
    if not text:
        return ""
    return unicodedata.normalize("NFKC", text).lower()


def is_truthy(value: Optional[str]) -> bool:
    return fold(value).strip() in TRUTHY_VALUES


def categories_from_flags(flags: Mapping[str, bool]) -> Optional[Tuple[str, ...]]:
    """Decision table over the boolean category columns.

    retail wins over food flags; two or more food flags map to fusion; a single
    food flag maps to itself. Returns None when no flag is set.
    """
    if flags.get(RETAIL):
        return (RETAIL,)
    food = [name for name in FOOD_FLAGS if flags.get(name)]
    if not food:
        return None
    if len(food) >= 2:
        return (FUSION,)
    return (food[0],)


def categories_from_genre(*texts: Optional[str]) -> Tuple[str, ...]:
    haystack = " ".join(fold(t) for t in texts if t)
    if not haystack.strip():
        return ()
    found: List[str] = []
    for category, keywords in GENRE_KEYWORDS.items():
        if category in found:
            continue
        if any(fold(keyword) in haystack for keyword in keywords):
            found.append(category)
    return tuple(found)


def classify(flags: Mapping[str, bool], genre: str = "", category_text: str = "") -> Tuple[str, ...]:
    """Return the ordered, deduplicated categories for one row.

    Flags first, then genre keywords, then UNSPECIFIED.
    """
    from_flags = categories_from_flags(flags)
    if from_flags:
        return from_flags
    from_genre = categories_from_genre(genre, category_text)
    if from_genre:
        return from_genre
    return (UNSPECIFIED,)


def infer_poi_type(genre: str = "", default: Optional[PoiType] = None) -> PoiType:
    if default is not None:
        return default
    text = fold(genre)
    if text:
        for poi_type, patterns in POI_TYPE_PATTERNS.items():
            if any(fold(p) in text for p in patterns):
                return poi_type
    return PoiType.OTHER
