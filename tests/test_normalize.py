from sado_poi.config import AreaSource, SheetsConfig
from sado_poi.models import PoiType, SheetTable
from sado_poi.normalize import RowParser, normalize_search_text


class RecordingLog:
    def __init__(self):
        self.events = []

    def log(self, level, message, context=None):
        self.events.append((level, message, dict(context or {})))

    def kinds(self):
        return [ctx.get("kind") for _, _, ctx in self.events if ctx.get("kind")]


SMALL_COLUMNS = {"name": 0, "wkt": 1, "closed": 2, "genre": 3, "parking": 4}


def _config(**area_kwargs):
    area_kwargs.setdefault("index_columns", SMALL_COLUMNS)
    area_kwargs.setdefault("poi_type", PoiType.RESTAURANT)
    area = AreaSource(area_id="RYOTSU_AIKAWA", label="両津・相川地区", sheet_name="両津・相川地区", **area_kwargs)
    return SheetsConfig(areas={"RYOTSU_AIKAWA": area})


def _table(*rows, header=("name", "wkt", "closed", "genre", "parking")):
    return SheetTable(header=header, rows=tuple(tuple(r) for r in rows))


def test_row_becomes_poi():
    parser = RowParser(_config(), log=RecordingLog())

    pois = parser.parse_rows(
        "RYOTSU_AIKAWA",
        _table(("和食店A", "POINT (138.40 38.05)", "FALSE", "寿司", "あり")),
    )
    assert len(pois) == 1
    poi = pois[0]
    assert poi.id == "RYOTSU_AIKAWA-0"
    assert poi.name == "和食店A"
    assert (poi.lat, poi.lng) == (38.05, 138.40)
    assert poi.category == "japanese"
    assert poi.categories == ("japanese",)
    assert poi.type == PoiType.RESTAURANT
    assert not poi.is_closed
    assert poi.flags.has_parking
    assert not poi.coordinates_defaulted
    assert "和食店a" in poi.search_text
    assert "両津" in poi.search_text


def test_missing_name_is_rejected_and_siblings_survive():
    log = RecordingLog()
    parser = RowParser(_config(), log=log)

    pois = parser.parse_rows(
        "RYOTSU_AIKAWA",
        _table(
            ("", "POINT (138.40 38.05)", "FALSE", "寿司"),
            ("店B", "POINT (138.41 38.06)", "TRUE", "カフェ"),
            ("店C", "POINT (abc def)", "", ""),
        ),
    )
    assert [p.name for p in pois] == ["店B", "店C"]
    assert [p.id for p in pois] == ["RYOTSU_AIKAWA-1", "RYOTSU_AIKAWA-2"]
    assert pois[0].is_closed
    assert pois[1].coordinates_defaulted
    assert log.kinds() == ["RowValidationError", "CoordinateWarning"]
    stats = parser.last_stats["RYOTSU_AIKAWA"]
    assert (stats.total, stats.emitted, stats.rejected, stats.defaulted) == (3, 2, 1, 1)


def test_blank_rows_are_skipped_quietly():
    log = RecordingLog()
    parser = RowParser(_config(), log=log)

    pois = parser.parse_rows(
        "RYOTSU_AIKAWA",
        _table(("", "", "", ""), (), ("店A", "POINT (138.40 38.05)")),
    )
    assert [p.id for p in pois] == ["RYOTSU_AIKAWA-2"]
    assert log.kinds() == []
    assert parser.last_stats["RYOTSU_AIKAWA"].blank == 2


def test_parse_is_idempotent():
    parser = RowParser(_config(), log=RecordingLog())
    table = _table(
        ("和食店A", "POINT (138.40 38.05)", "FALSE", "寿司"),
        ("洋食店B", "POINT (138.30 38.00)", "FALSE", "イタリアン"),
    )

    assert parser.parse_rows("RYOTSU_AIKAWA", table) == parser.parse_rows("RYOTSU_AIKAWA", table)


def test_name_counter_ids():
    parser = RowParser(_config(id_strategy="name_counter"), log=RecordingLog())

    pois = parser.parse_rows(
        "RYOTSU_AIKAWA",
        _table(("Cafe X", "POINT (138.40 38.05)"), ("Cafe X", "POINT (138.40 38.05)")),
    )
    assert [p.id for p in pois] == ["cafe_x-1", "cafe_x-2"]


def test_header_mode_with_explicit_ids_and_latlng_columns():
    config = _config(column_mode="header", coordinate_mode="auto", index_columns=None)
    parser = RowParser(config, log=RecordingLog())
    table = SheetTable(
        header=("ID", "名称", "北緯", "東経", "ジャンル", "月曜日", "キャッシュレス"),
        rows=(("snack-7", "スナック花", "38.05", "138.40", "スナック", "19:00-24:00", "○"),),
    )

    poi = parser.parse_rows("RYOTSU_AIKAWA", table)[0]
    assert poi.id == "snack-7"
    assert poi.coordinates.as_tuple() == (38.05, 138.40)
    assert poi.business_hours.monday == "19:00-24:00"
    assert poi.flags.has_cashless
    assert poi.category == "unspecified"


def test_missing_columns_warned_once_per_sheet():
    log = RecordingLog()
    parser = RowParser(_config(column_mode="header", index_columns=None), log=log)

    parser.parse_rows("RYOTSU_AIKAWA", SheetTable(header=("foo",), rows=(("a",), ("b",))))
    warnings = [ctx for _, m, ctx in log.events if m == "Sheet is missing expected columns"]
    assert len(warnings) == 1
    assert "name" in warnings[0]["missing"]
    assert warnings[0]["mapped"] == []


def test_normalize_search_text():
    assert normalize_search_text("カフェ") == "かふぇ"
    assert normalize_search_text("ＡＢＣ", None, "  Sado  ") == "abc sado"
