import pytest

from sado_poi import config
from sado_poi.columns import HeaderColumnMap, IndexColumnMap, build_column_map


def test_header_map_uses_candidate_priority():
    header = ("ID", "名称", "名称（入力）", " 北緯 ", "東経")

    columns = HeaderColumnMap.from_header(header)
    assert columns.index_of("name") == 2
    assert columns.index_of("lat") == 3
    assert columns.index_of("id") == 0
    assert not columns.has("wkt")


def test_header_map_first_duplicate_wins():
    columns = HeaderColumnMap.from_header(("名称", "名称"))
    assert columns.index_of("name") == 0


def test_get_is_total():
    columns = IndexColumnMap({"name": 0, "address": 3})
    row = ("  店A ", "x")

    assert columns.get(row, "name") == "店A"
    assert columns.get(row, "address") == ""
    assert columns.get(row, "not_a_field") == ""
    assert columns.get((), "name") == ""


def test_build_column_map_modes():
    legacy = build_column_map("index")
    assert legacy.mode == "index"
    assert legacy.index_of("wkt") == 1
    assert legacy.index_of("name") == 32
    assert legacy.index_of("address") == 49

    custom = build_column_map("index", index_table={"name": 0})
    assert custom.fields() == ["name"]

    header = build_column_map("header", header=("名称（入力）", "WKT（入力）"))
    assert header.mode == "header"
    assert header.index_of("wkt") == 1

    with pytest.raises(ValueError):
        build_column_map("bogus")


def test_missing_reports_unmapped_fields():
    columns = HeaderColumnMap.from_header(("名称",), config.HEADER_CANDIDATES)
    assert columns.missing(["name", "lat", "lng"]) == ["lat", "lng"]
