from __future__ import annotations

import random

from drawmark_core.pdf_parser import (
    FALLBACK_MEASUREMENTS,
    FALLBACK_WARNING,
    TextFragment,
    detect_format,
    group_rows,
    is_out_of_tolerance,
    parse_pages,
    read_column_row,
    read_free_row,
)

from .conftest import row


def test_group_rows_orders_top_down_then_left_right():
    fragments = [
        TextFragment("b", 80, 699.0),
        TextFragment("c", 10, 650.0),
        TextFragment("a", 10, 700.4),
    ]
    rows = group_rows(fragments)
    assert [[f.text for f in r] for r in rows] == [["a", "b"], ["c"]]


def test_free_layout_row(free_page):
    result = parse_pages([free_page])
    assert result.formats == ["free"]
    assert result.warning is None and not result.used_fallback
    first, second = result.measurements
    assert (first.name, first.value, first.unit, first.out_of_tolerance) == ("平面度1", "0.0392", "mm", False)
    assert (second.name, second.value, second.out_of_tolerance) == ("直径円16", "15.9222", True)


def test_column_layout_rows(column_page):
    result = parse_pages([column_page])
    assert result.formats == ["columns"]
    assert [(m.name, m.value, m.out_of_tolerance) for m in result.measurements] == [
        ("直径円1_6H7", "6.0188", True),
        ("同心度3", "0.0706", False),
    ]


def test_nothing_recognised_falls_back():
    result = parse_pages([row(500, "no", "table", "here")])
    assert result.used_fallback
    assert result.warning == FALLBACK_WARNING
    assert result.measurements == list(FALLBACK_MEASUREMENTS)
    assert len(result.measurements) == 7
    assert parse_pages([]).used_fallback


def test_rows_repeated_across_pages_are_kept_once(free_page):
    result = parse_pages([free_page, list(free_page)])
    assert len(result.measurements) == 2
    assert result.formats == ["free", "free"]


def test_parse_is_independent_of_fragment_order(free_page, column_page):
    expected = parse_pages([free_page, column_page]).asdict()
    shuffled = [list(free_page), list(column_page)]
    rng = random.Random(7)
    for page in shuffled:
        rng.shuffle(page)
    assert parse_pages(shuffled).asdict() == expected


def test_design_value_rows_are_rejected():
    assert read_free_row("設計値 1.0000 1.0000 0.1000 0.0000", set()) is None
    assert read_free_row("平面度1 0.0392 0.0000 0.0500 0.0000", {("平面度1", "0.0392")}) is None


def test_column_row_needs_name_before_numbers():
    assert read_column_row(["6.0188", "6.0000"]) is None
    assert read_column_row(["名前", "測定値"]) is None
    only_measured = read_column_row(["穴", "1.2345"])
    assert only_measured.value == "1.2345" and only_measured.out_of_tolerance is False


def test_detect_format():
    assert detect_format([row(0, "測定値", "設計値")]) == "columns"
    assert detect_format([row(0, "free", "text")]) == "free"


def test_tolerance_check():
    assert is_out_of_tolerance("1.06", "1.0", "0.05", "-0.05")
    assert not is_out_of_tolerance("1.02", "1.0", "0.05", "-0.05")
    assert not is_out_of_tolerance("1.02", None, "0.05", "-0.05")
    assert not is_out_of_tolerance("x", "1.0", "0.05", "-0.05")
