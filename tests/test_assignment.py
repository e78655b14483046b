from __future__ import annotations

import pytest

from drawmark_core import assignment
from drawmark_core.errors import InvalidOrdinalError
from drawmark_core.models import Box, Measurement

ROWS = [
    Measurement("平面度1", "0.0392"),
    Measurement("直径円16", "15.9222", out_of_tolerance=True),
    Measurement("同心度3", "0.0706"),
]


def make_boxes(*ordinals, **kwargs):
    return [Box(id=index + 1, x=0, y=0, width=20, height=20, ordinal=o, **kwargs) for index, o in enumerate(ordinals)]


def test_auto_assign_binds_by_ordinal():
    boxes = make_boxes(0, 1, 5)
    result = assignment.auto_assign(boxes, ROWS)
    assert [b.value for b in result] == ["0.0392", "15.9222", None]
    assert result[1].out_of_tolerance is True
    assert all(b.value is None for b in boxes), "input must not be mutated"


def test_auto_assign_is_idempotent_and_skips_manual_edits():
    boxes = make_boxes(0, 2)
    boxes[1].value = "9.99"
    boxes[1].manually_edited = True
    once = assignment.auto_assign(boxes, ROWS)
    assert once[1].value == "9.99"
    assert assignment.auto_assign(once, ROWS) == once


def test_assign_specific_rebinds_one_box():
    boxes = make_boxes(0, 1)
    boxes[0].manually_edited = True
    result = assignment.assign_specific(boxes, 1, 2, ROWS)
    assert (result[0].ordinal, result[0].value, result[0].manually_edited) == (2, "0.0706", False)
    assert result[1] == boxes[1]
    assert assignment.assign_specific(boxes, 1, 7, ROWS) == boxes
    assert assignment.assign_specific(boxes, 99, 0, ROWS) == boxes


def test_next_available_ordinal_fills_gaps():
    assert assignment.next_available_ordinal([]) == 0
    assert assignment.next_available_ordinal(make_boxes(0, 1, 3)) == 2
    assert assignment.next_available_ordinal(make_boxes(1, 2)) == 0


def test_renumber_compacts_in_ordinal_order():
    boxes = make_boxes(4, 0, 2)
    for box in boxes:
        box.value = "1.0"
    boxes[0].manually_edited = True
    result = assignment.renumber(boxes)
    assert [(b.id, b.ordinal) for b in result] == [(2, 0), (3, 1), (1, 2)]
    assert [b.value for b in result] == [None, None, "1.0"]


def test_change_ordinal_validates_range():
    boxes = make_boxes(0)
    for bad in (0, 1001, -3):
        with pytest.raises(InvalidOrdinalError):
            assignment.change_ordinal(boxes, 1, bad)
    assert assignment.change_ordinal(boxes, 1, 1000)[0].ordinal == 999
    with pytest.raises(KeyError):
        assignment.change_ordinal(boxes, 42, 3)


def test_change_ordinal_asks_before_duplicating():
    boxes = make_boxes(0, 1)
    prompts = []

    def refuse(message):
        prompts.append(message)
        return False

    assert assignment.change_ordinal(boxes, 1, 2, refuse) is None
    assert prompts == ["番号 2 は既に使用されています。上書きしますか？"]
    result = assignment.change_ordinal(boxes, 1, 2, lambda message: True)
    assert [b.ordinal for b in result] == [1, 1]


def test_change_ordinal_without_collision_does_not_prompt():
    def explode(message):
        raise AssertionError("should not ask")

    result = assignment.change_ordinal(make_boxes(0, 1), 2, 8, explode)
    assert result[1].ordinal == 7


def test_parse_ordinal_input():
    assert assignment.parse_ordinal_input(" 7 ") == 7
    with pytest.raises(InvalidOrdinalError):
        assignment.parse_ordinal_input("seven")


def test_set_all_decimal_places():
    result = assignment.set_all_decimal_places(make_boxes(0, 1), 4)
    assert {b.decimal_places for b in result} == {4}
    with pytest.raises(ValueError):
        assignment.set_all_decimal_places([], -1)
