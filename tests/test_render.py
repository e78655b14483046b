from __future__ import annotations

import pytest

from drawmark_core.models import Box, Settings, Signers, Stamp, StampData
from drawmark_core.render import (
    BOX_FILL_OUT,
    BOX_STROKE,
    BOX_STROKE_OUT,
    TEXT_DARK,
    TEXT_LIGHT,
    BoxItem,
    StampItem,
    box_item,
    build_render_plan,
    plan_to_json,
    seal_font_size,
    stamp_item,
)
from drawmark_core.state import AppState


def test_box_item_formats_and_colours():
    box = Box(id=1, x=0, y=0, width=100, height=40, value="12.3456", ordinal=4)
    item = box_item(box, Settings())
    assert item.text == "12.35"
    assert item.label == "5"
    assert (item.stroke, item.text_color) == (BOX_STROKE, TEXT_DARK)
    assert item.font_size == pytest.approx(28.8)

    white = box_item(box, Settings(text_color_mode="white", show_box_numbers=False))
    assert white.text_color == TEXT_LIGHT and white.label is None


def test_out_of_tolerance_box_is_red():
    box = Box(id=1, width=30, height=30, value="1", out_of_tolerance=True)
    item = box_item(box, Settings(text_color_mode="white"))
    assert (item.stroke, item.fill, item.text_color) == (BOX_STROKE_OUT, BOX_FILL_OUT, BOX_STROKE_OUT)


def test_empty_box_has_no_text():
    assert box_item(Box(id=1, width=30, height=30), Settings()).text == ""


def test_stamp_layout_scales_down():
    stamp = Stamp(id=9, x=0, y=0, width=200, height=150, data=StampData(date="2024/5/1", signers=Signers(approval="山田")))
    item = stamp_item(stamp, "協立機興株式会社")
    assert item.scale == pytest.approx(150 / 330)
    assert item.company_name == "協立機興株式会社"
    assert item.spaced_title and item.order_label == "受注番号"
    assert [cell.label for cell in item.signers] == ["承認", "確認", "作成"]
    assert item.signers[0].name_font_size == pytest.approx(item.signers[0].seal_radius * 0.9)
    assert item.signers[1].name is None
    total = item.header_height + item.company_height + item.signer_area_height + item.order_height
    assert total == pytest.approx(150)


def test_tiny_stamp_drops_order_row():
    item = stamp_item(Stamp(id=1, width=80, height=60))
    assert item.order_height == 0 and item.order_label == ""
    assert not item.spaced_title


def test_seal_font_shrinks_with_name_length():
    sizes = [seal_font_size("あ" * n, 40) for n in (2, 3, 4, 5, 6)]
    assert sizes == sorted(sizes, reverse=True)


def test_plan_paints_boxes_before_stamps():
    state = AppState()
    state.stamps = [Stamp(id=3, width=200, height=150)]
    state.boxes = [Box(id=1, width=20, height=20), Box(id=2, width=20, height=20)]
    plan = build_render_plan(state, scale=2.0)
    assert [type(item) for item in plan] == [BoxItem, BoxItem, StampItem]
    data = plan_to_json(plan)
    assert [d["kind"] for d in data] == ["box", "box", "stamp"]
    assert data[0]["rect"] == (0.0, 0.0, 20, 20)
