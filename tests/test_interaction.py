from __future__ import annotations

import pytest

from drawmark_core.errors import InvalidOrdinalError
from drawmark_core.interaction import ControllerHooks, Interaction, InteractionController, PointerEvent
from drawmark_core.models import Measurement, StampData
from drawmark_core.state import DRAW, EDIT

from .conftest import drag


def draw_box(controller, x, y, w, h):
    drag(controller, (x, y), (x + w, y + h))
    return controller.state.boxes[-1]


def assert_history_matches_state(controller):
    assert controller.history.current_snapshot() == controller.state.snapshot()


def test_small_drags_do_not_create_boxes(controller):
    drag(controller, (10, 10), (15, 15))
    assert controller.state.boxes == []
    assert len(controller.history) == 1
    drag(controller, (10, 10), (20, 60))  # exactly min width is still too small
    assert controller.state.boxes == []


def test_drawing_creates_numbered_box(controller):
    box = draw_box(controller, 10, 10, 50, 30)
    assert box.rect == (10, 10, 50, 30)
    assert box.ordinal == 0 and box.value is None
    assert controller.history.entries[-1].action == "ボックス1を追加"
    assert_history_matches_state(controller)


def test_drawing_backwards_normalises_rect(controller):
    box = draw_box(controller, 100, 100, -40, -20)
    assert box.rect == (60, 80, 40, 20)


def test_deleted_numbers_are_reused(controller):
    boxes = [draw_box(controller, 10 + 60 * i, 10, 50, 30) for i in range(3)]
    controller.delete_box(boxes[1].id)
    assert [b.ordinal for b in controller.state.boxes] == [0, 2]
    assert draw_box(controller, 10, 100, 50, 30).ordinal == 1


def test_no_drawing_without_image():
    controller = InteractionController()
    controller.pointer_down(PointerEvent(10, 10))
    assert controller.interaction is Interaction.IDLE
    assert controller.candidate is None


def test_undo_redo_restore_boxes(controller):
    draw_box(controller, 10, 10, 50, 30)
    draw_box(controller, 100, 10, 50, 30)
    assert controller.key_press("z", ctrl=True)
    assert len(controller.state.boxes) == 1
    controller.undo()
    assert controller.state.boxes == []
    assert controller.key_press("Z", ctrl=True, shift=True)
    controller.key_press("y", ctrl=True)
    assert len(controller.state.boxes) == 2
    assert_history_matches_state(controller)


def test_drag_moves_box_in_edit_mode(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_mode(EDIT)
    controller.pointer_down(PointerEvent(20, 20))
    assert controller.interaction is Interaction.DRAGGING_BOX
    controller.pointer_move(PointerEvent(40, 50))
    controller.pointer_up(PointerEvent(40, 50))
    assert controller.state.boxes[0].rect == (30, 40, 50, 30)
    assert controller.history.entries[-1].action == "ボックス1を移動"
    assert_history_matches_state(controller)


def test_click_without_movement_records_nothing(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_mode(EDIT)
    entries = len(controller.history)
    drag(controller, (20, 20), (20, 20))
    assert len(controller.history) == entries


def test_resize_from_corner_handle(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_mode(EDIT)
    controller.pointer_down(PointerEvent(60, 40))
    assert controller.interaction is Interaction.RESIZING
    controller.pointer_move(PointerEvent(80, 50))
    controller.pointer_up()
    assert controller.state.boxes[0].rect == (10, 10, 70, 40)
    assert controller.history.entries[-1].action == "ボックス1のサイズを変更"


def test_drag_on_empty_space_pans_view(controller):
    controller.set_mode(EDIT)
    entries = len(controller.history)
    drag(controller, (300, 300), (310, 320))
    t = controller.state.transform
    assert (t.translate_x, t.translate_y) == (10, 20)
    assert len(controller.history) == entries


def test_mouse_coordinates_follow_the_view(controller):
    controller.wheel(-1, (0, 0))
    controller.wheel(-1, (0, 0))
    scale = controller.state.transform.scale
    box = draw_box(controller, 121, 121, 121, 121)
    assert box.x == pytest.approx(121 / scale)
    assert box.width == pytest.approx(121 / scale)


def test_inline_edit_commits_and_cancels(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_mode(EDIT)
    assert controller.double_click(PointerEvent(20, 20))
    controller.update_edit("1.5")
    assert controller.key_press("Enter")
    box = controller.state.boxes[0]
    assert (box.value, box.manually_edited) == ("1.5", True)

    controller.double_click(PointerEvent(20, 20))
    controller.update_edit("999")
    assert controller.key_press("Escape")
    assert controller.state.boxes[0].value == "1.5"
    assert controller.interaction is Interaction.IDLE


def test_pointer_down_elsewhere_commits_edit(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_mode(EDIT)
    controller.double_click(PointerEvent(20, 20))
    controller.update_edit("2.25")
    controller.pointer_down(PointerEvent(400, 400))
    controller.pointer_up()
    assert controller.state.boxes[0].value == "2.25"


def test_double_click_ignored_in_draw_mode(controller):
    draw_box(controller, 10, 10, 50, 30)
    assert not controller.double_click(PointerEvent(20, 20))


def test_context_menu_only_on_boxes(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.viewport = (1280.0, 1024.0)
    menu = controller.context_menu(PointerEvent(20, 20, "right"), (100.0, 100.0))
    assert menu.visible and (menu.x, menu.y) == (150.0, 10.0)
    assert controller.key_press("Escape")
    assert not controller.menu.visible
    assert not controller.context_menu(PointerEvent(500, 500, "right")).visible


def test_menu_actions(controller):
    box = draw_box(controller, 10, 10, 50, 30)
    controller.set_measurements([Measurement("a", "1.23456"), Measurement("b", "2.5", out_of_tolerance=True)])
    assert controller.assign_specific(box.id, 1)
    assert controller.state.boxes[0].value == "2.5"
    assert controller.state.boxes[0].out_of_tolerance
    controller.set_font_size(box.id, 14)
    controller.set_decimal_places(box.id, 4)
    controller.change_ordinal(box.id, "3")
    updated = controller.state.box(box.id)
    assert (updated.font_size, updated.decimal_places, updated.ordinal) == (14, 4, 2)
    with pytest.raises(InvalidOrdinalError):
        controller.change_ordinal(box.id, "abc")
    with pytest.raises(ValueError):
        controller.set_font_size(box.id, 0)
    assert_history_matches_state(controller)


def test_assign_specific_ignores_unknown_box(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.set_measurements([Measurement("a", "1.0")])
    entries = len(controller.history)
    assert not controller.assign_specific(999, 0)
    assert len(controller.history) == entries
    assert_history_matches_state(controller)


def test_settings_changes_are_undoable(controller):
    draw_box(controller, 10, 10, 50, 30)
    assert controller.update_settings(text_color_mode="white", show_box_numbers=False)
    assert controller.history.entries[-1].action == "表示設定を変更"
    assert_history_matches_state(controller)
    assert not controller.update_settings(text_color_mode="white")
    controller.undo()
    assert controller.state.settings.text_color_mode == "black"
    controller.redo()
    assert controller.state.settings.text_color_mode == "white"
    assert not controller.state.settings.show_box_numbers
    with pytest.raises(TypeError):
        controller.update_settings(colour="red")


def test_wheel_zoom_keeps_point_under_cursor(controller):
    controller.set_mode(EDIT)
    drag(controller, (500, 500), (460, 470))  # pan away from the origin first
    pivot = (400.0, 300.0)
    before = controller.state.transform
    anchor = ((pivot[0] - before.translate_x) / before.scale, (pivot[1] - before.translate_y) / before.scale)
    for _ in range(5):
        controller.wheel(-120, pivot)
    after = controller.state.transform
    assert (anchor[0] * after.scale + after.translate_x, anchor[1] * after.scale + after.translate_y) == pytest.approx(pivot)


def test_auto_assign_and_renumber_commands(controller):
    first = draw_box(controller, 10, 10, 50, 30)
    draw_box(controller, 100, 10, 50, 30)
    controller.delete_box(first.id)
    controller.set_measurements([Measurement("a", "1.0"), Measurement("b", "2.0")])
    controller.auto_assign()
    assert controller.state.boxes[0].value == "2.0"
    assert controller.renumber()
    assert controller.state.boxes[0].ordinal == 0
    assert controller.state.boxes[0].value is None
    assert controller.history.entries[-1].action == "番号を整理"


def test_confirmation_can_cancel_destructive_commands():
    answers = []
    controller = InteractionController(hooks=ControllerHooks(confirm=lambda message: answers.append(message) or False))
    controller.load_image("drawing.png")
    draw_box(controller, 10, 10, 50, 30)
    assert not controller.clear_boxes()
    assert not controller.renumber()
    assert len(controller.state.boxes) == 1
    assert len(answers) == 2


def test_stamps_lifecycle(controller):
    assert controller.add_stamp() is None
    controller.set_mode(EDIT)
    stamp = controller.add_stamp()
    assert stamp.rect == (100, 100, 200, 150)
    assert stamp.data.company_name == controller.config.company_name

    # shrinking from the nw corner stops at the minimum size
    drag(controller, (100, 100), (250, 250))
    assert controller.state.stamp(stamp.id).rect == (100, 100, 200, 150)

    drag(controller, (150, 150), (170, 160))
    assert controller.state.stamp(stamp.id).rect == (120, 110, 200, 150)
    assert controller.history.entries[-1].action == "承認印を移動"

    controller.update_stamp(stamp.id, StampData(title="成績書", order_no="A-1"))
    assert controller.state.stamp(stamp.id).data.order_no == "A-1"
    controller.undo()
    assert controller.state.stamp(stamp.id).data.order_no == ""
    controller.delete_stamp(stamp.id)
    assert controller.state.stamps == []


def test_keyboard_zoom_and_reset(controller):
    controller.viewport = (800.0, 600.0)
    controller.key_press("+", ctrl=True)
    assert controller.state.transform.scale == pytest.approx(1.1)
    controller.key_press("-", ctrl=True)
    controller.key_press("-", ctrl=True)
    assert controller.state.transform.scale == pytest.approx(1.1 * 0.81)
    controller.key_press("0", ctrl=True)
    assert controller.state.transform.scale == 1.0
    assert not controller.key_press("q", ctrl=True)


def test_set_mode_rejects_unknown_modes(controller):
    with pytest.raises(ValueError):
        controller.set_mode("erase")
    controller.set_mode(EDIT)
    assert controller.mode == EDIT
    controller.set_mode(DRAW)


def test_loading_an_image_resets_view_and_history(controller):
    draw_box(controller, 10, 10, 50, 30)
    controller.wheel(-1, (10, 10))
    controller.load_image("other.png")
    assert controller.state.transform.scale == 1.0
    assert len(controller.history) == 1
    assert not controller.history.can_undo
