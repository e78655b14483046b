"""Pointer/keyboard state machine driving the annotation state.

The controller is toolkit-free: the Qt canvas turns its events into
:class:`PointerEvent` objects (screen coordinates relative to the canvas) and
forwards them here. Every persistent mutation goes through :meth:`record`
so the history entry under the cursor always matches the live state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from . import assignment
from .config import EngineConfig
from .geometry import (
    clamp_menu_position,
    hit_test_handle,
    hit_test_rects,
    normalize_rect,
    pan,
    reset_transform,
    resize_rect,
    screen_to_canvas,
    zoom_at,
    zoom_by,
)
from .history import HistoryManager
from .models import Box, Measurement, Resizable, Stamp, StampData
from .state import DRAW, EDIT, AppState

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

MENU_WIDTH = 250.0
MENU_HEIGHT = 830.0
KEY_ZOOM_IN = 1.1
KEY_ZOOM_OUT = 0.9


class Interaction(Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    DRAGGING_BOX = "dragging_box"
    DRAGGING_STAMP = "dragging_stamp"
    RESIZING = "resizing"
    PANNING = "panning"
    EDITING_VALUE = "editing_value"


@dataclass(frozen=True)
class PointerEvent:
    x: float
    y: float
    button: str = "left"  # left | middle | right
    ctrl: bool = False


@dataclass
class ContextMenu:
    visible: bool = False
    x: float = 0.0
    y: float = 0.0
    box_id: Optional[int] = None


@dataclass
class ControllerHooks:
    """Callbacks into the front end."""

    confirm: Callable[[str], bool] = lambda message: True
    changed: Callable[[], None] = lambda: None


@dataclass
class _Gesture:
    target_id: Optional[int] = None
    start_canvas: Point = (0.0, 0.0)
    last_screen: Point = (0.0, 0.0)
    grab_offset: Point = (0.0, 0.0)
    handle: Optional[str] = None
    start_rect: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)


class InteractionController:
    def __init__(
        self,
        state: Optional[AppState] = None,
        history: Optional[HistoryManager] = None,
        config: Optional[EngineConfig] = None,
        hooks: Optional[ControllerHooks] = None,
    ):
        self.config = config or EngineConfig()
        self.state = state or AppState.from_config(self.config)
        self.history = history or HistoryManager(self.config.max_history)
        self.hooks = hooks or ControllerHooks()
        self.interaction = Interaction.IDLE
        self.candidate: Optional[Box] = None
        self.menu = ContextMenu()
        self.editing_box_id: Optional[int] = None
        self.editing_value = ""
        self.viewport: Tuple[float, float] = (1280.0, 1024.0)
        self._gesture = _Gesture()

    # ------------------------------------------------------------------
    # History
    def record(self, label: str, boxes_override: Optional[List[Box]] = None) -> None:
        if boxes_override is not None:
            self.state.boxes = [box.copy() for box in boxes_override]
        self.history.record(label, self.state.snapshot())
        self._changed()

    def undo(self) -> bool:
        return self._apply_snapshot(self.history.undo())

    def redo(self) -> bool:
        return self._apply_snapshot(self.history.redo())

    def jump_to(self, index: int) -> bool:
        return self._apply_snapshot(self.history.jump_to(index))

    def _apply_snapshot(self, snap) -> bool:
        if snap is None:
            return False
        self._abort_gesture()
        self.state.restore(snap)
        self._changed()
        return True

    def _changed(self) -> None:
        self.hooks.changed()

    # ------------------------------------------------------------------
    # Modes, loading and view
    @property
    def mode(self) -> str:
        return self.state.mode

    def set_mode(self, mode: str) -> None:
        if mode not in (DRAW, EDIT):
            raise ValueError(f"Unknown mode: {mode!r}")
        self.commit_edit()
        self._abort_gesture()
        self.state.mode = mode
        self._changed()

    def load_image(self, ref: str) -> None:
        """Install a new drawing; the view resets and history starts over."""
        self._abort_gesture()
        self.state.drawing_image = ref
        self.state.transform = reset_transform()
        self.history.clear()
        self.record("図面を読み込み")

    def load_state(self, record) -> None:
        self._abort_gesture()
        self.state.load_record(record)
        self.history.clear()
        self.record("作業状態を読み込み")

    def set_measurements(self, measurements: Sequence[Measurement]) -> None:
        self.state.measurements = list(measurements)
        self.record(f"測定値を読み込み（{len(measurements)}件）")

    def reset_view(self) -> None:
        self.state.transform = reset_transform()
        self._changed()

    def wheel(self, delta: float, pivot: Point) -> None:
        self.state.transform = zoom_at(
            self.state.transform, delta, pivot, self.config.min_scale, self.config.max_scale
        )
        self._changed()

    def zoom(self, factor: float, pivot: Optional[Point] = None) -> None:
        if pivot is None:
            pivot = (self.viewport[0] / 2.0, self.viewport[1] / 2.0)
        self.state.transform = zoom_by(
            self.state.transform, factor, pivot, self.config.min_scale, self.config.max_scale
        )
        self._changed()

    def to_canvas(self, event: PointerEvent) -> Point:
        return screen_to_canvas(event.x, event.y, self.state.transform)

    # ------------------------------------------------------------------
    # Hit testing
    def _min_size(self, item: Resizable) -> Tuple[float, float]:
        return item.min_size(
            self.state.settings.min_box_size,
            (self.config.stamp_min_width, self.config.stamp_min_height),
        )

    def item_at(self, point: Point) -> Optional[Resizable]:
        """Topmost box or stamp under a canvas point; stamps paint above boxes."""
        index = hit_test_rects([s.rect for s in self.state.stamps], point)
        if index is not None:
            return self.state.stamps[index]
        index = hit_test_rects([b.rect for b in self.state.boxes], point)
        if index is not None:
            return self.state.boxes[index]
        return None

    def handle_at(self, point: Point) -> Optional[Tuple[Resizable, str]]:
        items: List[Resizable] = list(self.state.boxes) + list(self.state.stamps)
        for item in reversed(items):
            handle = hit_test_handle(item.rect, point, self.state.transform, self.config.handle_size)
            if handle is not None:
                return item, handle
        return None

    # ------------------------------------------------------------------
    # Pointer events
    def pointer_down(self, event: PointerEvent) -> None:
        if self.interaction is Interaction.EDITING_VALUE:
            self.commit_edit()
        if event.button != "left":
            return
        self.menu = ContextMenu()
        point = self.to_canvas(event)
        gesture = _Gesture(start_canvas=point, last_screen=(event.x, event.y))

        if self.state.mode == DRAW:
            if self.state.drawing_image is None:
                return
            self.candidate = Box(
                id=self.state.next_id(),
                x=point[0],
                y=point[1],
                ordinal=assignment.next_available_ordinal(self.state.boxes),
                decimal_places=self.state.settings.default_decimal_places,
            )
            self._gesture = gesture
            self.interaction = Interaction.DRAWING
            return

        if event.ctrl:
            return
        hit = self.handle_at(point)
        if hit is not None:
            item, handle = hit
            gesture.target_id = item.id
            gesture.handle = handle
            gesture.start_rect = item.rect
            self._gesture = gesture
            self.interaction = Interaction.RESIZING
            return
        item = self.item_at(point)
        if item is not None:
            gesture.target_id = item.id
            gesture.grab_offset = (point[0] - item.x, point[1] - item.y)
            gesture.start_rect = item.rect
            self._gesture = gesture
            self.interaction = Interaction.DRAGGING_STAMP if isinstance(item, Stamp) else Interaction.DRAGGING_BOX
            return
        self._gesture = gesture
        self.interaction = Interaction.PANNING

    def pointer_move(self, event: PointerEvent) -> None:
        state = self.interaction
        gesture = self._gesture
        if state is Interaction.PANNING:
            dx = event.x - gesture.last_screen[0]
            dy = event.y - gesture.last_screen[1]
            self.state.transform = pan(self.state.transform, dx, dy)
            gesture.last_screen = (event.x, event.y)
            self._changed()
            return
        point = self.to_canvas(event)
        if state is Interaction.DRAWING and self.candidate is not None:
            x, y, w, h = normalize_rect(gesture.start_canvas, point)
            self.candidate = replace(self.candidate, x=x, y=y, width=w, height=h)
            self._changed()
        elif state in (Interaction.DRAGGING_BOX, Interaction.DRAGGING_STAMP):
            item = self._target()
            if item is not None:
                item.x = point[0] - gesture.grab_offset[0]
                item.y = point[1] - gesture.grab_offset[1]
                self._changed()
        elif state is Interaction.RESIZING and gesture.handle is not None:
            item = self._target()
            if item is not None:
                min_w, min_h = self._min_size(item)
                dx = point[0] - gesture.start_canvas[0]
                dy = point[1] - gesture.start_canvas[1]
                item.x, item.y, item.width, item.height = resize_rect(
                    gesture.start_rect, gesture.handle, dx, dy, min_w, min_h
                )
                self._changed()

    def pointer_up(self, event: Optional[PointerEvent] = None) -> None:
        state = self.interaction
        gesture = self._gesture
        self.interaction = Interaction.IDLE
        self._gesture = _Gesture()
        if state is Interaction.DRAWING:
            candidate, self.candidate = self.candidate, None
            self._commit_candidate(candidate)
        elif state in (Interaction.DRAGGING_BOX, Interaction.DRAGGING_STAMP, Interaction.RESIZING):
            item = self._find(gesture.target_id)
            if item is None or item.rect == gesture.start_rect:
                self._changed()
                return
            verb = "のサイズを変更" if state is Interaction.RESIZING else "を移動"
            self.record(f"{self._label(item)}{verb}")
        elif state is Interaction.PANNING:
            self._changed()

    def _commit_candidate(self, candidate: Optional[Box]) -> None:
        min_size = self.state.settings.min_box_size
        if candidate is None or not (candidate.width > min_size and candidate.height > min_size):
            logger.debug("Discarded box below minimum size %.1f", min_size)
            self._changed()
            return
        # ordinal is re-read at commit so concurrent deletes are honoured
        candidate = replace(candidate, ordinal=assignment.next_available_ordinal(self.state.boxes))
        self.state.boxes = self.state.boxes + [candidate]
        self.record(f"ボックス{candidate.ordinal + 1}を追加")

    def _abort_gesture(self) -> None:
        if self.interaction in (Interaction.DRAGGING_BOX, Interaction.DRAGGING_STAMP, Interaction.RESIZING):
            item = self._find(self._gesture.target_id)
            if item is not None:
                item.x, item.y, item.width, item.height = self._gesture.start_rect
        self.candidate = None
        self.editing_box_id = None
        self.editing_value = ""
        self.interaction = Interaction.IDLE
        self._gesture = _Gesture()

    def _find(self, item_id: Optional[int]) -> Optional[Resizable]:
        if item_id is None:
            return None
        for item in list(self.state.boxes) + list(self.state.stamps):
            if item.id == item_id:
                return item
        return None

    def _target(self) -> Optional[Resizable]:
        return self._find(self._gesture.target_id)

    @staticmethod
    def _label(item: Resizable) -> str:
        if isinstance(item, Box):
            return f"ボックス{item.ordinal + 1}"
        return "承認印"

    # ------------------------------------------------------------------
    # Inline value editing
    def double_click(self, event: PointerEvent) -> bool:
        if self.state.mode != EDIT:
            return False
        item = self.item_at(self.to_canvas(event))
        if not isinstance(item, Box):
            return False
        self.begin_edit(item.id)
        return True

    def begin_edit(self, box_id: int) -> None:
        box = self.state.box(box_id)
        self._abort_gesture()
        self.editing_box_id = box.id
        self.editing_value = box.value or ""
        self.interaction = Interaction.EDITING_VALUE
        self._changed()

    def update_edit(self, text: str) -> None:
        if self.interaction is Interaction.EDITING_VALUE:
            self.editing_value = text

    def commit_edit(self) -> bool:
        """Enter or focus loss: store the typed value as a manual edit."""
        if self.interaction is not Interaction.EDITING_VALUE or self.editing_box_id is None:
            return False
        box_id, value = self.editing_box_id, self.editing_value
        self.editing_box_id = None
        self.editing_value = ""
        self.interaction = Interaction.IDLE
        try:
            box = self.state.box(box_id)
        except KeyError:
            return False
        self.state.boxes = [
            replace(b, value=value, manually_edited=True) if b.id == box_id else b for b in self.state.boxes
        ]
        self.record(f"ボックス{box.ordinal + 1}の値を編集")
        return True

    def cancel_edit(self) -> None:
        if self.interaction is Interaction.EDITING_VALUE:
            self.editing_box_id = None
            self.editing_value = ""
            self.interaction = Interaction.IDLE
            self._changed()

    # ------------------------------------------------------------------
    # Context menu
    def context_menu(self, event: PointerEvent, window_pos: Optional[Point] = None) -> ContextMenu:
        """Open the box menu at ``event``; ``window_pos`` is the click in viewport space."""
        item = self.item_at(self.to_canvas(event))
        if not isinstance(item, Box):
            self.menu = ContextMenu()
            return self.menu
        wx, wy = window_pos if window_pos is not None else (event.x, event.y)
        x, y = clamp_menu_position(wx, wy, MENU_WIDTH, MENU_HEIGHT, self.viewport[0], self.viewport[1])
        self.menu = ContextMenu(visible=True, x=x, y=y, box_id=item.id)
        self._changed()
        return self.menu

    def hide_menu(self) -> None:
        self.menu = ContextMenu()
        self._changed()

    def change_ordinal(self, box_id: int, one_based) -> bool:
        """Renumber one box from operator input (one-based)."""
        if isinstance(one_based, str):
            one_based = assignment.parse_ordinal_input(one_based)
        updated = assignment.change_ordinal(self.state.boxes, box_id, int(one_based), self.hooks.confirm)
        if updated is None:
            return False
        self.menu = ContextMenu()
        self.record(f"ボックス{int(one_based)}に番号を変更", updated)
        return True

    def assign_specific(self, box_id: int, index: int) -> bool:
        if not 0 <= index < len(self.state.measurements):
            return False
        if not any(b.id == box_id for b in self.state.boxes):
            return False
        updated = assignment.assign_specific(self.state.boxes, box_id, index, self.state.measurements)
        self.menu = ContextMenu()
        self.record(f"ボックス{index + 1}に測定値を割り当て", updated)
        return True

    def set_font_size(self, box_id: int, size: Optional[float]) -> None:
        if size is not None and size <= 0:
            raise ValueError("font size must be positive")
        box = self.state.box(box_id)
        updated = [replace(b, font_size=size) if b.id == box_id else b for b in self.state.boxes]
        self.record(f"ボックス{box.ordinal + 1}の文字サイズを変更", updated)

    def set_decimal_places(self, box_id: int, decimal_places: int) -> None:
        if decimal_places < 0:
            raise ValueError("decimal_places must be non-negative")
        box = self.state.box(box_id)
        updated = [replace(b, decimal_places=int(decimal_places)) if b.id == box_id else b for b in self.state.boxes]
        self.menu = ContextMenu()
        self.record(f"ボックス{box.ordinal + 1}の桁数を変更", updated)

    def set_all_decimal_places(self, decimal_places: int) -> None:
        updated = assignment.set_all_decimal_places(self.state.boxes, decimal_places)
        self.state.settings.default_decimal_places = int(decimal_places)
        self.record(f"すべての桁数を{decimal_places}桁に変更", updated)

    def update_settings(self, **changes) -> bool:
        """Apply display settings as one undoable step; False when nothing changed."""
        current = self.state.settings
        # replace() rejects unknown field names with TypeError
        updated = replace(current, **changes)
        if updated == current:
            return False
        self.state.settings = updated
        self.record("表示設定を変更")
        return True

    # ------------------------------------------------------------------
    # Box collection commands
    def delete_box(self, box_id: int) -> None:
        box = self.state.box(box_id)
        self.menu = ContextMenu()
        self.record(f"ボックス{box.ordinal + 1}を削除", [b for b in self.state.boxes if b.id != box_id])

    def clear_boxes(self) -> bool:
        if not self.hooks.confirm("すべてのボックスを削除しますか？"):
            return False
        count = len(self.state.boxes)
        self.record(f"すべてのボックスをクリア（{count}個）", [])
        return True

    def auto_assign(self) -> None:
        self.record("測定値を自動転記", assignment.auto_assign(self.state.boxes, self.state.measurements))

    def renumber(self) -> bool:
        if not self.hooks.confirm("番号を整理しますか？\n※測定値との対応関係がリセットされます"):
            return False
        self.record("番号を整理", assignment.renumber(self.state.boxes))
        return True

    # ------------------------------------------------------------------
    # Approval stamps
    def add_stamp(self) -> Optional[Stamp]:
        if self.state.mode != EDIT:
            logger.info("Stamps can only be added in edit mode")
            return None
        stamp = self.state.new_stamp(self.config.company_name)
        self.state.stamps = self.state.stamps + [stamp]
        self.record("承認印を追加")
        return stamp

    def update_stamp(self, stamp_id: int, data: StampData) -> None:
        stamp = self.state.stamp(stamp_id)
        stamp.data = data
        self.record("承認印を編集")

    def delete_stamp(self, stamp_id: int) -> None:
        self.state.stamp(stamp_id)
        self.state.stamps = [s for s in self.state.stamps if s.id != stamp_id]
        self.record("承認印を削除")

    # ------------------------------------------------------------------
    # Keyboard
    def key_press(self, key: str, ctrl: bool = False, shift: bool = False) -> bool:
        """Handle a key; returns True when consumed."""
        key_lower = key.lower()
        if ctrl:
            if key_lower == "z" and not shift:
                self.undo()
                return True
            if key_lower == "y" or (key_lower == "z" and shift):
                self.redo()
                return True
            if key in ("+", "="):
                self.zoom(KEY_ZOOM_IN)
                return True
            if key == "-":
                self.zoom(KEY_ZOOM_OUT)
                return True
            if key == "0":
                self.reset_view()
                return True
            return False
        if key == "Escape":
            if self.interaction is Interaction.EDITING_VALUE:
                self.cancel_edit()
                return True
            if self.interaction is Interaction.DRAWING:
                self._abort_gesture()
                self._changed()
                return True
            if self.menu.visible:
                self.hide_menu()
                return True
            return False
        if key == "Enter" and self.interaction is Interaction.EDITING_VALUE:
            return self.commit_edit()
        return False


__all__ = [
    "ContextMenu",
    "ControllerHooks",
    "Interaction",
    "InteractionController",
    "PointerEvent",
]
