"""Qt widgets for the drawmark playground UI."""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Sequence

from PySide6.QtCore import QEvent, QObject, QPointF, QRectF, Qt, QTimer, Signal
from PySide6.QtGui import QColor, QFont, QImage, QPainter, QPen, QPixmap
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDockWidget,
    QFileDialog,
    QInputDialog,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMenu,
    QMessageBox,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from drawmark_core.config import EngineConfig
from drawmark_core.errors import DrawmarkError, InvalidOrdinalError, WorkStateLoadError
from drawmark_core.geometry import HANDLES, canvas_to_screen, handle_position, handle_size_for_scale
from drawmark_core.interaction import ControllerHooks, Interaction, InteractionController, PointerEvent
from drawmark_core.pdf_parser import ParseResult
from drawmark_core.pdf_source import PdfPlumberSource, SourceProvider
from drawmark_core.persistence import LocalFileStore, SaveCoordinator, read_record, write_record
from drawmark_core.render import EXPORT_SCALE, BoxItem, StampItem, build_render_plan
from drawmark_core.state import DRAW, EDIT

logger = logging.getLogger(__name__)

FONT_SIZE_CHOICES = (6, 8, 10, 12, 14, 16, 20, 24, 32)
DECIMAL_CHOICES = (0, 1, 2, 3, 4)
LABEL_BASE_SIZE = 12.0


# ---------------------------------------------------------------------------
# Painting (shared by the canvas and PNG export)

def _serif(size: float, bold: bool = True) -> QFont:
    font = QFont("Yu Mincho")
    font.setStyleHint(QFont.Serif)
    font.setPixelSize(max(1, int(round(size))))
    font.setBold(bold)
    return font


def _draw_box(painter: QPainter, item: BoxItem) -> None:
    x, y, w, h = item.rect
    rect = QRectF(x, y, w, h)
    painter.fillRect(rect, QColor(item.fill))
    if item.border_width > 0:
        pen = QPen(QColor(item.stroke))
        pen.setWidthF(item.border_width)
        painter.setPen(pen)
        painter.drawRect(rect)
    if not item.text:
        return
    font = QFont("Noto Sans JP")
    font.setPixelSize(max(1, int(round(item.font_size))))
    font.setBold(True)
    painter.setFont(font)
    painter.setPen(QColor(item.text_color))
    if not item.vertical:
        painter.drawText(rect, Qt.AlignCenter, item.text)
        return
    spacing = item.font_size * 1.2
    top = y + h / 2.0 - spacing * len(item.text) / 2.0
    for index, char in enumerate(item.text):
        cell = QRectF(x, top + spacing * index, w, spacing)
        painter.drawText(cell, Qt.AlignCenter, char)


def _draw_stamp(painter: QPainter, item: StampItem) -> None:
    x, y, w, h = item.rect
    s = item.scale
    red = QColor("#ff0000")
    painter.fillRect(QRectF(x, y, w, h), QColor("#ffffff"))
    painter.setPen(QPen(red, 3))
    painter.drawRect(QRectF(x, y, w, h))

    header_bottom = y + item.header_height
    painter.drawLine(QPointF(x, header_bottom), QPointF(x + w, header_bottom))
    painter.setFont(_serif(item.title_font_size))
    title = " ".join(item.title) if item.spaced_title else item.title
    painter.drawText(QRectF(x, y + 10 * s, w, item.title_font_size * 1.4), Qt.AlignHCenter | Qt.AlignTop, title)
    painter.setFont(_serif(item.date_font_size, bold=False))
    date_rect = QRectF(x, header_bottom - 20 * s - item.date_font_size, w - 15 * s, item.date_font_size * 1.4)
    painter.drawText(date_rect, Qt.AlignRight | Qt.AlignVCenter, item.date)

    company_bottom = header_bottom + item.company_height
    painter.drawLine(QPointF(x, company_bottom), QPointF(x + w, company_bottom))
    painter.setFont(_serif(item.company_font_size))
    painter.drawText(QRectF(x, header_bottom, w, item.company_height), Qt.AlignCenter, item.company_name)

    area_bottom = company_bottom + item.signer_area_height
    painter.setPen(QPen(red, 2))
    column = w / 3.0
    for index in (1, 2):
        painter.drawLine(QPointF(x + column * index, company_bottom), QPointF(x + column * index, area_bottom))
    label_bottom = company_bottom + item.signer_header_height
    painter.drawLine(QPointF(x, label_bottom), QPointF(x + w, label_bottom))
    for index, cell in enumerate(item.signers):
        painter.setFont(_serif(item.label_font_size))
        painter.drawText(
            QRectF(x + column * index, company_bottom, column, item.signer_header_height), Qt.AlignCenter, cell.label
        )
        if not cell.name:
            continue
        cx, cy = cell.center
        painter.setPen(QPen(red, max(1.0, 2 * s)))
        painter.drawEllipse(QPointF(cx, cy), cell.seal_radius, cell.seal_radius)
        painter.setFont(_serif(cell.name_font_size))
        r = cell.seal_radius
        painter.drawText(QRectF(cx - r, cy - r, 2 * r, 2 * r), Qt.AlignCenter, cell.name)
        painter.setPen(QPen(red, 2))

    if item.order_height <= 0:
        return
    order_top = y + h - item.order_height
    painter.setPen(QPen(red, 3))
    painter.drawLine(QPointF(x, order_top), QPointF(x + w, order_top))
    painter.setPen(QPen(red, 2))
    painter.drawLine(QPointF(item.order_divider_x, order_top), QPointF(item.order_divider_x, y + h))
    painter.setFont(_serif(item.order_font_size))
    painter.drawText(
        QRectF(x + max(4.0, 8 * s), order_top, item.order_divider_x - x, item.order_height),
        Qt.AlignLeft | Qt.AlignVCenter,
        item.order_label,
    )
    if item.order_no:
        left = item.order_divider_x + max(20.0, 40 * s)
        painter.drawText(
            QRectF(left, order_top, x + w - left, item.order_height), Qt.AlignLeft | Qt.AlignVCenter, item.order_no
        )


def paint_plan(painter: QPainter, plan: Sequence[object]) -> None:
    """Issue the draw calls for a render plan in canvas coordinates."""
    for item in plan:
        if isinstance(item, BoxItem):
            _draw_box(painter, item)
        elif isinstance(item, StampItem):
            _draw_stamp(painter, item)


# ---------------------------------------------------------------------------
# Canvas

class _EditorKeys(QObject):
    """Routes Escape on the inline editor to a cancel instead of a commit."""

    def __init__(self, on_escape: Callable[[], None]):
        super().__init__()
        self._on_escape = on_escape

    def eventFilter(self, obj, event):  # pragma: no cover - GUI entry point
        if event.type() == QEvent.KeyPress and event.key() == Qt.Key_Escape:
            self._on_escape()
            return True
        return False


def _parse_with_engine(engine: SourceProvider, path: str) -> ParseResult:
    # worker threads have no loop of their own
    return asyncio.run(engine.load_measurements(path))


def _save_with(coordinator: SaveCoordinator, name: str, record) -> str:
    return asyncio.run(coordinator.save(name, record))


class Canvas(QWidget):
    """Drawing view that forwards Qt input to an :class:`InteractionController`."""

    state_changed = Signal()
    history_changed = Signal()
    status_message = Signal(str)
    save_busy = Signal(bool)

    def __init__(self, config: Optional[EngineConfig] = None, parent=None):
        super().__init__(parent)
        self.config = config or EngineConfig()
        self.controller = InteractionController(
            config=self.config,
            hooks=ControllerHooks(confirm=self._confirm, changed=self._on_controller_changed),
        )
        self._pixmap: Optional[QPixmap] = None
        self._history_key: tuple = (0, -1, None)
        self._parse_executor = ThreadPoolExecutor(max_workers=1)
        self._parse_future: Future | None = None
        self._save_executor = ThreadPoolExecutor(max_workers=1)
        self._save_future: Future | None = None
        # the engine loads on the parse worker, so queued parses wait for it
        self.pdf_engine = SourceProvider(epsilon=self.config.row_epsilon)
        self._parse_executor.submit(PdfPlumberSource).add_done_callback(self._on_engine_loaded)

        self._editor = QLineEdit(self)
        self._editor.hide()
        self._editor.setAlignment(Qt.AlignCenter)
        self._editor.textEdited.connect(self.controller.update_edit)
        self._editor.returnPressed.connect(self._commit_editor)
        self._editor.editingFinished.connect(self._commit_editor)
        self._editor_keys = _EditorKeys(self._cancel_editor)
        self._editor.installEventFilter(self._editor_keys)

        self.setFocusPolicy(Qt.StrongFocus)
        self.setMouseTracking(True)
        self.setMinimumSize(640, 480)
        self.setToolTip(
            "Draw mode: drag to create a measurement box.\n"
            "Edit mode: drag boxes, resize by the handles, double-click to type a value.\n"
            "Wheel zooms around the cursor; right-click a box for its menu."
        )

    # ------------------------------------------------------------------
    # Controller plumbing
    @property
    def state(self):
        return self.controller.state

    def _confirm(self, message: str) -> bool:  # pragma: no cover - GUI entry point
        answer = QMessageBox.question(self, "drawmark", message, QMessageBox.Yes | QMessageBox.No)
        return answer == QMessageBox.Yes

    def _on_controller_changed(self) -> None:
        history = self.controller.history
        entries = history.entries
        key = (len(entries), history.current_index, entries[-1].id if entries else None)
        if key != self._history_key:
            self._history_key = key
            self.history_changed.emit()
        self._sync_editor()
        self.state_changed.emit()
        self.update()

    def _event(self, event, button: Optional[str] = None) -> PointerEvent:
        pos = event.position()
        if button is None:
            button = {Qt.LeftButton: "left", Qt.RightButton: "right", Qt.MiddleButton: "middle"}.get(
                event.button(), "left"
            )
        return PointerEvent(pos.x(), pos.y(), button, bool(event.modifiers() & Qt.ControlModifier))

    # ------------------------------------------------------------------
    # Commands used by the main window
    def set_mode(self, mode: str) -> None:
        self.controller.set_mode(mode)
        self.status_message.emit("Draw mode" if mode == DRAW else "Edit mode")

    def open_image(self, parent=None) -> None:  # pragma: no cover - GUI entry point
        path, _ = QFileDialog.getOpenFileName(
            parent or self, "Open drawing", "", "Images (*.png *.jpg *.jpeg *.tif *.tiff *.bmp *.gif *.webp)"
        )
        if path:
            self.load_image(path)

    def load_image(self, path: str) -> bool:
        pixmap = QPixmap(path)
        if pixmap.isNull():
            QMessageBox.warning(self, "drawmark", f"Could not load image:\n{path}")
            return False
        self._pixmap = pixmap
        self.controller.load_image(path)
        self.status_message.emit(f"Loaded {Path(path).name} ({pixmap.width()}×{pixmap.height()})")
        return True

    def _ensure_pixmap(self) -> None:
        ref = self.state.drawing_image
        if ref and self._pixmap is None:
            pixmap = QPixmap(ref)
            self._pixmap = None if pixmap.isNull() else pixmap

    def _on_engine_loaded(self, fut: Future) -> None:
        error = fut.exception()
        if error is not None:
            logger.error("PDF engine failed to load: %s", error)
            self.pdf_engine.fail(error)
        else:
            self.pdf_engine.provide(fut.result())

    def open_pdf(self, parent=None) -> None:  # pragma: no cover - GUI entry point
        path, _ = QFileDialog.getOpenFileName(parent or self, "Open inspection report", "", "PDF Files (*.pdf)")
        if path:
            self.load_pdf(path)

    def load_pdf(self, path: str) -> None:
        if self._parse_future is not None and not self._parse_future.done():
            self.status_message.emit("A report is already being parsed")
            return
        self.status_message.emit(f"Parsing {Path(path).name}…")
        future = self._parse_executor.submit(_parse_with_engine, self.pdf_engine, path)
        self._parse_future = future

        def _on_done(fut: Future) -> None:
            if fut.cancelled():
                return

            def apply() -> None:
                self._parse_future = None
                try:
                    result = fut.result()
                except (OSError, DrawmarkError) as exc:
                    QMessageBox.warning(self, "drawmark", f"PDF parse error:\n{exc}")
                    return
                self._apply_parse_result(result)

            QTimer.singleShot(0, apply)

        future.add_done_callback(_on_done)

    def _apply_parse_result(self, result: ParseResult) -> None:
        self.controller.set_measurements(result.measurements)
        if result.warning:
            QMessageBox.warning(self, "drawmark", result.warning)
        else:
            self.status_message.emit(f"{len(result.measurements)}個の測定値を抽出しました。")

    def export_png(self, parent=None) -> None:  # pragma: no cover - GUI entry point
        path, _ = QFileDialog.getSaveFileName(parent or self, "Export PNG", "drawmark.png", "PNG Files (*.png)")
        if not path:
            return
        self.render_image(EXPORT_SCALE).save(path)
        self.status_message.emit(f"Exported {path}")

    def render_image(self, factor: int = EXPORT_SCALE) -> QImage:
        """Rasterise drawing and annotations at ``factor`` times image size."""
        self._ensure_pixmap()
        if self._pixmap is not None:
            width, height = self._pixmap.width(), self._pixmap.height()
        else:
            width, height = self.width(), self.height()
        image = QImage(int(width * factor), int(height * factor), QImage.Format_ARGB32)
        image.fill(QColor("#ffffff"))
        painter = QPainter(image)
        painter.setRenderHint(QPainter.Antialiasing, True)
        painter.setRenderHint(QPainter.TextAntialiasing, True)
        painter.scale(factor, factor)
        if self._pixmap is not None:
            painter.drawPixmap(0, 0, self._pixmap)
        paint_plan(painter, build_render_plan(self.state, 1.0, self.config.company_name))
        painter.end()
        return image

    def export_json(self, parent=None) -> None:  # pragma: no cover - GUI entry point
        path, _ = QFileDialog.getSaveFileName(parent or self, "Save work state", "drawmark.json", "JSON Files (*.json)")
        if not path:
            return
        write_record(path, self.state.to_record())
        self.status_message.emit(f"Saved {path}")

    def import_json(self, parent=None) -> None:  # pragma: no cover - GUI entry point
        path, _ = QFileDialog.getOpenFileName(parent or self, "Open work state", "", "JSON Files (*.json)")
        if not path:
            return
        try:
            self.load_record(read_record(path))
        except (OSError, WorkStateLoadError) as exc:
            QMessageBox.warning(self, "drawmark", f"Could not load work state:\n{exc}")

    def load_record(self, record) -> None:
        self._pixmap = None
        self.controller.load_state(record)
        self._ensure_pixmap()
        self.update()

    def save_to_store(self, coordinator: SaveCoordinator, name: str) -> Optional[Future]:
        """Save the current state under ``name`` off the UI thread, one save at a time."""
        if self._save_future is not None and not self._save_future.done():
            self.status_message.emit("保存中です")
            return None
        record = self.state.to_record()
        self.save_busy.emit(True)
        future = self._save_executor.submit(_save_with, coordinator, name, record)
        self._save_future = future

        def _on_done(fut: Future) -> None:
            def apply() -> None:
                self.save_busy.emit(False)
                try:
                    saved = fut.result()
                except (OSError, DrawmarkError) as exc:
                    QMessageBox.warning(self, "drawmark", f"保存に失敗しました:\n{exc}")
                    return
                self.status_message.emit(f"Saved {saved}")

            QTimer.singleShot(0, apply)

        future.add_done_callback(_on_done)
        return future

    def autosave(self, store: LocalFileStore) -> None:
        if self.state.drawing_image is None and not self.state.boxes:
            return
        try:
            store.autosave(self.state.to_record())
        except OSError as exc:
            logger.warning("Autosave failed: %s", exc)

    def add_stamp(self) -> None:
        if self.controller.add_stamp() is None:
            QMessageBox.information(self, "drawmark", "移動・編集モードに切り替えてから承認印を追加してください")

    def zoom_by(self, factor: float) -> None:
        self.controller.zoom(factor, (self.width() / 2.0, self.height() / 2.0))

    def zoom_reset(self) -> None:
        self.controller.reset_view()

    # ------------------------------------------------------------------
    # Inline editor
    def _sync_editor(self) -> None:
        box_id = self.controller.editing_box_id
        if self.controller.interaction is not Interaction.EDITING_VALUE or box_id is None:
            if self._editor.isVisible():
                self._editor.blockSignals(True)
                self._editor.hide()
                self._editor.blockSignals(False)
                self.setFocus()
            return
        box = self.state.box(box_id)
        t = self.state.transform
        sx, sy = canvas_to_screen(box.x, box.y, t)
        self._editor.setGeometry(int(sx), int(sy), max(60, int(box.width * t.scale)), max(22, int(box.height * t.scale)))
        if not self._editor.isVisible():
            self._editor.setText(self.controller.editing_value)
            self._editor.show()
            self._editor.selectAll()
            self._editor.setFocus()

    def _commit_editor(self) -> None:  # pragma: no cover - GUI entry point
        if self.controller.interaction is Interaction.EDITING_VALUE:
            self.controller.update_edit(self._editor.text())
            self.controller.commit_edit()

    def _cancel_editor(self) -> None:  # pragma: no cover - GUI entry point
        self.controller.cancel_edit()

    # ------------------------------------------------------------------
    # Context menu
    def _show_box_menu(self, box_id: int, global_pos) -> None:  # pragma: no cover - GUI entry point
        box = self.state.box(box_id)
        menu = QMenu(self)
        menu.addSection(f"ボックス {box.ordinal + 1}")
        menu.addAction("番号を変更…", lambda: self._prompt_ordinal(box_id))

        assign_menu = menu.addMenu("測定値を割り当て")
        assign_menu.setEnabled(bool(self.state.measurements))
        for index, row in enumerate(self.state.measurements):
            label = f"{index + 1}. {row.name}: {row.value} {row.unit}"
            action = assign_menu.addAction(
                label, lambda checked=False, i=index: self.controller.assign_specific(box_id, i)
            )
            if row.out_of_tolerance:
                action.setText(label + " [NG]")

        font_menu = menu.addMenu("文字サイズ")
        font_menu.addAction("自動", lambda: self.controller.set_font_size(box_id, None))
        for size in FONT_SIZE_CHOICES:
            action = font_menu.addAction(
                f"{size}px", lambda checked=False, s=size: self.controller.set_font_size(box_id, float(s))
            )
            action.setCheckable(True)
            action.setChecked(box.font_size == size)

        decimals_menu = menu.addMenu("桁数")
        for places in DECIMAL_CHOICES:
            action = decimals_menu.addAction(
                f"{places}桁", lambda checked=False, p=places: self.controller.set_decimal_places(box_id, p)
            )
            action.setCheckable(True)
            action.setChecked(box.decimal_places == places)

        menu.addSeparator()
        menu.addAction("値を編集", lambda: self.controller.begin_edit(box_id))
        menu.addAction("削除", lambda: self.controller.delete_box(box_id))
        menu.aboutToHide.connect(self.controller.hide_menu)
        menu.popup(global_pos)

    def _prompt_ordinal(self, box_id: int) -> None:  # pragma: no cover - GUI entry point
        box = self.state.box(box_id)
        text, ok = QInputDialog.getText(
            self,
            "番号を変更",
            f"新しい番号を入力してください (現在: {box.ordinal + 1})\n※1〜1000の範囲で入力",
            text=str(box.ordinal + 1),
        )
        if not ok or not text:
            return
        try:
            self.controller.change_ordinal(box_id, text)
        except InvalidOrdinalError:
            QMessageBox.warning(self, "drawmark", "番号は1から1000の間で入力してください")

    # ------------------------------------------------------------------
    # Qt events
    def paintEvent(self, event):  # pragma: no cover - GUI entry point
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        painter.fillRect(self.rect(), QColor(242, 242, 246))
        if self._pixmap is None and self.state.drawing_image is None:
            painter.setPen(QColor(120, 120, 130))
            painter.drawText(self.rect(), Qt.AlignCenter, "図面をアップロードしてください")
            return
        t = self.state.transform
        painter.save()
        painter.translate(t.translate_x, t.translate_y)
        painter.scale(t.scale, t.scale)
        if self._pixmap is not None:
            painter.drawPixmap(0, 0, self._pixmap)
        plan = build_render_plan(self.state, t.scale, self.config.company_name)
        paint_plan(painter, plan)
        if self.state.settings.show_box_numbers:
            self._paint_labels(painter, plan, t.scale)
        if self.state.mode == EDIT:
            self._paint_handles(painter, t.scale)
        candidate = self.controller.candidate
        if candidate is not None:
            pen = QPen(QColor("#667eea"))
            pen.setWidthF(2.0 / t.scale)
            pen.setStyle(Qt.DashLine)
            painter.setPen(pen)
            painter.drawRect(QRectF(candidate.x, candidate.y, candidate.width, candidate.height))
        painter.restore()

    def _paint_labels(self, painter: QPainter, plan, scale: float) -> None:  # pragma: no cover - GUI entry point
        size = handle_size_for_scale(LABEL_BASE_SIZE * 1.5, scale)
        font = QFont()
        font.setPixelSize(max(1, int(size * 0.7)))
        font.setBold(True)
        painter.setFont(font)
        for item in plan:
            if not isinstance(item, BoxItem) or item.label is None:
                continue
            x, y, _, _ = item.rect
            badge = QRectF(x - size / 2.0, y - size / 2.0, size, size)
            painter.setPen(Qt.NoPen)
            painter.setBrush(QColor("#667eea"))
            painter.drawEllipse(badge)
            painter.setPen(QColor("#ffffff"))
            painter.drawText(badge, Qt.AlignCenter, item.label)
        painter.setBrush(Qt.NoBrush)

    def _paint_handles(self, painter: QPainter, scale: float) -> None:  # pragma: no cover - GUI entry point
        size = handle_size_for_scale(self.config.handle_size, scale)
        painter.setPen(QPen(QColor("#ffffff"), 1.0 / scale))
        painter.setBrush(QColor("#ffffff") if self.state.settings.text_color_mode == "white" else QColor("#667eea"))
        for item in list(self.state.boxes) + list(self.state.stamps):
            for handle in HANDLES:
                hx, hy = handle_position(item.rect, handle, size)
                if len(handle) == 2:
                    painter.drawEllipse(QRectF(hx, hy, size, size))
                else:
                    painter.drawRect(QRectF(hx, hy, size, size))
        painter.setBrush(Qt.NoBrush)

    def resizeEvent(self, event):  # pragma: no cover - GUI entry point
        super().resizeEvent(event)
        window = self.window()
        self.controller.viewport = (float(window.width()), float(window.height()))

    def wheelEvent(self, event):  # pragma: no cover - GUI entry point
        delta = event.angleDelta().y()
        if delta == 0:
            event.accept()
            return
        # browsers report scroll-down as positive; Qt as negative
        self.controller.wheel(-delta, (event.position().x(), event.position().y()))
        event.accept()

    def mousePressEvent(self, event):  # pragma: no cover - GUI entry point
        if event.button() == Qt.RightButton:
            pointer = self._event(event, "right")
            self.controller.pointer_down(pointer)
            window_pos = self.mapTo(self.window(), event.position().toPoint())
            menu = self.controller.context_menu(pointer, (float(window_pos.x()), float(window_pos.y())))
            if menu.visible and menu.box_id is not None:
                global_pos = self.window().mapToGlobal(QPointF(menu.x, menu.y).toPoint())
                self._show_box_menu(menu.box_id, global_pos)
            return
        self.setFocus()
        self.controller.pointer_down(self._event(event))

    def mouseMoveEvent(self, event):  # pragma: no cover - GUI entry point
        if self.controller.interaction in (Interaction.IDLE, Interaction.EDITING_VALUE):
            return
        self.controller.pointer_move(self._event(event, "left"))

    def mouseReleaseEvent(self, event):  # pragma: no cover - GUI entry point
        if event.button() != Qt.LeftButton or self.controller.interaction is Interaction.EDITING_VALUE:
            return
        self.controller.pointer_up(self._event(event))

    def mouseDoubleClickEvent(self, event):  # pragma: no cover - GUI entry point
        if event.button() == Qt.LeftButton:
            self.controller.double_click(self._event(event))

    def keyPressEvent(self, event):  # pragma: no cover - GUI entry point
        ctrl = bool(event.modifiers() & Qt.ControlModifier)
        shift = bool(event.modifiers() & Qt.ShiftModifier)
        key = {Qt.Key_Escape: "Escape", Qt.Key_Return: "Enter", Qt.Key_Enter: "Enter"}.get(event.key(), event.text())
        if ctrl and not key:
            key = chr(event.key()).lower() if 0 < event.key() < 0x110000 else ""
        if key and self.controller.key_press(key, ctrl=ctrl, shift=shift):
            event.accept()
            return
        super().keyPressEvent(event)


# ---------------------------------------------------------------------------
# Docks

class HistoryDock:
    """History browser: click an entry to jump back to it."""

    def __init__(self, canvas: Canvas):
        self.canvas = canvas
        self.dock = QDockWidget("履歴")
        self.dock.setObjectName("DrawmarkHistoryDock")
        self.dock.setFeatures(QDockWidget.DockWidgetMovable | QDockWidget.DockWidgetFloatable)
        host = QWidget()
        layout = QVBoxLayout(host)
        layout.setContentsMargins(8, 8, 8, 8)
        self._list = QListWidget()
        self._list.itemClicked.connect(self._on_item_clicked)
        self._caption = QLabel()
        layout.addWidget(self._list)
        layout.addWidget(self._caption)
        self.dock.setWidget(host)
        canvas.history_changed.connect(self.refresh)
        self.refresh()

    def refresh(self) -> None:
        history = self.canvas.controller.history
        self._list.blockSignals(True)
        self._list.clear()
        for row in reversed(history.describe()):
            stamp = row["timestamp"][11:19]
            item = QListWidgetItem(f"{stamp}  {row['action']}")
            item.setData(Qt.UserRole, row["index"])
            if row["current"]:
                font = item.font()
                font.setBold(True)
                item.setFont(font)
            self._list.addItem(item)
        self._list.blockSignals(False)
        self._caption.setText(f"最大{history.max_entries}件まで保存")

    def _on_item_clicked(self, item: QListWidgetItem) -> None:  # pragma: no cover - GUI entry point
        self.canvas.controller.jump_to(int(item.data(Qt.UserRole)))


class Controls:
    """Docked measurement table and display settings."""

    def __init__(self, canvas: Canvas):
        self.canvas = canvas
        self.dock = QDockWidget("測定値")
        self.dock.setObjectName("DrawmarkControlsDock")
        self.dock.setFeatures(QDockWidget.DockWidgetMovable | QDockWidget.DockWidgetFloatable)
        host = QWidget()
        layout = QVBoxLayout(host)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(6)

        self._table = QListWidget()
        self._table.setToolTip("Rows extracted from the inspection report; box N shows row N.")
        layout.addWidget(self._table)

        self._decimals = QSpinBox()
        self._decimals.setRange(0, 6)
        self._decimals.setPrefix("桁数: ")
        self._decimals.editingFinished.connect(self._apply_decimals)
        layout.addWidget(self._decimals)

        self._min_box = QSpinBox()
        self._min_box.setRange(0, 200)
        self._min_box.setPrefix("最小ボックス: ")
        self._min_box.valueChanged.connect(self._apply_min_box)
        layout.addWidget(self._min_box)

        self._color = QComboBox()
        self._color.addItem("黒文字", "black")
        self._color.addItem("白文字", "white")
        self._color.currentIndexChanged.connect(self._apply_color)
        layout.addWidget(self._color)

        self._numbers = QCheckBox("番号を表示")
        self._numbers.toggled.connect(self._apply_numbers)
        layout.addWidget(self._numbers)
        layout.addStretch(1)
        self.dock.setWidget(host)

        canvas.state_changed.connect(self.refresh)
        self.refresh()

    def refresh(self) -> None:
        state = self.canvas.state
        self._table.clear()
        for index, row in enumerate(state.measurements):
            item = QListWidgetItem(f"{index + 1}. {row.name}  {row.value} {row.unit}")
            if row.out_of_tolerance:
                item.setForeground(QColor("#ff0000"))
            self._table.addItem(item)
        settings = state.settings
        for widget, setter in (
            (self._decimals, lambda: self._decimals.setValue(settings.default_decimal_places)),
            (self._min_box, lambda: self._min_box.setValue(int(settings.min_box_size))),
            (self._color, lambda: self._color.setCurrentIndex(1 if settings.text_color_mode == "white" else 0)),
            (self._numbers, lambda: self._numbers.setChecked(settings.show_box_numbers)),
        ):
            blocked = widget.blockSignals(True)
            setter()
            widget.blockSignals(blocked)

    def _apply_decimals(self) -> None:  # pragma: no cover - GUI entry point
        if self._decimals.value() != self.canvas.state.settings.default_decimal_places:
            self.canvas.controller.set_all_decimal_places(self._decimals.value())

    def _apply_min_box(self, value: int) -> None:  # pragma: no cover - GUI entry point
        self.canvas.controller.update_settings(min_box_size=float(value))

    def _apply_color(self, index: int) -> None:  # pragma: no cover - GUI entry point
        self.canvas.controller.update_settings(text_color_mode=self._color.itemData(index))

    def _apply_numbers(self, checked: bool) -> None:  # pragma: no cover - GUI entry point
        self.canvas.controller.update_settings(show_box_numbers=bool(checked))

