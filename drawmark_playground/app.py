"""Application bootstrap for the drawmark playground."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from PySide6.QtCore import Qt, QSize, QTimer
from PySide6.QtGui import QAction, QActionGroup, QKeySequence
from PySide6.QtWidgets import QApplication, QInputDialog, QLabel, QMainWindow, QMessageBox, QStatusBar, QToolBar

from drawmark_core.config import EngineConfig, load_config
from drawmark_core.persistence import LocalFileStore, SaveCoordinator
from drawmark_core.state import DRAW, EDIT

from .widgets import Canvas, Controls, HistoryDock

logger = logging.getLogger(__name__)

AUTOSAVE_INTERVAL_MS = 30_000
DEFAULT_STORE = Path.home() / ".drawmark"


class Main(QMainWindow):
    """Top-level window wiring together the canvas, docks, and chrome."""

    def __init__(self, config: Optional[EngineConfig] = None, store: Optional[LocalFileStore] = None):
        super().__init__()
        self.setWindowTitle("drawmark 図面検査値転記")
        self.config = config or EngineConfig()
        self.store = store or LocalFileStore(DEFAULT_STORE)
        self.saver = SaveCoordinator(self.store)

        self.canvas = Canvas(self.config)
        self.controls = Controls(self.canvas)
        self.history_dock = HistoryDock(self.canvas)

        self.setCentralWidget(self.canvas)
        self.addDockWidget(Qt.RightDockWidgetArea, self.controls.dock)
        self.addDockWidget(Qt.RightDockWidgetArea, self.history_dock.dock)

        self._mode_actions: dict[str, QAction] = {}
        self._undo_action: QAction | None = None
        self._redo_action: QAction | None = None
        self._store_action: QAction | None = None
        self._setup_status_bar()
        self._make_toolbar()
        self._make_menu()

        self.canvas.state_changed.connect(self._on_state_changed)
        self.canvas.status_message.connect(lambda text: self.statusBar().showMessage(text, 4000))

        self._autosave_timer = QTimer(self)
        self._autosave_timer.setInterval(AUTOSAVE_INTERVAL_MS)
        self._autosave_timer.timeout.connect(lambda: self.canvas.autosave(self.store))
        self._autosave_timer.start()

        self.resize(1400, 900)
        self._activate_mode(DRAW, True)

    # ------------------------------------------------------------------
    # UI scaffolding
    def _setup_status_bar(self) -> None:
        bar = QStatusBar()
        bar.setSizeGripEnabled(False)
        self.setStatusBar(bar)

        self._mode_label = QLabel("モード: 描画")
        self._mode_label.setToolTip("Active mode. Change using the toolbar.")
        self._zoom_label = QLabel("100%")
        self._zoom_label.setToolTip("Current zoom level (Ctrl+0 resets).")
        self._count_label = QLabel("ボックス: 0 / 測定値: 0")
        self._count_label.setToolTip("Boxes drawn and measurement rows loaded.")
        for label in (self._mode_label, self._zoom_label, self._count_label):
            bar.addPermanentWidget(label)

    def _make_toolbar(self) -> None:
        toolbar = QToolBar("Tools")
        toolbar.setMovable(False)
        toolbar.setIconSize(QSize(24, 24))
        self.addToolBar(Qt.TopToolBarArea, toolbar)

        open_image = QAction("図面を開く", self)
        open_image.triggered.connect(lambda: self.canvas.open_image(self))
        open_pdf = QAction("PDFを読み込む", self)
        open_pdf.triggered.connect(lambda: self.canvas.open_pdf(self))
        for action, tip in (
            (open_image, "Open a drawing image (PNG, JPEG, TIFF...)."),
            (open_pdf, "Parse an inspection report PDF into the measurement table."),
        ):
            action.setToolTip(tip)
            action.setStatusTip(tip)
            toolbar.addAction(action)

        toolbar.addSeparator()
        group = QActionGroup(self)
        group.setExclusive(True)
        for mode, text, tip in (
            (DRAW, "描画", "Draw mode: drag on the drawing to add a measurement box."),
            (EDIT, "移動・編集", "Edit mode: move, resize and edit boxes and stamps."),
        ):
            action = QAction(text, self)
            action.setCheckable(True)
            action.setActionGroup(group)
            action.triggered.connect(lambda checked, m=mode: self._activate_mode(m, checked))
            action.setToolTip(tip)
            action.setStatusTip(tip)
            toolbar.addAction(action)
            self._mode_actions[mode] = action

        toolbar.addSeparator()
        commands = (
            ("自動転記", "Fill every box from the measurement row with the same number.", self.canvas.controller.auto_assign),
            ("番号を整理", "Renumber boxes 1..N in their current order.", self.canvas.controller.renumber),
            ("すべてクリア", "Delete every box.", self.canvas.controller.clear_boxes),
            ("承認印を追加", "Add an approval stamp (edit mode).", self.canvas.add_stamp),
        )
        for text, tip, slot in commands:
            action = QAction(text, self)
            action.triggered.connect(lambda checked=False, s=slot: s())
            action.setToolTip(tip)
            action.setStatusTip(tip)
            toolbar.addAction(action)

    def _make_menu(self) -> None:
        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("&File")

        for text, tip, slot, shortcut in (
            ("Open Drawing…", "Open a drawing image.", lambda: self.canvas.open_image(self), QKeySequence.Open),
            ("Open Report PDF…", "Parse an inspection report PDF.", lambda: self.canvas.open_pdf(self), None),
            ("Open Work State…", "Restore a saved work-state JSON file.", lambda: self.canvas.import_json(self), None),
            ("Save Work State…", "Save boxes, measurements and view to JSON.", lambda: self.canvas.export_json(self), QKeySequence.Save),
            ("Export PNG…", "Export the annotated drawing at 3x resolution.", lambda: self.canvas.export_png(self), None),
        ):
            action = file_menu.addAction(text)
            action.triggered.connect(slot)
            action.setToolTip(tip)
            action.setStatusTip(tip)
            if shortcut is not None:
                action.setShortcut(shortcut)

        self._store_action = file_menu.addAction("Save to Store…")
        self._store_action.setShortcut("Ctrl+Shift+S")
        self._store_action.triggered.connect(self._save_to_store)
        self._store_action.setToolTip("Save the work state into the local store; one save runs at a time.")
        self._store_action.setStatusTip("Save the work state into the local store; one save runs at a time.")
        self.canvas.save_busy.connect(lambda busy: self._store_action.setEnabled(not busy))

        # Edit menu: Undo/Redo
        edit_menu = menu_bar.addMenu("&Edit")
        self._undo_action = edit_menu.addAction("Undo")
        self._undo_action.setShortcut("Ctrl+Z")
        self._undo_action.triggered.connect(self.canvas.controller.undo)
        self._undo_action.setToolTip("Undo the last change.")
        self._undo_action.setStatusTip("Undo the last change.")
        self._redo_action = edit_menu.addAction("Redo")
        self._redo_action.setShortcuts([QKeySequence("Ctrl+Y"), QKeySequence("Ctrl+Shift+Z")])
        self._redo_action.triggered.connect(self.canvas.controller.redo)
        self._redo_action.setToolTip("Redo the last undone step.")
        self._redo_action.setStatusTip("Redo the last undone step.")

        view_menu = menu_bar.addMenu("&View")
        zoom_in_action = view_menu.addAction("Zoom In")
        zoom_in_action.setShortcut(QKeySequence.ZoomIn)
        zoom_in_action.triggered.connect(lambda: self.canvas.zoom_by(1.1))
        zoom_in_action.setToolTip("Zoom in around the canvas center.")
        zoom_in_action.setStatusTip("Zoom in around the canvas center.")

        zoom_out_action = view_menu.addAction("Zoom Out")
        zoom_out_action.setShortcut(QKeySequence.ZoomOut)
        zoom_out_action.triggered.connect(lambda: self.canvas.zoom_by(0.9))
        zoom_out_action.setToolTip("Zoom out around the canvas center.")
        zoom_out_action.setStatusTip("Zoom out around the canvas center.")

        zoom_reset_action = view_menu.addAction("Reset Zoom")
        zoom_reset_action.setShortcut("Ctrl+0")
        zoom_reset_action.triggered.connect(self.canvas.zoom_reset)
        zoom_reset_action.setToolTip("Reset the viewport to the default zoom.")
        zoom_reset_action.setStatusTip("Reset the viewport to the default zoom.")

        view_menu.addSeparator()
        view_menu.addAction(self.controls.dock.toggleViewAction())
        view_menu.addAction(self.history_dock.dock.toggleViewAction())

    # ------------------------------------------------------------------
    # Event handlers
    def _activate_mode(self, mode: str, checked: bool) -> None:
        if not checked:
            return
        self.canvas.set_mode(mode)
        action = self._mode_actions.get(mode)
        if action:
            blocked = action.blockSignals(True)
            action.setChecked(True)
            action.blockSignals(blocked)

    def _on_state_changed(self) -> None:
        state = self.canvas.state
        self._mode_label.setText("モード: 描画" if state.mode == DRAW else "モード: 移動・編集")
        self._zoom_label.setText(f"{state.transform.scale * 100:.0f}%")
        self._count_label.setText(f"ボックス: {len(state.boxes)} / 測定値: {len(state.measurements)}")
        history = self.canvas.controller.history
        if self._undo_action is not None:
            self._undo_action.setEnabled(history.can_undo)
        if self._redo_action is not None:
            self._redo_action.setEnabled(history.can_redo)

    def _save_to_store(self) -> None:  # pragma: no cover - GUI entry point
        default = Path(self.canvas.state.drawing_image or "drawmark").stem
        name, ok = QInputDialog.getText(self, "drawmark", "保存名:", text=default)
        if ok and name.strip():
            self.canvas.save_to_store(self.saver, name.strip())

    def offer_restore(self) -> None:  # pragma: no cover - GUI entry point
        record = self.store.load_autosave(self.config.autosave_max_age_hours)
        if record is None:
            return
        answer = QMessageBox.question(
            self,
            "drawmark",
            f"前回の作業状態（{record.saved_at}）が見つかりました。復元しますか？",
            QMessageBox.Yes | QMessageBox.No,
        )
        if answer == QMessageBox.Yes:
            self.canvas.load_record(record)
        else:
            self.store.clear_autosave()

    def closeEvent(self, event):  # pragma: no cover - GUI entry point
        self.canvas.autosave(self.store)
        super().closeEvent(event)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="drawmark-playground", description="Annotate drawings with measurement values")
    parser.add_argument("image", nargs="?", help="Drawing image to open on start")
    parser.add_argument("--config", help="Path to a drawmark.json config file")
    parser.add_argument("--store", help="Directory for saved and autosaved work states")
    args, qt_args = parser.parse_known_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    config = load_config(args.config)
    store = LocalFileStore(args.store) if args.store else None

    app = QApplication([sys.argv[0], *qt_args])
    window = Main(config, store)
    window.show()
    if args.image:
        window.canvas.load_image(args.image)
    else:
        window.offer_restore()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
