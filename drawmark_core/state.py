"""The live annotation state and its snapshot/record conversions."""
from __future__ import annotations

import copy
import itertools
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .config import EngineConfig
from .errors import WorkStateLoadError
from .models import (
    Box,
    Measurement,
    Settings,
    Stamp,
    StampData,
    ViewTransform,
    boxes_from_json,
    boxes_to_json,
    measurements_from_json,
    measurements_to_json,
    stamps_from_json,
    stamps_to_json,
)
from .persistence import RECORD_VERSION, WorkStateRecord, utc_now

DRAW = "draw"
EDIT = "edit"


def _id_counter():
    # millisecond seed keeps ids unique across sessions sharing a record
    return itertools.count(int(time.time() * 1000))


@dataclass
class AppState:
    drawing_image: Optional[str] = None
    boxes: List[Box] = field(default_factory=list)
    measurements: List[Measurement] = field(default_factory=list)
    transform: ViewTransform = field(default_factory=ViewTransform)
    settings: Settings = field(default_factory=Settings)
    stamps: List[Stamp] = field(default_factory=list)
    mode: str = DRAW
    _ids: Any = field(default_factory=_id_counter, repr=False, compare=False)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "AppState":
        return cls(
            settings=Settings(
                default_decimal_places=config.default_decimal_places,
                min_box_size=config.min_box_size,
                min_font_size=config.min_font_size,
            )
        )

    # ------------------------------------------------------------------
    def next_id(self) -> int:
        used = {item.id for item in self.boxes} | {item.id for item in self.stamps}
        candidate = next(self._ids)
        while candidate in used:
            candidate = next(self._ids)
        return candidate

    def box(self, box_id: int) -> Box:
        for item in self.boxes:
            if item.id == box_id:
                return item
        raise KeyError(box_id)

    def stamp(self, stamp_id: int) -> Stamp:
        for item in self.stamps:
            if item.id == stamp_id:
                return item
        raise KeyError(stamp_id)

    def new_stamp(self, company_name: str = "", today: Optional[date] = None) -> Stamp:
        today = today or date.today()
        return Stamp(
            id=self.next_id(),
            x=100.0,
            y=100.0,
            width=200.0,
            height=150.0,
            data=StampData(date=f"{today.year}/{today.month}/{today.day}", company_name=company_name),
        )

    # ------------------------------------------------------------------
    def snapshot(self, boxes: Optional[List[Box]] = None) -> Dict[str, Any]:
        """Deep copy of everything history restores.

        ``boxes`` lets a caller snapshot a box list it is about to install.
        """
        return {
            "drawingImage": self.drawing_image,
            "boxes": boxes_to_json(self.boxes if boxes is None else boxes),
            "measurements": measurements_to_json(self.measurements),
            "viewTransform": self.transform.asdict(),
            "settings": self.settings.asdict(),
            "approvalStamps": stamps_to_json(self.stamps),
        }

    def restore(self, snap: Dict[str, Any]) -> None:
        snap = copy.deepcopy(snap)
        self.drawing_image = snap.get("drawingImage")
        self.boxes = boxes_from_json(snap.get("boxes"))
        self.measurements = measurements_from_json(snap.get("measurements"))
        self.transform = ViewTransform.from_dict(snap.get("viewTransform"))
        if snap.get("settings"):
            self.settings = Settings.from_dict(snap["settings"])
        self.stamps = stamps_from_json(snap.get("approvalStamps"))

    # ------------------------------------------------------------------
    def to_record(self) -> WorkStateRecord:
        data = self.snapshot()
        data.update({"version": RECORD_VERSION, "savedAt": utc_now()})
        return WorkStateRecord.model_validate(data)

    @classmethod
    def from_record(cls, record: WorkStateRecord | Dict[str, Any]) -> "AppState":
        """Build a state from a record; nothing is constructed unless it all validates."""
        if not isinstance(record, WorkStateRecord):
            record = WorkStateRecord.from_json(record)
        data = record.to_json()
        state = cls()
        try:
            state.restore(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise WorkStateLoadError(f"could not restore work state: {exc}") from exc
        state.mode = EDIT if state.boxes or state.stamps else DRAW
        return state

    def load_record(self, record: WorkStateRecord | Dict[str, Any]) -> None:
        """Replace this state in place; on failure it is left untouched."""
        loaded = AppState.from_record(record)
        self.drawing_image = loaded.drawing_image
        self.boxes = loaded.boxes
        self.measurements = loaded.measurements
        self.transform = loaded.transform
        self.settings = loaded.settings
        self.stamps = loaded.stamps
        self.mode = loaded.mode
