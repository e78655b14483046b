"""Work-state record schema, stores and save coordination."""
from __future__ import annotations

import inspect
import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Literal, Optional, Protocol, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import SaveInProgressError, WorkStateLoadError

logger = logging.getLogger(__name__)

RECORD_VERSION = "1.0.0"
AUTOSAVE_NAME = "autosave"


def utc_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix allowed) into naive UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


# ---- Record schema --------------------------------------------------------------

class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BoxRecord(_Record):
    id: int
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    value: Optional[str] = None
    ordinal_index: int = Field(default=0, alias="ordinalIndex", validation_alias=AliasChoices("ordinalIndex", "index"))
    decimal_places: int = Field(default=2, ge=0, alias="decimalPlaces")
    manually_edited: bool = Field(
        default=False,
        alias="manuallyEdited",
        validation_alias=AliasChoices("manuallyEdited", "isManuallyEdited"),
    )
    out_of_tolerance: bool = Field(
        default=False,
        alias="outOfTolerance",
        validation_alias=AliasChoices("outOfTolerance", "isOutOfTolerance"),
    )
    font_size_override: Optional[float] = Field(
        default=None,
        alias="fontSizeOverride",
        validation_alias=AliasChoices("fontSizeOverride", "fontSize"),
    )

    @field_validator("value", mode="before")
    @classmethod
    def _value_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("font_size_override")
    @classmethod
    def _positive_font(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value


class MeasurementRecord(_Record):
    name: str
    value: str
    unit: str = "mm"
    out_of_tolerance: bool = Field(
        default=False,
        alias="outOfTolerance",
        validation_alias=AliasChoices("outOfTolerance", "isOutOfTolerance"),
    )


class ViewTransformRecord(_Record):
    scale: float = Field(default=1.0, gt=0)
    translate_x: float = Field(default=0.0, alias="translateX")
    translate_y: float = Field(default=0.0, alias="translateY")


class SettingsRecord(_Record):
    default_decimal_places: int = Field(default=2, ge=0, alias="defaultDecimalPlaces")
    min_box_size: float = Field(default=1.0, ge=0, alias="minBoxSize")
    min_font_size: float = Field(default=2.0, ge=0, alias="minFontSize")
    text_color_mode: Literal["black", "white"] = Field(default="black", alias="textColorMode")
    show_box_numbers: bool = Field(default=True, alias="showBoxNumbers")
    show_delete_buttons: bool = Field(default=True, alias="showDeleteButtons")


class SignersRecord(_Record):
    approval: Optional[str] = None
    confirmation: Optional[str] = None
    creation: Optional[str] = None


class StampDataRecord(_Record):
    title: str = "検査成績表"
    date: str = ""
    order_no: str = Field(default="", alias="orderNo")
    company_name: str = Field(default="", alias="companyName")
    stamps: SignersRecord = Field(default_factory=SignersRecord)


class StampRecord(_Record):
    id: int
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    type: Literal["approvalStamp"] = "approvalStamp"
    data: StampDataRecord = Field(default_factory=StampDataRecord)


class WorkStateRecord(_Record):
    """The persisted shape of a work state."""

    version: str = RECORD_VERSION
    saved_at: str = Field(default_factory=utc_now, alias="savedAt")
    drawing_image: Optional[str] = Field(default=None, alias="drawingImage")
    boxes: List[BoxRecord] = Field(default_factory=list)
    measurements: List[MeasurementRecord] = Field(default_factory=list)
    view_transform: ViewTransformRecord = Field(default_factory=ViewTransformRecord, alias="viewTransform")
    settings: SettingsRecord = Field(default_factory=SettingsRecord)
    approval_stamps: List[StampRecord] = Field(default_factory=list, alias="approvalStamps")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_json(cls, data: Any) -> "WorkStateRecord":
        """Validate ``data`` as a whole; any problem raises WorkStateLoadError."""
        if not isinstance(data, dict):
            raise WorkStateLoadError("work state must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise WorkStateLoadError(f"invalid work state: {exc.error_count()} error(s)\n{exc}") from exc


# ---- Stores ---------------------------------------------------------------------

class WorkStateStore(Protocol):
    """Named work-state storage; implementations may be sync or async."""

    def save(self, name: str, record: WorkStateRecord) -> Union[str, Awaitable[str]]:
        ...

    def load(self, name: str) -> Union[WorkStateRecord, Awaitable[WorkStateRecord]]:
        ...

    def list(self) -> Union[List[Dict[str, Any]], Awaitable[List[Dict[str, Any]]]]:
        ...

    def delete(self, name: str) -> Union[None, Awaitable[None]]:
        ...


_SAFE_NAME = re.compile(r"[^\w\-. ]+", re.UNICODE)


def _safe_filename(name: str) -> str:
    cleaned = _SAFE_NAME.sub("_", name).strip(" .")
    if not cleaned:
        raise ValueError("work state name must not be empty")
    return cleaned


def read_record(path: Union[str, Path]) -> WorkStateRecord:
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise WorkStateLoadError(f"{path.name} is not valid JSON: {exc}") from exc
    return WorkStateRecord.from_json(data)


def write_record(path: Union[str, Path], record: WorkStateRecord) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(record.to_json(), handle, ensure_ascii=False, indent=2)
    tmp.replace(path)
    return path


class LocalFileStore:
    """One JSON file per work state inside ``root``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        return self.root / f"{_safe_filename(name)}.json"

    def save(self, name: str, record: WorkStateRecord) -> str:
        path = write_record(self.path_for(name), record)
        logger.info("Saved work state %r to %s", name, path)
        return path.stem

    def load(self, name: str) -> WorkStateRecord:
        path = self.path_for(name)
        if not path.exists():
            raise KeyError(name)
        return read_record(path)

    def list(self) -> List[Dict[str, Any]]:
        if not self.root.exists():
            return []
        items: List[Dict[str, Any]] = []
        for path in sorted(self.root.glob("*.json")):
            if path.stem == AUTOSAVE_NAME:
                continue
            try:
                record = read_record(path)
            except (OSError, WorkStateLoadError) as exc:
                logger.warning("Skipping unreadable work state %s: %s", path.name, exc)
                continue
            items.append(
                {
                    "name": path.stem,
                    "savedAt": record.saved_at,
                    "boxCount": len(record.boxes),
                    "measurementCount": len(record.measurements),
                }
            )
        items.sort(key=lambda item: item["savedAt"], reverse=True)
        return items

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        if not path.exists():
            raise KeyError(name)
        path.unlink()
        logger.info("Deleted work state %r", name)

    # -- autosave -----------------------------------------------------------------
    def autosave(self, record: WorkStateRecord) -> Path:
        record = record.model_copy(update={"saved_at": utc_now()})
        return write_record(self.root / f"{AUTOSAVE_NAME}.json", record)

    def load_autosave(self, max_age_hours: float = 24.0, now: Optional[datetime] = None) -> Optional[WorkStateRecord]:
        """Return the autosave when it is younger than ``max_age_hours``."""
        path = self.root / f"{AUTOSAVE_NAME}.json"
        if not path.exists():
            return None
        try:
            record = read_record(path)
            saved = parse_timestamp(record.saved_at)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable autosave: %s", exc)
            return None
        age = (now or datetime.utcnow()) - saved
        if age > timedelta(hours=max_age_hours):
            logger.info("Autosave is %s old; not offering restore", age)
            return None
        return record

    def clear_autosave(self) -> None:
        path = self.root / f"{AUTOSAVE_NAME}.json"
        if path.exists():
            path.unlink()


# ---- Save coordination ----------------------------------------------------------------

class SaveCoordinator:
    """Single-flight saves against a :class:`WorkStateStore`.

    The record is copied when :meth:`save` is called, so edits made while the
    store is busy do not leak into the saved payload.
    """

    def __init__(self, store: WorkStateStore):
        self.store = store
        self._busy = False
        self.last_saved: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._busy

    async def save(self, name: str, record: WorkStateRecord) -> str:
        if self._busy:
            raise SaveInProgressError("a save is already in progress")
        self._busy = True
        payload = record.model_copy(deep=True)
        try:
            result = self.store.save(name, payload)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("Saving work state %r failed", name)
            raise
        finally:
            self._busy = False
        self.last_saved = str(result)
        return self.last_saved
