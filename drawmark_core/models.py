# drawmark_core/models.py
"""
Annotation data model for boxes, approval stamps, measurements, the view transform
and settings, with (de)serialization to the work-state wire format.

Public API:
- Resizable (shared geometry for Box and Stamp)
- Box, Stamp, StampData, Signers
- Measurement, ViewTransform, Settings
- boxes_to_json / boxes_from_json, stamps_to_json / stamps_from_json,
  measurements_to_json / measurements_from_json
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Optional, Tuple

Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]  # x, y, width, height
TextColorMode = Literal["black", "white"]


# ---- Shared geometry --------------------------------------------------------

@dataclass
class Resizable:
    id: int = 0
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def rect(self) -> Rect:
        return (self.x, self.y, self.width, self.height)

    def min_size(self, min_box_size: float, stamp_min: Tuple[float, float]) -> Tuple[float, float]:
        return (min_box_size, min_box_size)

    def contains(self, point: Point) -> bool:
        px, py = point
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


# ---- Box ---------------------------------------------------------------------

@dataclass
class Box(Resizable):
    value: Optional[str] = None
    ordinal: int = 0
    decimal_places: int = 2
    manually_edited: bool = False
    out_of_tolerance: bool = False
    font_size: Optional[float] = None  # explicit override; None = computed

    def asdict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "x": float(self.x),
            "y": float(self.y),
            "width": float(self.width),
            "height": float(self.height),
            "value": self.value,
            "ordinalIndex": int(self.ordinal),
            "decimalPlaces": int(self.decimal_places),
            "manuallyEdited": bool(self.manually_edited),
            "outOfTolerance": bool(self.out_of_tolerance),
        }
        if self.font_size is not None:
            data["fontSizeOverride"] = float(self.font_size)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Box":
        # legacy records used "index"/"fontSize"/"isManuallyEdited"
        ordinal = data.get("ordinalIndex", data.get("index", 0))
        font_size = data.get("fontSizeOverride", data.get("fontSize"))
        if font_size is not None:
            font_size = float(font_size)
            if not math.isfinite(font_size) or font_size <= 0:
                font_size = None
        value = data.get("value")
        return cls(
            id=int(data["id"]),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=max(0.0, float(data.get("width", 0.0))),
            height=max(0.0, float(data.get("height", 0.0))),
            value=None if value is None else str(value),
            ordinal=int(ordinal),
            decimal_places=max(0, int(data.get("decimalPlaces", 2))),
            manually_edited=bool(data.get("manuallyEdited", data.get("isManuallyEdited", False))),
            out_of_tolerance=bool(data.get("outOfTolerance", data.get("isOutOfTolerance", False))),
            font_size=font_size,
        )

    def copy(self) -> "Box":
        return replace(self)


# ---- Approval stamp ------------------------------------------------------------

SIGNER_KEYS = ("approval", "confirmation", "creation")
SIGNER_LABELS = {"approval": "承認", "confirmation": "確認", "creation": "作成"}


@dataclass
class Signers:
    approval: Optional[str] = None
    confirmation: Optional[str] = None
    creation: Optional[str] = None

    def asdict(self) -> Dict[str, Optional[str]]:
        return {key: getattr(self, key) for key in SIGNER_KEYS}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Signers":
        data = data or {}
        return cls(**{key: (None if data.get(key) in (None, "") else str(data[key])) for key in SIGNER_KEYS})


@dataclass
class StampData:
    title: str = "検査成績表"
    date: str = ""
    order_no: str = ""
    company_name: str = ""
    signers: Signers = field(default_factory=Signers)

    def asdict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date,
            "orderNo": self.order_no,
            "companyName": self.company_name,
            "stamps": self.signers.asdict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StampData":
        data = data or {}
        return cls(
            title=str(data.get("title", "検査成績表")),
            date=str(data.get("date", "")),
            order_no=str(data.get("orderNo", "")),
            company_name=str(data.get("companyName", "")),
            signers=Signers.from_dict(data.get("stamps")),
        )


@dataclass
class Stamp(Resizable):
    data: StampData = field(default_factory=StampData)

    def min_size(self, min_box_size: float, stamp_min: Tuple[float, float]) -> Tuple[float, float]:
        return stamp_min

    def asdict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x": float(self.x),
            "y": float(self.y),
            "width": float(self.width),
            "height": float(self.height),
            "type": "approvalStamp",
            "data": self.data.asdict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stamp":
        return cls(
            id=int(data["id"]),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=max(0.0, float(data.get("width", 0.0))),
            height=max(0.0, float(data.get("height", 0.0))),
            data=StampData.from_dict(data.get("data")),
        )

    def copy(self) -> "Stamp":
        return Stamp.from_dict(self.asdict())


# ---- Measurement ---------------------------------------------------------------

@dataclass(frozen=True)
class Measurement:
    name: str
    value: str
    unit: str = "mm"
    out_of_tolerance: bool = False

    def asdict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "outOfTolerance": self.out_of_tolerance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Measurement":
        return cls(
            name=str(data["name"]),
            value=str(data["value"]),
            unit=str(data.get("unit") or "mm"),
            out_of_tolerance=bool(data.get("outOfTolerance", data.get("isOutOfTolerance", False))),
        )


# ---- View transform & settings --------------------------------------------------

@dataclass(frozen=True)
class ViewTransform:
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0

    def __post_init__(self):
        if not (self.scale > 0 and math.isfinite(self.scale)):
            raise ValueError(f"scale must be a positive finite number, got {self.scale!r}")

    def asdict(self) -> Dict[str, float]:
        return {"scale": float(self.scale), "translateX": float(self.translate_x), "translateY": float(self.translate_y)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ViewTransform":
        if not data:
            return cls()
        return cls(
            scale=float(data.get("scale", 1.0)),
            translate_x=float(data.get("translateX", 0.0)),
            translate_y=float(data.get("translateY", 0.0)),
        )


@dataclass
class Settings:
    default_decimal_places: int = 2
    min_box_size: float = 1.0
    min_font_size: float = 2.0
    text_color_mode: TextColorMode = "black"
    show_box_numbers: bool = True
    show_delete_buttons: bool = True

    def asdict(self) -> Dict[str, Any]:
        return {
            "defaultDecimalPlaces": int(self.default_decimal_places),
            "minBoxSize": float(self.min_box_size),
            "minFontSize": float(self.min_font_size),
            "textColorMode": self.text_color_mode,
            "showBoxNumbers": bool(self.show_box_numbers),
            "showDeleteButtons": bool(self.show_delete_buttons),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        mode = data.get("textColorMode", "black")
        return cls(
            default_decimal_places=max(0, int(data.get("defaultDecimalPlaces", 2))),
            min_box_size=max(0.0, float(data.get("minBoxSize", 1.0))),
            min_font_size=max(0.0, float(data.get("minFontSize", 2.0))),
            text_color_mode="white" if mode == "white" else "black",
            show_box_numbers=bool(data.get("showBoxNumbers", True)),
            show_delete_buttons=bool(data.get("showDeleteButtons", True)),
        )

    def copy(self) -> "Settings":
        return replace(self)


# ---- Serialization helpers -------------------------------------------------------

def boxes_to_json(boxes: List[Box]) -> List[Dict[str, Any]]:
    return [box.asdict() for box in boxes]


def boxes_from_json(items: Optional[List[Dict[str, Any]]]) -> List[Box]:
    return [Box.from_dict(item) for item in items or []]


def stamps_to_json(stamps: List[Stamp]) -> List[Dict[str, Any]]:
    return [stamp.asdict() for stamp in stamps]


def stamps_from_json(items: Optional[List[Dict[str, Any]]]) -> List[Stamp]:
    return [Stamp.from_dict(item) for item in items or []]


def measurements_to_json(measurements: List[Measurement]) -> List[Dict[str, Any]]:
    return [m.asdict() for m in measurements]


def measurements_from_json(items: Optional[List[Dict[str, Any]]]) -> List[Measurement]:
    return [Measurement.from_dict(item) for item in items or []]
