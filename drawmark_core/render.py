"""Draw plan shared by the on-screen canvas and raster export.

``build_render_plan`` flattens the live state into plain draw items (boxes
first in array order, stamps after) with every derived quantity already
computed, so the painter only has to issue primitives.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .geometry import border_width, font_size, format_value, is_vertical
from .models import SIGNER_KEYS, SIGNER_LABELS, Box, Settings, Stamp
from .state import AppState

Rect = Tuple[float, float, float, float]

BOX_STROKE = "#ff6b6b"
BOX_STROKE_OUT = "#ff0000"
BOX_FILL = "#1aff6b6b"
BOX_FILL_OUT = "#1aff0000"
TEXT_DARK = "#333333"
TEXT_LIGHT = "#ffffff"
STAMP_RED = "#ff0000"
STAMP_FILL = "#ffffff"

STAMP_BASE_WIDTH = 400.0
STAMP_BASE_HEIGHT = 330.0
EXPORT_SCALE = 3


@dataclass
class BoxItem:
    id: int
    rect: Rect
    stroke: str
    fill: str
    border_width: float
    text: str
    font_size: float
    vertical: bool
    text_color: str
    label: Optional[str] = None
    kind: str = "box"


@dataclass
class SignerCell:
    key: str
    label: str
    center: Tuple[float, float]
    label_y: float
    name: Optional[str]
    seal_radius: float
    name_font_size: float


@dataclass
class StampItem:
    id: int
    rect: Rect
    scale: float
    title: str
    title_font_size: float
    spaced_title: bool
    date: str
    date_font_size: float
    company_name: str
    company_font_size: float
    header_height: float
    company_height: float
    signer_header_height: float
    signer_area_height: float
    label_font_size: float
    signers: List[SignerCell] = field(default_factory=list)
    order_height: float = 0.0
    order_label: str = ""
    order_no: str = ""
    order_font_size: float = 0.0
    order_divider_x: float = 0.0
    kind: str = "stamp"


def seal_font_size(name: str, radius: float) -> float:
    length = len(name)
    if length <= 2:
        ratio = 0.9
    elif length == 3:
        ratio = 0.6
    elif length == 4:
        ratio = 0.43
    elif length == 5:
        ratio = 0.38
    else:
        ratio = 0.35
    return max(1.0, radius * ratio)


def box_item(box: Box, settings: Settings, scale: float = 1.0) -> BoxItem:
    text = format_value(box.value, box.decimal_places) if box.value else ""
    vertical = is_vertical(box.width, box.height)
    if box.out_of_tolerance:
        text_color = BOX_STROKE_OUT
    else:
        text_color = TEXT_LIGHT if settings.text_color_mode == "white" else TEXT_DARK
    return BoxItem(
        id=box.id,
        rect=box.rect,
        stroke=BOX_STROKE_OUT if box.out_of_tolerance else BOX_STROKE,
        fill=BOX_FILL_OUT if box.out_of_tolerance else BOX_FILL,
        border_width=border_width(box.width, box.height, scale),
        text=text,
        font_size=font_size(text, box.width, box.height, vertical, box.font_size, settings.min_font_size),
        vertical=vertical,
        text_color=text_color,
        label=str(box.ordinal + 1) if settings.show_box_numbers else None,
    )


def stamp_item(stamp: Stamp, company_default: str = "") -> StampItem:
    x, y, w, h = stamp.rect
    s = min(w / STAMP_BASE_WIDTH, h / STAMP_BASE_HEIGHT, 1.0)
    header_h = max(40.0, 80 * s)
    company_h = max(25.0, 50 * s)
    show_order = s > 0.25
    order_h = max(20.0, 50 * s) if show_order else 0.0
    area_h = h - header_h - company_h - order_h
    signer_header_h = max(20.0, 40 * s)
    column_w = w / 3.0
    top = y + header_h + company_h
    radius = min(40.0, max(10.0, 40 * s))
    cells: List[SignerCell] = []
    for index, key in enumerate(SIGNER_KEYS):
        name = getattr(stamp.data.signers, key)
        cx = x + column_w * index + column_w / 2.0
        cy = top + signer_header_h + (area_h - signer_header_h) / 2.0
        cells.append(
            SignerCell(
                key=key,
                label=SIGNER_LABELS[key],
                center=(cx, cy),
                label_y=top + signer_header_h / 2.0,
                name=name,
                seal_radius=radius,
                name_font_size=seal_font_size(name, radius) if name else 0.0,
            )
        )
    return StampItem(
        id=stamp.id,
        rect=stamp.rect,
        scale=s,
        title=stamp.data.title or "検査成績表",
        title_font_size=max(12.0, 24 * s),
        spaced_title=s > 0.3,
        date=stamp.data.date,
        date_font_size=max(7.0, 14 * s),
        company_name=stamp.data.company_name or company_default,
        company_font_size=max(7.0, 18 * s),
        header_height=header_h,
        company_height=company_h,
        signer_header_height=signer_header_h,
        signer_area_height=area_h,
        label_font_size=max(8.0, 14 * s),
        signers=cells,
        order_height=order_h,
        order_label=("受注番号" if s > 0.35 else "受注") if show_order else "",
        order_no=stamp.data.order_no if show_order else "",
        order_font_size=max(8.0, 16 * s) if show_order else 0.0,
        order_divider_x=x + max(50.0, 138 * s) if show_order else 0.0,
    )


def build_render_plan(state: AppState, scale: float = 1.0, company_default: str = "") -> List[Any]:
    """Draw items in paint order. ``scale`` only affects border widths."""
    items: List[Any] = [box_item(box, state.settings, scale) for box in state.boxes]
    items.extend(stamp_item(stamp, company_default) for stamp in state.stamps)
    return items


def plan_to_json(items: List[Any]) -> List[Dict[str, Any]]:
    return [asdict(item) for item in items]
