"""Geometry helpers for the drawmark canvas.

Canvas space is the coordinate system of the drawing image; screen space is
what the widget paints. ``screen = canvas * scale + translate``. Everything
here is pure and works on plain tuples so the Qt layer and the tests can
share it.
"""
from __future__ import annotations

import math
import re
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .models import ViewTransform

Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]

MIN_SCALE = 0.5
MAX_SCALE = 1000.0
ZOOM_OUT_FACTOR = 0.9
ZOOM_IN_FACTOR = 1.1
HANDLES = ("nw", "ne", "se", "sw", "n", "e", "s", "w")
_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


# ---- View transform ----------------------------------------------------------

def screen_to_canvas(sx: float, sy: float, transform: ViewTransform) -> Point:
    return ((sx - transform.translate_x) / transform.scale, (sy - transform.translate_y) / transform.scale)


def canvas_to_screen(x: float, y: float, transform: ViewTransform) -> Point:
    return (x * transform.scale + transform.translate_x, y * transform.scale + transform.translate_y)


def reset_transform() -> ViewTransform:
    return ViewTransform()


def pan(transform: ViewTransform, dx: float, dy: float) -> ViewTransform:
    return ViewTransform(transform.scale, transform.translate_x + dx, transform.translate_y + dy)


def zoom_by(
    transform: ViewTransform,
    factor: float,
    pivot: Point,
    min_scale: float = MIN_SCALE,
    max_scale: float = MAX_SCALE,
) -> ViewTransform:
    """Scale by ``factor`` keeping the canvas point under ``pivot`` fixed.

    The pivot is in screen coordinates. The new scale is clamped into
    ``[min_scale, max_scale]``; when clamping leaves the scale unchanged the
    transform is returned as is.
    """
    new_scale = min(max_scale, max(min_scale, transform.scale * factor))
    if new_scale == transform.scale:
        return transform
    px, py = pivot
    cx, cy = screen_to_canvas(px, py, transform)
    return ViewTransform(new_scale, px - cx * new_scale, py - cy * new_scale)


def zoom_at(
    transform: ViewTransform,
    delta: float,
    pivot: Point,
    min_scale: float = MIN_SCALE,
    max_scale: float = MAX_SCALE,
) -> ViewTransform:
    """Wheel zoom: positive ``delta`` zooms out, anything else zooms in."""
    factor = ZOOM_OUT_FACTOR if delta > 0 else ZOOM_IN_FACTOR
    return zoom_by(transform, factor, pivot, min_scale, max_scale)


# ---- Rectangles & handles -------------------------------------------------------

def normalize_rect(start: Point, end: Point) -> Rect:
    x0, y0 = start
    x1, y1 = end
    return (min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


def handle_size_for_scale(base: float, scale: float) -> float:
    return base / max(1.0, scale / 2.0)


def handle_position(rect: Rect, handle: str, handle_size: float) -> Point:
    """Top-left corner of the square drawn for ``handle``."""
    x, y, w, h = rect
    half = handle_size / 2.0
    positions: Dict[str, Point] = {
        "nw": (x - half, y - half),
        "ne": (x + w - half, y - half),
        "se": (x + w - half, y + h - half),
        "sw": (x - half, y + h - half),
        "n": (x + w / 2.0 - half, y - half),
        "e": (x + w - half, y + h / 2.0 - half),
        "s": (x + w / 2.0 - half, y + h - half),
        "w": (x - half, y + h / 2.0 - half),
    }
    try:
        return positions[handle]
    except KeyError:
        raise ValueError(f"Unknown handle: {handle!r}") from None


def hit_test_handle(rect: Rect, point: Point, transform: ViewTransform, base_size: float = 8.0) -> Optional[str]:
    """Return the handle under canvas ``point``, corners before edges."""
    size = handle_size_for_scale(base_size, transform.scale)
    px, py = point
    for handle in HANDLES:
        hx, hy = handle_position(rect, handle, size)
        if hx <= px <= hx + size and hy <= py <= hy + size:
            return handle
    return None


def hit_test_rects(rects: Sequence[Rect], point: Point) -> Optional[int]:
    """Index of the topmost (last) rect containing ``point``."""
    if not rects:
        return None
    arr = np.asarray(rects, dtype=float).reshape(-1, 4)
    px, py = point
    inside = (
        (arr[:, 0] <= px)
        & (px <= arr[:, 0] + arr[:, 2])
        & (arr[:, 1] <= py)
        & (py <= arr[:, 1] + arr[:, 3])
    )
    hits = np.flatnonzero(inside)
    if hits.size == 0:
        return None
    return int(hits[-1])


def resize_rect(start: Rect, handle: str, dx: float, dy: float, min_w: float, min_h: float) -> Rect:
    """Recompute a rect from its frozen ``start`` for a drag of (dx, dy) on ``handle``.

    When a minimum size is hit the edge opposite the handle stays put.
    """
    if handle not in HANDLES:
        raise ValueError(f"Unknown handle: {handle!r}")
    sx, sy, sw, sh = start
    x, y, w, h = sx, sy, sw, sh
    if "w" in handle:
        x = sx + dx
        w = sw - dx
    elif "e" in handle:
        w = sw + dx
    if "n" in handle:
        y = sy + dy
        h = sh - dy
    elif "s" in handle:
        h = sh + dy
    if w < min_w:
        w = min_w
        if "w" in handle:
            x = sx + sw - min_w
    if h < min_h:
        h = min_h
        if "n" in handle:
            y = sy + sh - min_h
    return (x, y, w, h)


def clamp_menu_position(
    x: float,
    y: float,
    menu_w: float,
    menu_h: float,
    viewport_w: float,
    viewport_h: float,
    offset: Point = (50.0, 100.0),
    margin: float = 10.0,
) -> Point:
    mx = x + offset[0]
    my = y + offset[1]
    if mx + menu_w > viewport_w:
        mx = viewport_w - menu_w - margin
    if my + menu_h > viewport_h:
        my = max(margin, my - menu_h + offset[1])
    return (mx, max(margin, my))


# ---- Text & borders ------------------------------------------------------------

def border_width(width: float, height: float, scale: float = 1.0) -> float:
    smallest = min(width, height)
    if smallest < 10:
        base = 0.0
    elif smallest < 20:
        base = 0.8
    elif smallest < 30:
        base = 1.0
    elif smallest < 50:
        base = 1.5
    else:
        base = 2.0
    if scale < 1:
        scaled = base / scale
    else:
        scaled = base / max(1.0, scale / 2.0)
    return min(3.0, max(0.0, scaled))


def is_vertical(width: float, height: float) -> bool:
    return height > width * 1.5


def font_size(
    text: str,
    width: float,
    height: float,
    vertical: bool = False,
    override: Optional[float] = None,
    min_font_size: float = 2.0,
    padding: float = 2.0,
) -> float:
    """Font size that fits ``text`` into a width × height box."""
    if override is not None and override > 0:
        return float(override)
    avail_w = max(0.0, width - padding * 2)
    avail_h = max(0.0, height - padding * 2)
    if min(width, height) < 15:
        return max(1.0, min(avail_h * 0.6, avail_w * 0.8))
    length = max(1, len(text))
    if vertical:
        fitted = min(avail_h / length * 0.8, avail_w * 0.9)
        return max(min_font_size, min(fitted, 24.0))
    fitted = min(avail_w / (length * 0.6), avail_h * 0.8)
    return max(min_font_size, min(fitted, 32.0))


def format_value(value: Optional[str], decimal_places: int = 2) -> str:
    if value is None:
        return ""
    text = str(value)
    # leading number wins, so "1.5mm" still rounds
    match = _LEADING_NUMBER.match(text)
    if match is None:
        return text
    number = float(match.group(1))
    if not math.isfinite(number):
        return text
    return f"{number:.{max(0, int(decimal_places))}f}"
