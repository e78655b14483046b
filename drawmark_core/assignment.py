"""Binding boxes to rows of the measurement table.

A box's ``ordinal`` is a zero-based index into the measurement list. The
functions here never mutate their inputs; they return new box lists.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from .errors import InvalidOrdinalError
from .models import Box, Measurement

logger = logging.getLogger(__name__)

MAX_ORDINAL = 999

ConfirmCallback = Callable[[str], bool]


def auto_assign(boxes: Sequence[Box], measurements: Sequence[Measurement]) -> List[Box]:
    """Copy each box's measurement row into it, skipping manual edits."""
    updated: List[Box] = []
    assigned = 0
    for box in boxes:
        if box.manually_edited or not 0 <= box.ordinal < len(measurements):
            updated.append(box.copy())
            continue
        row = measurements[box.ordinal]
        updated.append(replace(box, value=row.value, out_of_tolerance=row.out_of_tolerance))
        assigned += 1
    logger.debug("auto_assign: %d of %d boxes bound", assigned, len(boxes))
    return updated


def assign_specific(
    boxes: Sequence[Box],
    box_id: int,
    index: int,
    measurements: Sequence[Measurement],
) -> List[Box]:
    """Rebind one box to row ``index`` and copy that row's value into it.

    Missing box ids or out-of-range rows leave the list unchanged.
    """
    if not 0 <= index < len(measurements):
        return [box.copy() for box in boxes]
    row = measurements[index]
    result: List[Box] = []
    for box in boxes:
        if box.id == box_id:
            result.append(
                replace(
                    box,
                    ordinal=index,
                    value=row.value,
                    out_of_tolerance=row.out_of_tolerance,
                    manually_edited=False,
                )
            )
        else:
            result.append(box.copy())
    return result


def next_available_ordinal(boxes: Sequence[Box]) -> int:
    used = {box.ordinal for box in boxes}
    candidate = 0
    while candidate in used:
        candidate += 1
    return candidate


def renumber(boxes: Sequence[Box]) -> List[Box]:
    """Compact ordinals to 0..n-1 in ordinal order (stable).

    Values and tolerance flags of non-manual boxes are cleared because their
    binding to the measurement table has changed.
    """
    ordered = sorted(boxes, key=lambda box: box.ordinal)
    result: List[Box] = []
    for new_ordinal, box in enumerate(ordered):
        if box.manually_edited:
            result.append(replace(box, ordinal=new_ordinal))
        else:
            result.append(replace(box, ordinal=new_ordinal, value=None, out_of_tolerance=False))
    return result


def ordinal_collision(boxes: Sequence[Box], box_id: int, ordinal: int) -> Optional[Box]:
    for box in boxes:
        if box.ordinal == ordinal and box.id != box_id:
            return box
    return None


def parse_ordinal_input(text: str) -> int:
    """Turn operator input into a one-based box number."""
    try:
        return int(str(text).strip())
    except ValueError:
        raise InvalidOrdinalError(text) from None


def change_ordinal(
    boxes: Sequence[Box],
    box_id: int,
    one_based: int,
    confirm: Optional[ConfirmCallback] = None,
) -> Optional[List[Box]]:
    """Give ``box_id`` the one-based number ``one_based``.

    Raises :class:`InvalidOrdinalError` outside 1..1000. When another box
    already uses the number, ``confirm`` is asked; a refusal returns ``None``
    and nothing changes. Duplicates are allowed once confirmed.
    """
    target = int(one_based) - 1
    if target < 0 or target > MAX_ORDINAL:
        raise InvalidOrdinalError(one_based)
    if not any(box.id == box_id for box in boxes):
        raise KeyError(box_id)
    clash = ordinal_collision(boxes, box_id, target)
    if clash is not None and confirm is not None:
        if not confirm(f"番号 {one_based} は既に使用されています。上書きしますか？"):
            return None
    return [replace(box, ordinal=target) if box.id == box_id else box.copy() for box in boxes]


def set_all_decimal_places(boxes: Sequence[Box], decimal_places: int) -> List[Box]:
    if decimal_places < 0:
        raise ValueError("decimal_places must be non-negative")
    return [replace(box, decimal_places=int(decimal_places)) for box in boxes]
