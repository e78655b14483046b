"""Stateless work-state operations for the API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from drawmark_core.assignment import auto_assign, renumber
from drawmark_core.config import load_config
from drawmark_core.models import Measurement
from drawmark_core.persistence import MeasurementRecord, WorkStateRecord
from drawmark_core.render import build_render_plan, plan_to_json
from drawmark_core.state import AppState


def assign(record: WorkStateRecord, measurements: Optional[List[MeasurementRecord]] = None) -> Dict[str, Any]:
    state = AppState.from_record(record)
    if measurements is not None:
        state.measurements = [Measurement.from_dict(item.model_dump(by_alias=True)) for item in measurements]
    state.boxes = auto_assign(state.boxes, state.measurements)
    return state.to_record().to_json()


def renumber_boxes(record: WorkStateRecord) -> Dict[str, Any]:
    state = AppState.from_record(record)
    state.boxes = renumber(state.boxes)
    return state.to_record().to_json()


def render_plan(record: WorkStateRecord, scale: float = 1.0) -> List[Dict[str, Any]]:
    state = AppState.from_record(record)
    if scale <= 0:
        raise ValueError("scale must be positive")
    return plan_to_json(build_render_plan(state, scale=scale, company_default=load_config().company_name))
