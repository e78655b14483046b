from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from drawmark_core.errors import WorkStateLoadError
from drawmark_core.persistence import MeasurementRecord, WorkStateRecord

from ..adapters import workstates as workstates_adapter


class AssignRequest(BaseModel):
    record: WorkStateRecord
    measurements: Optional[List[MeasurementRecord]] = Field(
        default=None,
        description="Replacement measurement table; the record's own table is used when omitted",
    )


router = APIRouter(prefix="/workstates", tags=["workstates"])


@router.post("/assign", response_model=Dict[str, Any])
async def assign(body: AssignRequest) -> Dict[str, Any]:
    try:
        return workstates_adapter.assign(body.record, body.measurements)
    except WorkStateLoadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/renumber", response_model=Dict[str, Any])
async def renumber(record: WorkStateRecord) -> Dict[str, Any]:
    try:
        return workstates_adapter.renumber_boxes(record)
    except WorkStateLoadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/render-plan", response_model=List[Dict[str, Any]])
async def render_plan(record: WorkStateRecord, scale: float = Query(default=1.0, gt=0)) -> List[Dict[str, Any]]:
    try:
        return workstates_adapter.render_plan(record, scale)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
