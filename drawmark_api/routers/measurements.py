from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..adapters import measurements as measurements_adapter


class FragmentIn(BaseModel):
    text: str
    x: float
    y: float


class ParseRequest(BaseModel):
    pages: List[List[FragmentIn]] = Field(default_factory=list, description="Positioned text, one list per page")
    row_epsilon: Optional[float] = Field(default=None, gt=0, alias="rowEpsilon")

    model_config = {"populate_by_name": True}


class MeasurementOut(BaseModel):
    name: str
    value: str
    unit: str
    outOfTolerance: bool


class ParseResponse(BaseModel):
    measurements: List[MeasurementOut]
    warning: Optional[str] = None
    usedFallback: bool = False
    formats: List[str] = Field(default_factory=list)


router = APIRouter(prefix="/measurements", tags=["measurements"])


@router.post("/parse", response_model=ParseResponse)
async def parse(body: ParseRequest) -> ParseResponse:
    payload: Dict[str, Any] = {"pages": [[f.model_dump() for f in page] for page in body.pages]}
    if body.row_epsilon is not None:
        payload["rowEpsilon"] = body.row_epsilon
    try:
        result = measurements_adapter.parse_fragments(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ParseResponse(**result)


@router.get("/fallback", response_model=List[MeasurementOut])
async def fallback() -> List[MeasurementOut]:
    return [MeasurementOut(**row) for row in measurements_adapter.fallback_table()]
