from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..jobs import Job, JobManager


class JobSubmission(BaseModel):
    worker: str = Field(default="parse", description="Registered worker name")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Either `pages` fragments or a server-side `path`")


class JobSummary(BaseModel):
    id: str
    kind: str
    status: str
    submitted_at: datetime
    finished_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def of(cls, job: Job) -> "JobSummary":
        return cls(
            id=job.id,
            kind=job.worker,
            status=job.state.value,
            submitted_at=job.submitted_at,
            finished_at=job.finished_at,
            result=job.result,
            error=job.error,
        )


def build(job_manager: JobManager) -> APIRouter:
    router = APIRouter(prefix="/jobs", tags=["jobs"])

    def _job(job_id: str) -> Job:
        job = job_manager.get(job_id)
        if job is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
        return job

    @router.post("/", response_model=JobSummary, status_code=status.HTTP_202_ACCEPTED)
    async def submit_job(submission: JobSubmission) -> JobSummary:
        try:
            job = await job_manager.submit(submission.worker, submission.payload)
        except KeyError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No worker registered for '{submission.worker}'",
            ) from exc
        return JobSummary.of(job)

    @router.get("/{job_id}", response_model=JobSummary)
    async def get_job(job_id: str) -> JobSummary:
        return JobSummary.of(_job(job_id))

    @router.get("/{job_id}/stream")
    async def stream_job(job_id: str) -> StreamingResponse:
        _job(job_id)
        return StreamingResponse(job_manager.stream(job_id), media_type="text/event-stream")

    return router
