"""Background parse jobs whose progress is streamed as server-sent events."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

logger = logging.getLogger(__name__)

Event = Tuple[str, Dict[str, Any]]
JobWorker = Callable[[Dict[str, Any], "JobContext"], Awaitable[Dict[str, Any]]]


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobContext:
    """What a worker sees of its job: an id and a way to report progress."""

    job_id: str
    events: "asyncio.Queue[Event]"

    async def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        await self.events.put((event_type, data))


@dataclass
class Job:
    id: str
    worker: str
    payload: Dict[str, Any] = field(default_factory=dict)
    state: JobState = JobState.QUEUED
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events: "asyncio.Queue[Event]" = field(default_factory=asyncio.Queue)

    @property
    def finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)


def format_sse(event_type: str, data: Dict[str, Any]) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class JobManager:
    def __init__(self, poll_interval: float = 0.5) -> None:
        self._jobs: Dict[str, Job] = {}
        self._workers: Dict[str, JobWorker] = {}
        self.poll_interval = poll_interval

    def register_worker(self, name: str, worker: JobWorker) -> None:
        self._workers[name] = worker

    @property
    def kinds(self) -> List[str]:
        return sorted(self._workers)

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def submit(self, worker: str, payload: Dict[str, Any]) -> Job:
        """Start ``worker`` on ``payload``; raises KeyError for unknown workers."""
        run = self._workers[worker]
        job = Job(id=uuid4().hex, worker=worker, payload=payload)
        self._jobs[job.id] = job
        asyncio.create_task(self._run(job, run))
        logger.info("Queued %s job %s", worker, job.id)
        return job

    async def _run(self, job: Job, run: JobWorker) -> None:
        context = JobContext(job.id, job.events)
        job.state = JobState.RUNNING
        await context.emit("status", {"state": job.state.value})
        try:
            job.result = await run(job.payload, context)
            job.state = JobState.COMPLETED
        except Exception as exc:  # noqa: BLE001 - surfaced to the client as job.error
            logger.exception("Job %s failed", job.id)
            job.error = str(exc)
            job.state = JobState.FAILED
        job.finished_at = datetime.utcnow()
        final: Dict[str, Any] = {"state": job.state.value}
        if job.error:
            final["message"] = job.error
        await context.emit("status", final)

    async def stream(self, job_id: str) -> AsyncIterator[str]:
        """Yield SSE frames until the job has finished and its queue is drained."""
        job = self._jobs[job_id]
        while not (job.finished and job.events.empty()):
            try:
                event_type, data = await asyncio.wait_for(job.events.get(), self.poll_interval)
            except asyncio.TimeoutError:
                continue
            yield format_sse(event_type, data)
