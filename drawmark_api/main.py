from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI

from drawmark_core import __version__

from .adapters import measurements as measurements_adapter
from .jobs import JobContext, JobManager
from .routers import measurements as measurements_router
from .routers import workstates as workstates_router
from .routers.jobs import build as build_jobs_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="drawmark API",
    version=__version__,
    description="Measurement table parsing and work-state helpers for annotated drawings",
)
job_manager = JobManager()


async def parse_worker(payload: Dict[str, Any], context: JobContext) -> Dict[str, Any]:
    return await measurements_adapter.parse_job(payload, context.emit)


def _register_workers() -> None:
    job_manager.register_worker("parse", parse_worker)


_register_workers()

app.include_router(measurements_router.router)
app.include_router(workstates_router.router)
app.include_router(build_jobs_router(job_manager))


@app.on_event("startup")
async def _configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    logger.info("drawmark API %s ready (workers: %s)", app.version, ", ".join(job_manager.kinds))


@app.get("/")
async def index() -> Dict[str, Any]:
    return {
        "name": "drawmark-api",
        "version": app.version,
        "routes": [
            {"path": "/measurements/parse", "methods": ["POST"]},
            {"path": "/measurements/fallback", "methods": ["GET"]},
            {"path": "/workstates/assign", "methods": ["POST"]},
            {"path": "/workstates/renumber", "methods": ["POST"]},
            {"path": "/workstates/render-plan", "methods": ["POST"]},
            {"path": "/jobs/", "methods": ["POST"]},
            {"path": "/jobs/{job_id}", "methods": ["GET"]},
            {"path": "/jobs/{job_id}/stream", "methods": ["GET"]},
        ],
        "workers": job_manager.kinds,
    }
