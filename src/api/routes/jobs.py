"""Job progress routes.

Endpoints:
    GET /jobs                         List recent jobs
    GET /jobs/{job_id}                Poll a job
    GET /jobs/{job_id}/{entity_kind}  Poll a job with its listing or group

An unknown job id is not an error for pollers: the response is
{"job": null, "entity": null}.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_container
from src.container import ServiceContainer
from src.executor.schemas import EntityKind, JobProgress, JobStatus, JobSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobSummary])
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=200),
    container: ServiceContainer = Depends(get_container),
):
    return container.ledger.list_jobs(status=status.value if status else None, limit=limit)


@router.get("/{job_id}", response_model=JobProgress)
async def get_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    return container.progress.get_progress(job_id)


@router.get("/{job_id}/{entity_kind}", response_model=JobProgress)
async def get_job_with_entity(
    job_id: str,
    entity_kind: EntityKind,
    container: ServiceContainer = Depends(get_container),
):
    return container.progress.get_progress(job_id, entity_kind)
