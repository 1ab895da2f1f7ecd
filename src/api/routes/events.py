"""Trigger events.

Endpoints:
    POST /events    Start (or re-attach to) the workflow bound to an event
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from src.api.deps import get_container
from src.container import ServiceContainer
from src.executor.errors import ValidationError
from src.executor.schemas import TriggerEventRequest, TriggerEventResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=TriggerEventResponse)
async def trigger_event(
    request: TriggerEventRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Validate the payload, create the job and schedule it.

    Sending the same eventId again returns the existing job instead of
    starting a second run.
    """
    try:
        job = container.scheduler.dispatch(request.event_name, request.data, request.event_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TriggerEventResponse(
        event_id=job.id,
        workflow_name=job.workflow_name,
        status=job.status,
    )
