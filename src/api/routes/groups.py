"""Media group action routes.

Endpoints:
    GET  /groups/{id}               Group with its media
    POST /groups/{id}/auto-reel     Generate a video from the group's photos
    POST /groups/{id}/voice-over    Synthesize the script and store the audio
    POST /groups/{id}/final-video   Render the reel with its voice-over

Preconditions are checked here, before a job row exists: a rejected
request leaves no job behind.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from src.api.deps import get_container
from src.container import ServiceContainer
from src.executor.errors import ProviderError, ValidationError
from src.executor.schemas import MediaGroup, TriggerEventResponse
from src.workflows.definitions import generate_auto_reel, generate_final_video

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def _require_group(container: ServiceContainer, group_id: str) -> MediaGroup:
    group = container.entities.get_group(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail=f"Group not found: {group_id}")
    return group


def _start(container: ServiceContainer, event_name: str, group_id: str) -> TriggerEventResponse:
    try:
        job = container.scheduler.dispatch(event_name, {"group_id": group_id})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TriggerEventResponse(event_id=job.id, workflow_name=job.workflow_name, status=job.status)


@router.get("/{group_id}", response_model=MediaGroup)
async def get_group(group_id: str, container: ServiceContainer = Depends(get_container)):
    return _require_group(container, group_id)


@router.post("/{group_id}/auto-reel", response_model=TriggerEventResponse)
async def start_auto_reel(group_id: str, container: ServiceContainer = Depends(get_container)):
    group = _require_group(container, group_id)
    if not group.image_urls:
        raise HTTPException(status_code=400, detail=f"Group {group_id} has no images")
    return _start(container, generate_auto_reel.DEFINITION.event_name, group_id)


@router.post("/{group_id}/voice-over", response_model=MediaGroup)
def generate_voice_over(group_id: str, container: ServiceContainer = Depends(get_container)):
    """Synthesize the group's script and attach the audio (synchronous, no job)."""
    group = _require_group(container, group_id)
    if not group.script:
        raise HTTPException(status_code=400, detail=f"Group {group_id} has no script")

    try:
        audio = container.tts.synthesize(group.script)
        audio_url = container.storage.upload(
            container.storage.paths.voice_over(group.listing_id, group_id),
            audio,
            "audio/mpeg",
        )
    except ProviderError as e:
        logger.error(f"[voice-over:{group_id}] {e}")
        raise HTTPException(status_code=502, detail=str(e))

    logger.info(f"[voice-over:{group_id}] Stored audio at {audio_url}")
    return container.entities.update_group(group_id, audio_url=audio_url)


@router.post("/{group_id}/final-video", response_model=TriggerEventResponse)
async def start_final_video(group_id: str, container: ServiceContainer = Depends(get_container)):
    group = _require_group(container, group_id)
    if not group.auto_reel_url:
        raise HTTPException(
            status_code=400, detail=f"Group {group_id} does not have an auto-reel video"
        )
    if not group.audio_url:
        raise HTTPException(
            status_code=400, detail=f"Group {group_id} does not have voice-over audio"
        )
    return _start(container, generate_final_video.DEFINITION.event_name, group_id)
