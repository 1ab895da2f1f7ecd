"""generate-auto-reel: turn a group's photos into a short video."""

import logging

from src.executor.errors import ValidationError
from src.executor.polling import poll_until_done
from src.executor.schemas import EntityKind
from src.executor.workflow_runner import StepContext
from src.workflows.schemas import GroupJobInput, WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)


def run(ctx: StepContext, payload: GroupJobInput) -> None:
    deps = ctx.deps
    settings = deps.settings
    group_id = payload.group_id

    def setup() -> str:
        group = deps.entities.require_group(group_id)
        ctx.attach_entity(group.id)
        if not group.image_urls:
            raise ValidationError(f"Group {group_id} has no images")
        return group.listing_id

    listing_id = ctx.run("setup", setup)

    def start_video_generation() -> str:
        group = deps.entities.require_group(group_id)
        return deps.auto_reel.submit(group.image_urls)

    video_uuid = ctx.run("start-video-generation", start_video_generation)

    video_url = ctx.run("poll-video-status", lambda: poll_until_done(
        deps.auto_reel,
        video_uuid,
        interval=settings.auto_reel_poll_interval,
        timeout=settings.auto_reel_timeout,
        label=f"{ctx.label}:auto-reel",
        cancel_event=ctx.cancel_event,
        slots=ctx.slots,
    ))

    video = ctx.run("fetch-video", lambda: deps.storage.fetch(video_url, "video/mp4"))

    def upload_video() -> str:
        public_url = deps.storage.upload(
            deps.storage.paths.auto_reel(listing_id, group_id),
            video.content,
            "video/mp4",
        )
        deps.entities.update_group(group_id, auto_reel_url=public_url)
        deps.entities.update_listing(listing_id, has_video_reels=True)
        return public_url

    reel_url = ctx.run("upload-video", upload_video)

    ctx.run("finish", lambda: logger.info(f"[{ctx.label}] Auto-reel stored at {reel_url}"))


DEFINITION = WorkflowDefinition(
    workflow_name="generate-auto-reel",
    event_name="group/generate-auto-reel",
    description="Generate a video from a group's photos and store it on the group.",
    entity_kind=EntityKind.GROUP,
    input_model=GroupJobInput,
    handler=run,
    steps=[
        WorkflowStep(step_name="setup", label="Loading group"),
        WorkflowStep(step_name="start-video-generation", label="Starting video generation"),
        WorkflowStep(step_name="poll-video-status", label="Generating video"),
        WorkflowStep(step_name="fetch-video", label="Downloading video"),
        WorkflowStep(step_name="upload-video", label="Saving video"),
        WorkflowStep(step_name="finish", label="Done"),
    ],
)
