"""generate-final-video: render the auto-reel with its voice-over."""

import logging

from src.executor.errors import StepFailedError, ValidationError
from src.executor.polling import poll_until_done
from src.executor.schemas import EntityKind
from src.executor.workflow_runner import StepContext
from src.providers.render import RenderInputProps, RenderRequest
from src.workflows.schemas import GroupJobInput, WorkflowDefinition, WorkflowStep
from src.workflows.timing import calculate_timing

logger = logging.getLogger(__name__)


def run(ctx: StepContext, payload: GroupJobInput) -> None:
    deps = ctx.deps
    settings = deps.settings
    group_id = payload.group_id

    def setup():
        group = deps.entities.require_group(group_id)
        ctx.attach_entity(group.id)
        if not group.auto_reel_url:
            raise ValidationError(f"Group {group_id} does not have an auto-reel video")
        if not group.audio_url:
            raise ValidationError(f"Group {group_id} does not have voice-over audio")
        return group

    group = ctx.run("setup", setup)

    def calculate():
        audio_duration = deps.media_probe.duration(group.audio_url)
        video_duration = deps.media_probe.duration(group.auto_reel_url)
        timing = calculate_timing(audio_duration, video_duration)
        logger.info(
            f"[{ctx.label}] audio={audio_duration:.1f}s video={video_duration:.1f}s → "
            f"target={timing.target_duration}s rate={timing.playback_rate:.2f} "
            f"padding={timing.audio_padding:.2f}s"
        )
        return timing

    timing = ctx.run("calculate-timing", calculate)

    render_id = ctx.run("start-render", lambda: deps.render.submit(RenderRequest(
        composition_id=settings.render_composition_id,
        input_props=RenderInputProps(
            video_url=group.auto_reel_url,
            audio_url=group.audio_url,
            playback_rate=timing.playback_rate,
            audio_padding=timing.audio_padding,
        ),
        out_name=f"final-video-{group_id}",
        frames_per_lambda=timing.frames_per_lambda,
    )))

    def wait_for_render() -> str:
        output_file = poll_until_done(
            deps.render,
            render_id,
            interval=settings.render_poll_interval,
            timeout=settings.render_timeout,
            label=f"{ctx.label}:render",
            cancel_event=ctx.cancel_event,
            slots=ctx.slots,
        )
        if not output_file:
            raise StepFailedError("Render completed but no output file was generated")
        return output_file

    output_file = ctx.run("poll-render-progress", wait_for_render)

    def upload_final_video() -> str:
        video = deps.storage.fetch(output_file, "video/mp4")
        public_url = deps.storage.upload(
            deps.storage.paths.final_reel(group.listing_id, group_id),
            video.content,
            "video/mp4",
        )
        deps.entities.update_group(group_id, reel_url=public_url)
        return public_url

    reel_url = ctx.run("upload-final-video", upload_final_video)

    ctx.run("finish", lambda: logger.info(f"[{ctx.label}] Final video stored at {reel_url}"))


DEFINITION = WorkflowDefinition(
    workflow_name="generate-final-video",
    event_name="group/generate-final-video",
    description="Render the group's auto-reel with its voice-over into the final video.",
    entity_kind=EntityKind.GROUP,
    input_model=GroupJobInput,
    handler=run,
    steps=[
        WorkflowStep(step_name="setup", label="Checking group"),
        WorkflowStep(step_name="calculate-timing", label="Calculating timing"),
        WorkflowStep(step_name="start-render", label="Starting render"),
        WorkflowStep(step_name="poll-render-progress", label="Rendering"),
        WorkflowStep(step_name="upload-final-video", label="Saving final video"),
        WorkflowStep(step_name="finish", label="Done"),
    ],
)
