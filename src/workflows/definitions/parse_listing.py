"""parse-listing: scrape a listing URL into a Listing with grouped, described photos."""

import logging
from concurrent.futures import ThreadPoolExecutor

from src.executor.errors import ProviderError, StepFailedError
from src.executor.polling import poll_until_done
from src.executor.schemas import EntityKind, MediaType
from src.executor.workflow_runner import StepContext
from src.llm.schemas import DescribedImage
from src.providers.storage import url_filename
from src.workflows.property_data import compile_property_data, extract_photo_urls
from src.workflows.schemas import ParseListingInput, WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)


def run(ctx: StepContext, payload: ParseListingInput) -> None:
    deps = ctx.deps
    settings = deps.settings
    url = str(payload.url)

    def setup() -> str:
        # Reuse the listing created by an earlier (interrupted) run. The job
        # stays bound to it, so a vanished listing fails instead of orphaning
        # a fresh row.
        if ctx.job.entity_id:
            return deps.entities.require_listing(ctx.job.entity_id, with_groups=False).id
        listing = deps.entities.create_listing()
        ctx.attach_entity(listing.id)
        return ctx.job.entity_id

    listing_id = ctx.run("setup", setup)

    snapshot_id = ctx.run("start-scrape", lambda: deps.scraper.submit(url))

    ctx.run("poll-scrape-status", lambda: poll_until_done(
        deps.scraper,
        snapshot_id,
        interval=settings.scrape_poll_interval,
        timeout=settings.scrape_timeout,
        label=f"{ctx.label}:scrape",
        cancel_event=ctx.cancel_event,
        slots=ctx.slots,
    ))

    snapshot = ctx.run("retrieve-data", lambda: deps.scraper.fetch_snapshot(snapshot_id))

    def analyze_property_data() -> str:
        location, stats = compile_property_data(snapshot)
        deps.entities.update_listing(listing_id, location=location or None, property_stats=stats)
        return location

    def analyze_photos() -> list[DescribedImage]:
        photo_urls = extract_photo_urls(snapshot)
        if not photo_urls:
            raise StepFailedError("Listing has no photos")
        deps.entities.update_listing(listing_id, image_count=len(photo_urls))

        def describe(photo_url: str) -> DescribedImage:
            return deps.llm.describe_image(
                photo_url, url_filename(photo_url), cancel_event=ctx.cancel_event
            )

        with ThreadPoolExecutor(max_workers=settings.photo_analysis_concurrency) as pool:
            described = list(pool.map(describe, photo_urls))
        logger.info(f"[{ctx.label}] Described {len(described)} photos")
        return described

    results = ctx.parallel({
        "analyze-property-data": analyze_property_data,
        "analyze-photos": analyze_photos,
    })
    images = results["analyze-photos"]

    def group_photos():
        groups = deps.llm.group_images(images, cancel_event=ctx.cancel_event)
        if not groups:
            raise StepFailedError("No photo groups could be formed")
        return groups

    groups = ctx.run("group-photos", group_photos)

    def store_groups() -> list[str]:
        group_ids = []
        for group in groups:
            row = deps.entities.upsert_group(
                listing_id, group.group_name, group.is_establishing_shot
            )
            for image in group.described_images:
                try:
                    photo = deps.storage.fetch(image.url, "image/jpeg")
                except ProviderError as e:
                    logger.warning(f"[{ctx.label}] Skipping photo {image.filename}: {e}")
                    continue
                public_url = deps.storage.upload(
                    deps.storage.paths.image(listing_id, image.url),
                    photo.content,
                    photo.content_type,
                )
                deps.entities.upsert_media(
                    listing_id,
                    public_url,
                    group_id=row.id,
                    media_type=MediaType.IMAGE,
                    description=image.description,
                    is_establishing_shot=image.is_establishing_shot,
                )
            group_ids.append(row.id)
        return group_ids

    group_ids = ctx.run("store-groups", store_groups)

    ctx.run("finish", lambda: logger.info(
        f"[{ctx.label}] Listing {listing_id} ready with {len(group_ids)} groups"
    ))


DEFINITION = WorkflowDefinition(
    workflow_name="parse-listing",
    event_name="listing/parse",
    description="Scrape a listing, describe and group its photos, and store the groups.",
    entity_kind=EntityKind.LISTING,
    input_model=ParseListingInput,
    handler=run,
    steps=[
        WorkflowStep(step_name="setup", label="Preparing listing"),
        WorkflowStep(step_name="start-scrape", label="Requesting listing data"),
        WorkflowStep(step_name="poll-scrape-status", label="Waiting for listing data"),
        WorkflowStep(step_name="retrieve-data", label="Retrieving listing data"),
        WorkflowStep(
            step_name="analyze-property-data",
            label="Analyzing property details",
            fork_group="analyze",
        ),
        WorkflowStep(step_name="analyze-photos", label="Analyzing photos", fork_group="analyze"),
        WorkflowStep(step_name="group-photos", label="Grouping photos"),
        WorkflowStep(step_name="store-groups", label="Saving photo groups"),
        WorkflowStep(step_name="finish", label="Done"),
    ],
)
