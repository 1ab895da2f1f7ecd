"""generate-scripts: write a voice-over script for every group of a listing."""

import logging

from src.executor.errors import ValidationError
from src.executor.schemas import EntityKind
from src.executor.workflow_runner import StepContext
from src.workflows.schemas import ListingJobInput, WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)


def run(ctx: StepContext, payload: ListingJobInput) -> None:
    deps = ctx.deps
    listing_id = payload.listing_id

    def setup() -> None:
        listing = deps.entities.require_listing(listing_id)
        ctx.attach_entity(listing.id)
        if not listing.groups:
            raise ValidationError(f"Listing {listing_id} has no media groups")

    ctx.run("setup", setup)

    def generate_scripts():
        listing = deps.entities.require_listing(listing_id)
        context = deps.llm.generate_property_context(listing, listing.groups)
        scripts = deps.llm.generate_scripts(listing.groups, context)
        return context, scripts

    property_context, scripts = ctx.run("generate-scripts", generate_scripts)

    def update_groups() -> None:
        for item in scripts:
            deps.entities.update_group(item.group_id, script=item.script)
        deps.entities.update_listing(
            listing_id, property_context=property_context, has_scripts=True
        )

    ctx.run("update-groups-with-scripts", update_groups)

    ctx.run("finish", lambda: logger.info(
        f"[{ctx.label}] Wrote {len(scripts)} scripts for listing {listing_id}"
    ))


DEFINITION = WorkflowDefinition(
    workflow_name="generate-scripts",
    event_name="listing/generate-scripts",
    description="Generate a property summary and one voice-over script per group.",
    entity_kind=EntityKind.LISTING,
    input_model=ListingJobInput,
    handler=run,
    steps=[
        WorkflowStep(step_name="setup", label="Loading listing"),
        WorkflowStep(step_name="generate-scripts", label="Writing scripts"),
        WorkflowStep(step_name="update-groups-with-scripts", label="Saving scripts"),
        WorkflowStep(step_name="finish", label="Done"),
    ],
)
