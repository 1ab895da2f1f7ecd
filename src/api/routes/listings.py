"""Listing action routes.

Endpoints:
    POST /listings/parse           Scrape and analyze a listing URL
    POST /listings/{id}/scripts    Generate voice-over scripts for every group
    GET  /listings/{id}/groups     Listing with its groups and media
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AnyHttpUrl, BaseModel

from src.api.deps import get_container
from src.container import ServiceContainer
from src.executor.errors import ValidationError
from src.executor.schemas import Listing, TriggerEventResponse
from src.workflows.definitions import generate_scripts, parse_listing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/listings", tags=["listings"])


class ParseListingRequest(BaseModel):
    url: AnyHttpUrl


def _start(container: ServiceContainer, event_name: str, data: dict) -> TriggerEventResponse:
    try:
        job = container.scheduler.dispatch(event_name, data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TriggerEventResponse(event_id=job.id, workflow_name=job.workflow_name, status=job.status)


@router.post("/parse", response_model=TriggerEventResponse)
async def parse_listing_url(
    request: ParseListingRequest,
    container: ServiceContainer = Depends(get_container),
):
    return _start(container, parse_listing.DEFINITION.event_name, {"url": str(request.url)})


@router.post("/{listing_id}/scripts", response_model=TriggerEventResponse)
async def start_script_generation(
    listing_id: str,
    container: ServiceContainer = Depends(get_container),
):
    listing = container.entities.get_listing(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing not found: {listing_id}")
    if not listing.groups:
        raise HTTPException(status_code=400, detail=f"Listing {listing_id} has no media groups")

    return _start(container, generate_scripts.DEFINITION.event_name, {"listing_id": listing_id})


@router.get("/{listing_id}/groups", response_model=Listing)
async def get_listing_groups(
    listing_id: str,
    container: ServiceContainer = Depends(get_container),
):
    listing = container.entities.get_listing(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing not found: {listing_id}")
    return listing
