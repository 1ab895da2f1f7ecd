"""Executor-side schemas for jobs, entities, and progress.

Jobs describe what the executor is doing; Listing / MediaGroup / Media
are the domain rows the workflows build up step by step.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

# Step name recorded on a job when its workflow completes.
FINISHED_STEP = "finish"


class JobStatus(str, Enum):
    """Job lifecycle states."""
    RUNNING = "running"
    READY = "ready"
    FAILED = "failed"


class EntityKind(str, Enum):
    """Entity kinds a job can be attached to."""
    LISTING = "listing"
    GROUP = "group"


class ListingStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class Job(BaseModel):
    """One ledger row: a single invocation of a workflow."""

    id: str = Field(description="Idempotency key (the triggering event id)")
    workflow_name: str
    status: JobStatus = JobStatus.RUNNING
    current_step: Optional[str] = None
    error: Optional[str] = None
    entity_id: Optional[str] = None
    input: dict[str, Any] = Field(
        default_factory=dict,
        description="Triggering event payload (used to resume after restart)",
    )
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.RUNNING


class PropertyStats(BaseModel):
    """Structured facts compiled from the scraped listing."""

    price: Optional[float] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[float] = None
    lot_size: Optional[float] = None
    year_built: Optional[int] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    mls_id: Optional[str] = None
    home_type: Optional[str] = None
    description: Optional[str] = None
    overview: Optional[Any] = None
    meta: Optional[Any] = None
    hoa_details: Optional[Any] = None


class Media(BaseModel):
    id: str
    listing_id: str
    group_id: Optional[str] = None
    media_type: MediaType = MediaType.IMAGE
    media_url: str
    description: Optional[str] = None
    is_establishing_shot: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MediaGroup(BaseModel):
    id: str
    listing_id: str
    group_name: str
    is_establishing_shot: bool = False
    script: Optional[str] = None
    audio_url: Optional[str] = None
    auto_reel_url: Optional[str] = None
    reel_url: Optional[str] = None
    media: list[Media] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @computed_field
    @property
    def described_images(self) -> list[Media]:
        return [
            m for m in self.media
            if m.media_type == MediaType.IMAGE and m.description
        ]

    @property
    def image_urls(self) -> list[str]:
        return [m.media_url for m in self.media if m.media_type == MediaType.IMAGE]


class Listing(BaseModel):
    # Unknown keys are rejected so a group payload never validates as a Listing
    model_config = ConfigDict(extra="forbid")

    id: str
    status: ListingStatus = ListingStatus.DRAFT
    location: Optional[str] = None
    image_count: Optional[int] = None
    property_stats: Optional[PropertyStats] = None
    property_context: Optional[str] = None
    has_scripts: bool = False
    has_video_reels: bool = False
    is_published: bool = False
    groups: list[MediaGroup] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class JobProgress(BaseModel):
    """Progress snapshot returned to polling clients."""

    job: Optional[Job] = None
    entity: Optional[Union[Listing, MediaGroup]] = None


class JobSummary(BaseModel):
    """Job row without its input payload (for listing)."""

    id: str
    workflow_name: str
    status: JobStatus
    current_step: Optional[str] = None
    error: Optional[str] = None
    entity_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# --- API request / response bodies ---


class TriggerEventRequest(BaseModel):
    """Body of POST /events."""

    model_config = ConfigDict(populate_by_name=True)

    event_name: str = Field(alias="eventName")
    data: dict[str, Any] = Field(default_factory=dict)
    event_id: Optional[str] = Field(
        default=None,
        alias="eventId",
        description="Redelivering the same id returns the existing job",
    )


class TriggerEventResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(serialization_alias="eventId")
    workflow_name: str = Field(serialization_alias="workflowName")
    status: JobStatus
