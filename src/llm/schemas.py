"""Structured outputs of the vision / language calls."""

from typing import Optional

from pydantic import BaseModel, Field


class DescribedImage(BaseModel):
    """One listing photo after vision analysis."""

    url: str
    filename: str = Field(description="Stable name the grouping prompt refers to")
    description: str = ""
    is_establishing_shot: bool = False


class ImageGroup(BaseModel):
    """Photos of one room or area, as grouped by the model."""

    group_name: str
    described_images: list[DescribedImage] = Field(default_factory=list)

    @property
    def is_establishing_shot(self) -> bool:
        return any(img.is_establishing_shot for img in self.described_images)


class GeneratedScript(BaseModel):
    group_id: str
    script: str


class VoiceSchema(BaseModel):
    """Delivery guidance passed into every script prompt."""

    tone: str = "friendly and confident"
    style: str = "short, vivid sentences that highlight real value"
    perspective: str = "spoken in second person, as if guiding a home buyer through the space"
    voice_name: Optional[str] = None
