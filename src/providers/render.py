"""Render farm adapter: composes the final video from reel + voice-over.

    POST /renders      -> {renderId}
    GET  /renders/{id} -> {done, overallProgress, outputFile, errors, fatalErrorEncountered}

The farm splits a render across workers; framesPerLambda controls the
chunk size and is computed by the workflow from the target duration.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from src.config import Settings
from src.executor.errors import ProviderError
from src.providers.base import HttpProvider, PollResult, ProviderStatus

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mkv", ".mov")


class RenderInputProps(BaseModel):
    video_url: str = Field(serialization_alias="videoUrl")
    audio_url: str = Field(serialization_alias="audioUrl")
    playback_rate: float = Field(serialization_alias="playbackRate")
    audio_padding: float = Field(serialization_alias="audioPadding")


class RenderRequest(BaseModel):
    composition_id: str = Field(serialization_alias="compositionId")
    input_props: RenderInputProps = Field(serialization_alias="inputProps")
    out_name: Optional[str] = Field(default=None, serialization_alias="outName")
    frames_per_lambda: int = Field(default=100, serialization_alias="framesPerLambda")


def ensure_video_extension(out_name: Optional[str]) -> Optional[str]:
    """Append .mp4 unless the name already ends in a video container extension."""
    if not out_name:
        return None
    if out_name.lower().endswith(VIDEO_EXTENSIONS):
        return out_name
    return f"{out_name}.mp4"


class RenderFarmClient(HttpProvider):
    name = "render"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        super().__init__(base_url, headers=headers, timeout=timeout, transport=transport, **kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RenderFarmClient":
        return cls(
            api_key=settings.render_api_key,
            base_url=settings.render_base_url,
            timeout=settings.http_timeout,
        )

    def submit(self, request: RenderRequest) -> str:
        label = f"render:start:{request.composition_id}"
        body: dict[str, Any] = request.model_dump(by_alias=True, exclude_none=True)
        out_name = ensure_video_extension(request.out_name)
        if out_name:
            body["outName"] = out_name
        body.update({
            "codec": "h264",
            "audioCodec": "mp3",
            "imageFormat": "jpeg",
            "jpegQuality": 85,
            "privacy": "public",
        })

        data = self._json(self._request("POST", "/renders", label=label, json=body), label)
        render_id = data.get("renderId") if isinstance(data, dict) else None
        if not render_id:
            raise ProviderError(self.name, "Render response has no renderId")

        logger.info(f"[{label}] Started render {render_id}")
        return render_id

    def poll(self, handle: str) -> PollResult:
        label = f"render:progress:{handle}"
        data = self._json(self._request("GET", f"/renders/{handle}", label=label), label)
        progress = data.get("overallProgress")

        if data.get("fatalErrorEncountered"):
            errors = [str(e) for e in data.get("errors") or []]
            message = ", ".join(errors) if errors else "Unknown render error"
            return PollResult(
                status=ProviderStatus.FAILED,
                error=f"Render failed: {message}",
                progress=progress,
            )

        if data.get("done"):
            return PollResult(
                status=ProviderStatus.DONE,
                result=data.get("outputFile"),
                progress=1.0,
            )

        return PollResult(status=ProviderStatus.RUNNING, progress=progress)
