"""Auto-reel adapter: turns a set of still images into one short video.

    POST /create_video     -> {uuid, status}
    GET  /get_video/{uuid} -> queued | in_progress | complete | error, video_url
"""

import logging
from typing import Optional

import httpx

from src.config import Settings
from src.executor.errors import ProviderError
from src.providers.base import HttpProvider, PollResult, ProviderStatus, normalize_status

logger = logging.getLogger(__name__)

AI_ENGINE = "v25"
DEFAULT_CAMERA_MOTION = "auto"
DEFAULT_ORIENTATION = "portrait"
DEFAULT_RESOLUTION = "1080p"

STATUS_MAP = {
    "queued": ProviderStatus.QUEUED,
    "in_progress": ProviderStatus.RUNNING,
    "complete": ProviderStatus.DONE,
    "error": ProviderStatus.FAILED,
}


class AutoReelClient(HttpProvider):
    name = "auto-reel"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.autoreelapp.com/api/v1",
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs,
    ):
        if not api_key:
            logger.warning("AUTO_REEL_API_KEY not set; auto-reel generation will fail")
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {api_key or ''}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
            **kwargs,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AutoReelClient":
        return cls(
            api_key=settings.auto_reel_api_key,
            base_url=settings.auto_reel_base_url,
            timeout=settings.http_timeout,
        )

    def submit(self, request: list[str]) -> str:
        """Start a video from image URLs. Returns the video uuid."""
        if not request:
            raise ProviderError(self.name, "At least one image is required")

        label = "auto-reel:create"
        response = self._request(
            "POST",
            "/create_video",
            label=label,
            json={
                "image_inputs": [
                    {"image_url": url, "camera_motion": DEFAULT_CAMERA_MOTION}
                    for url in request
                ],
                "orientation": DEFAULT_ORIENTATION,
                "resolution": DEFAULT_RESOLUTION,
                "ai_engine": AI_ENGINE,
            },
        )
        data = self._json(response, label)
        video_uuid = data.get("uuid") if isinstance(data, dict) else None
        if not video_uuid:
            raise ProviderError(self.name, "Create response has no uuid")

        logger.info(f"[{label}] Started video {video_uuid} from {len(request)} images")
        return video_uuid

    def poll(self, handle: str) -> PollResult:
        label = f"auto-reel:status:{handle}"
        data = self._json(self._request("GET", f"/get_video/{handle}", label=label), label)
        status = normalize_status(self.name, data.get("status"), STATUS_MAP, label)

        if status == ProviderStatus.FAILED:
            detail = data.get("error") or data.get("message")
            error = "Auto-reel generation failed"
            if detail:
                error = f"{error}: {detail}"
            return PollResult(status=status, error=error)

        if status == ProviderStatus.DONE:
            video_url = data.get("video_url")
            if not video_url:
                return PollResult(
                    status=ProviderStatus.FAILED,
                    error="Auto-reel completed without a video_url",
                )
            return PollResult(status=status, result=video_url)

        return PollResult(status=status)
