"""Media duration probe (ffprobe via ffmpeg-python).

ffprobe reads remote URLs directly, so nothing is downloaded.
"""

import logging

import ffmpeg

from src.executor.errors import ProviderError

logger = logging.getLogger(__name__)


class MediaProbe:
    name = "media-probe"

    def duration(self, url: str) -> float:
        """Duration of a remote audio or video file, in seconds."""
        try:
            info = ffmpeg.probe(url)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else str(e)
            logger.error(f"[media-probe] ffprobe failed for {url}: {stderr[:500]}")
            raise ProviderError(self.name, f"Could not read media duration for {url}") from e

        duration = info.get("format", {}).get("duration")
        if duration is None:
            # Fall back to the longest stream
            streams = [float(s["duration"]) for s in info.get("streams", []) if s.get("duration")]
            duration = max(streams) if streams else None
        if duration is None:
            raise ProviderError(self.name, f"No duration reported for {url}")

        return float(duration)
