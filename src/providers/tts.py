"""Text-to-speech adapter (ElevenLabs REST API).

Synchronous: one request returns the full mp3 body.
"""

import logging
from typing import Optional

import httpx

from src.config import Settings
from src.executor.errors import ProviderError
from src.providers.base import HttpProvider

logger = logging.getLogger(__name__)

VOICE_SETTINGS = {"stability": 0, "speed": 1.2}


class ElevenLabsClient(HttpProvider):
    name = "tts"

    def __init__(
        self,
        api_key: Optional[str],
        voice_id: str,
        model_id: str = "eleven_v3",
        output_format: str = "mp3_44100_128",
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs,
    ):
        if not api_key:
            logger.warning("ELEVENLABS_API_KEY not set; voice-over generation will fail")
        super().__init__(
            base_url,
            headers={"xi-api-key": api_key or "", "Accept": "audio/mpeg"},
            timeout=timeout,
            transport=transport,
            **kwargs,
        )
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format

    @classmethod
    def from_settings(cls, settings: Settings) -> "ElevenLabsClient":
        return cls(
            api_key=settings.elevenlabs_api_key,
            voice_id=settings.tts_voice_id,
            model_id=settings.tts_model_id,
            output_format=settings.tts_output_format,
            base_url=settings.elevenlabs_base_url,
            timeout=settings.download_timeout,
        )

    def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Render a script to mp3 audio."""
        if not text.strip():
            raise ProviderError(self.name, "Cannot synthesize an empty script")

        voice = voice_id or self.voice_id
        label = f"tts:{voice}"
        response = self._request(
            "POST",
            f"/v1/text-to-speech/{voice}",
            label=label,
            params={"output_format": self.output_format},
            json={
                "text": text,
                "model_id": self.model_id,
                "voice_settings": VOICE_SETTINGS,
            },
        )
        audio = response.content
        if not audio:
            raise ProviderError(self.name, "Failed to generate voice over")

        logger.info(f"[{label}] Generated {len(audio):,} bytes of audio for {len(text)} chars")
        return audio
