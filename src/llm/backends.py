"""Vision-capable model backends.

Both backends take a system prompt, a user message and optional listing
photo URLs, and return an LLMCallResult. Anthropic fetches photo URLs
itself; Gemini needs the bytes inline, so photos are downloaded first.

Retries, prompt assembly and output parsing live in src.llm.client.
"""

import logging
import mimetypes
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


@dataclass
class LLMCallResult:
    """One completed model call."""

    content: str
    model_id: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


@runtime_checkable
class ModelBackend(Protocol):
    @property
    def model_id(self) -> str: ...

    @property
    def max_output_tokens(self) -> int: ...

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        image_urls: Optional[list[str]] = None,
        label: str = "",
    ) -> LLMCallResult: ...


class _BaseBackend:
    provider = ""
    output_token_limit = 8192

    def __init__(self, model_id: str, api_key: Optional[str] = None, timeout: float = 300.0):
        self._model_id = model_id
        self._api_key = api_key
        self._timeout = timeout
        self._client = None
        self._client_lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def max_output_tokens(self) -> int:
        return self.output_token_limit

    def _get_client(self):
        with self._client_lock:
            if self._client is None:
                self._client = self._build_client()
            return self._client

    def _build_client(self):
        raise NotImplementedError

    def _finish(self, label: str, text: str, input_tokens: int, output_tokens: int, started: float) -> LLMCallResult:
        duration_ms = int((time.time() - started) * 1000)
        if not text.strip():
            raise RuntimeError(f"[{label}] Empty response from {self._model_id}")
        logger.info(
            f"[{label}] {self.provider} call done: {input_tokens}+{output_tokens} tokens, {duration_ms}ms"
        )
        return LLMCallResult(
            content=text.strip(),
            model_id=self._model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )


class AnthropicBackend(_BaseBackend):
    """Claude models. Photos go in as URL image blocks."""

    provider = "anthropic"
    output_token_limit = 64_000

    def _build_client(self):
        from anthropic import Anthropic

        # The client's own retries are off; ListingLLM retries per call
        return Anthropic(
            api_key=self._api_key,
            timeout=httpx.Timeout(self._timeout, connect=30.0),
            max_retries=0,
        )

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        image_urls: Optional[list[str]] = None,
        label: str = "",
    ) -> LLMCallResult:
        photos = image_urls or []
        content: list[dict[str, Any]] = [
            {"type": "image", "source": {"type": "url", "url": url}} for url in photos
        ]
        content.append({"type": "text", "text": user_message})
        logger.debug(f"[{label}] Claude {self._model_id}: {len(photos)} photos, {len(user_message):,} chars")

        started = time.time()
        response = self._get_client().messages.create(
            model=self._model_id,
            max_tokens=min(max_tokens, self.max_output_tokens),
            system=system_prompt,
            messages=[{"role": "user", "content": content}],
        )
        text = "".join(getattr(block, "text", "") for block in response.content)
        return self._finish(
            label, text, response.usage.input_tokens, response.usage.output_tokens, started
        )


class GeminiBackend(_BaseBackend):
    """Gemini models. Photos are downloaded and sent as inline parts."""

    provider = "gemini"
    output_token_limit = 65_536

    def _build_client(self):
        from google import genai

        if not self._api_key:
            raise RuntimeError("GEMINI_API_KEY is not configured")
        return genai.Client(api_key=self._api_key)

    def _photo_parts(self, image_urls: list[str]) -> list[Any]:
        from google.genai import types

        parts = []
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as http:
            for url in image_urls:
                response = http.get(url)
                response.raise_for_status()
                mime_type = (
                    response.headers.get("content-type", "").split(";")[0].strip()
                    or mimetypes.guess_type(url)[0]
                    or "image/jpeg"
                )
                parts.append(types.Part.from_bytes(data=response.content, mime_type=mime_type))
        return parts

    @staticmethod
    def _response_text(response) -> str:
        if not response.candidates or not response.candidates[0].content:
            return ""
        # Skip thinking parts
        return "".join(
            getattr(part, "text", "") or ""
            for part in response.candidates[0].content.parts
            if not getattr(part, "thought", False)
        )

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        image_urls: Optional[list[str]] = None,
        label: str = "",
    ) -> LLMCallResult:
        from google.genai import types

        client = self._get_client()
        contents: list[Any] = self._photo_parts(image_urls or [])
        contents.append(user_message)
        logger.debug(f"[{label}] Gemini {self._model_id}: {len(contents) - 1} photos, {len(user_message):,} chars")

        started = time.time()
        response = client.models.generate_content(
            model=self._model_id,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                max_output_tokens=min(max_tokens, self.max_output_tokens),
            ),
        )
        usage = getattr(response, "usage_metadata", None)
        return self._finish(
            label,
            self._response_text(response),
            getattr(usage, "prompt_token_count", 0) or 0,
            getattr(usage, "candidates_token_count", 0) or 0,
            started,
        )
