"""Vision / language client for listing analysis.

Wraps the model backends with:
- Retry (at most MAX_ATTEMPTS calls, transient errors only)
- Prompt assembly for image description, grouping, property context
  and per-group scripts
- Output parsing (establishing-shot flag, JSON groups, script cleanup)
"""

import json
import logging
import re
import threading
import time
from typing import Any, Callable, Optional

from src.config import Settings
from src.executor.errors import ProviderError, StepCancelledError, TransientProviderError
from src.executor.schemas import Listing, MediaGroup
from src.llm import prompts
from src.llm.backends import ModelBackend
from src.llm.factory import get_backend
from src.llm.schemas import DescribedImage, GeneratedScript, ImageGroup, VoiceSchema

logger = logging.getLogger(__name__)

# Retry settings
MAX_ATTEMPTS = 3
RETRY_DELAYS = [5, 15]  # seconds

# ~150 spoken words per minute; 120-175 words fills a 20-30s video
TARGET_SCRIPT_WORDS = 175
MIN_WORDS_PER_GROUP = 15
MAX_WORDS_PER_GROUP = 40

ESTABLISHING_SHOT_PREFIX = "establishing shot:"


def parse_llm_json_response(raw_text: str) -> Any:
    """Parse JSON from LLM response, handling markdown code fences.

    LLMs sometimes wrap JSON in ```json ... ``` fences or add a sentence
    around it despite being told not to. Fences are stripped first; if
    that still fails, the outermost [...] or {...} span is parsed.

    Raises:
        json.JSONDecodeError: If the text cannot be parsed as JSON
    """
    content = raw_text.strip()

    # Strip leading markdown fence (```json or ```)
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    # Strip trailing fence
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    content = content.strip()
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        for open_char, close_char in (("[", "]"), ("{", "}")):
            start, end = content.find(open_char), content.rfind(close_char)
            if start != -1 and end > start:
                return json.loads(content[start:end + 1])
        raise


def parse_image_description(text: str) -> tuple[str, bool]:
    """Split a vision answer into (description, is_establishing_shot).

    The flag comes from a trailing "Establishing shot: Yes/No" line,
    which is removed from the description.
    """
    lines = text.strip().split("\n")
    is_establishing_shot = False
    last_line = lines[-1].strip().lower() if lines else ""
    if last_line.startswith(ESTABLISHING_SHOT_PREFIX):
        is_establishing_shot = last_line[len(ESTABLISHING_SHOT_PREFIX):].strip().startswith("yes")
        lines.pop()
    return "\n".join(lines).strip(), is_establishing_shot


def combine_groups_with_descriptions(
    raw_groups: list[dict],
    images: list[DescribedImage],
) -> list[ImageGroup]:
    """Attach described images to the model's groups.

    Filenames are matched exactly, then without extension. Unknown
    filenames are dropped. Groups that share a name are merged.
    """
    lookup: dict[str, DescribedImage] = {}
    for img in images:
        lookup[img.filename] = img
        lookup[img.filename.rsplit(".", 1)[0]] = img

    merged: dict[str, ImageGroup] = {}
    for raw in raw_groups:
        name = str(raw.get("groupName") or raw.get("group_name") or "").strip()
        if not name:
            continue
        group = merged.setdefault(name, ImageGroup(group_name=name))
        seen = {img.url for img in group.described_images}
        for filename in raw.get("images") or []:
            found = lookup.get(filename) or lookup.get(str(filename).rsplit(".", 1)[0])
            if found is None:
                logger.warning(f"[llm:group-images] No description for filename {filename}")
                continue
            if found.url not in seen:
                group.described_images.append(found)
                seen.add(found.url)

    return [g for g in merged.values() if g.described_images]


def count_words(text: str) -> int:
    return len(text.split())


def words_per_group(total_groups: int) -> int:
    """Share of the script word count for one group, clamped to 15-40."""
    share = TARGET_SCRIPT_WORDS // max(total_groups, 1)
    return max(MIN_WORDS_PER_GROUP, min(share, MAX_WORDS_PER_GROUP))


def clean_script_text(text: str) -> str:
    """Flatten a script to one plain-text line for text-to-speech."""
    cleaned = text.strip()
    cleaned = re.sub(r"\*\*(.*?)\*\*", r"\1", cleaned)
    cleaned = re.sub(r"\*(.*?)\*", r"\1", cleaned)
    cleaned = re.sub(r"\[[^\]]*\]", "", cleaned)  # annotations like [18 words]
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()


class ListingLLM:
    """Vision and text generation for the listing workflows."""

    name = "llm"

    def __init__(
        self,
        settings: Settings,
        backend_factory: Optional[Callable[[str], ModelBackend]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self._backend_factory = backend_factory or (lambda model_id: get_backend(model_id, settings))
        self._backends: dict[str, ModelBackend] = {}
        self._backends_lock = threading.Lock()
        self._sleep = sleep

    def _backend(self, model_id: str) -> ModelBackend:
        with self._backends_lock:
            if model_id not in self._backends:
                self._backends[model_id] = self._backend_factory(model_id)
            return self._backends[model_id]

    def _call(
        self,
        model_id: str,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int,
        label: str,
        image_urls: Optional[list[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        backend = self._backend(model_id)
        last_error = None

        for attempt in range(MAX_ATTEMPTS):
            if cancel_event is not None and cancel_event.is_set():
                raise StepCancelledError(label)

            if attempt > 0:
                delay = RETRY_DELAYS[min(attempt - 1, len(RETRY_DELAYS) - 1)]
                logger.warning(
                    f"[{label}] Retry {attempt}/{MAX_ATTEMPTS - 1} after {delay}s "
                    f"(previous error: {last_error})"
                )
                self._sleep(delay)

            try:
                result = backend.execute_sync(
                    system_prompt,
                    user_message,
                    max_tokens=max_tokens,
                    image_urls=image_urls,
                    label=label,
                )
                return result.content

            except Exception as e:
                last_error = str(e)
                logger.error(f"[{label}] Attempt {attempt + 1} failed: {last_error}")

                # Don't retry on client errors other than rate limits
                status = getattr(e, "status_code", None)
                if isinstance(status, int) and 400 <= status < 500 and status != 429:
                    raise ProviderError(self.name, f"{label} rejected (HTTP {status})") from e
                error_str = last_error.lower()
                if "invalid_api_key" in error_str or "authentication" in error_str:
                    raise ProviderError(self.name, f"{label} authentication error") from e
                if "not set" in error_str:
                    raise ProviderError(self.name, last_error) from e

        raise TransientProviderError(
            self.name,
            f"{label} failed after {MAX_ATTEMPTS} attempts. Last error: {last_error}",
        )

    def describe_image(
        self,
        url: str,
        filename: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> DescribedImage:
        text = self._call(
            self.settings.vision_model,
            prompts.DESCRIBE_IMAGE_SYSTEM,
            prompts.DESCRIBE_IMAGE_USER,
            max_tokens=400,
            label=f"llm:describe:{filename}",
            image_urls=[url],
            cancel_event=cancel_event,
        )
        description, is_establishing_shot = parse_image_description(text)
        return DescribedImage(
            url=url,
            filename=filename,
            description=description,
            is_establishing_shot=is_establishing_shot,
        )

    def group_images(
        self,
        images: list[DescribedImage],
        cancel_event: Optional[threading.Event] = None,
    ) -> list[ImageGroup]:
        payload = [
            {
                "filename": img.filename,
                "description": img.description,
                "isEstablishingShot": img.is_establishing_shot,
            }
            for img in images
        ]
        label = "llm:group-images"
        text = self._call(
            self.settings.grouping_model,
            prompts.GROUP_IMAGES_SYSTEM,
            json.dumps(payload, indent=2),
            max_tokens=4000,
            label=label,
            cancel_event=cancel_event,
        )
        try:
            raw_groups = parse_llm_json_response(text)
        except json.JSONDecodeError as e:
            raise ProviderError(self.name, "Failed to group images: invalid JSON from model") from e
        if not isinstance(raw_groups, list):
            raise ProviderError(self.name, "Failed to group images: expected a JSON array")

        groups = combine_groups_with_descriptions(raw_groups, images)
        logger.info(f"[{label}] {len(images)} images → {len(groups)} groups")
        return groups

    def generate_property_context(self, listing: Listing, groups: list[MediaGroup]) -> str:
        property_info = prompts.build_property_info(listing.location, listing.property_stats)
        user_message = "\n".join(
            f"\n{i + 1}. {group.group_name}:\n"
            + "\n".join(f"   - {img.description}" for img in group.described_images)
            for i, group in enumerate(groups)
        )
        return self._call(
            self.settings.context_model,
            prompts.PROPERTY_CONTEXT_SYSTEM.format(property_info=property_info),
            user_message,
            max_tokens=1000,
            label=f"llm:context:{listing.id}",
        ).strip()

    def generate_scripts(
        self,
        groups: list[MediaGroup],
        property_context: str,
        voice: Optional[VoiceSchema] = None,
    ) -> list[GeneratedScript]:
        """Write one script per group, in order, each aware of the ones before it."""
        voice = voice or VoiceSchema()
        target_words = words_per_group(len(groups))
        scripts: list[GeneratedScript] = []

        for group in groups:
            kwargs = dict(
                group_name=group.group_name,
                descriptions=[img.description or "" for img in group.described_images],
                property_context=property_context,
                prior_scripts=[s.script for s in scripts],
                target_words=target_words,
                is_establishing_shot=group.is_establishing_shot,
                voice=voice,
            )
            label = f"llm:script:{group.id}"
            script = clean_script_text(self._call(
                self.settings.script_model,
                prompts.SCRIPT_SYSTEM,
                prompts.build_script_prompt(**kwargs),
                max_tokens=1000,
                label=label,
            ))

            if count_words(script) > target_words + 10:
                logger.info(
                    f"[{label}] {count_words(script)} words (target {target_words}), "
                    f"regenerating with stricter limit"
                )
                script = clean_script_text(self._call(
                    self.settings.script_model,
                    prompts.SCRIPT_SYSTEM,
                    prompts.build_script_prompt(strict=True, **kwargs),
                    max_tokens=1000,
                    label=f"{label}:strict",
                ))

            scripts.append(GeneratedScript(group_id=group.id, script=script))

        total_words = sum(count_words(s.script) for s in scripts)
        logger.info(
            f"[llm:scripts] Generated {len(scripts)} scripts, {total_words} words "
            f"(~{round(total_words / 150 * 60)}s spoken)"
        )
        return scripts
