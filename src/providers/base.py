"""Shared contract and HTTP plumbing for external service adapters.

Every long-running provider (scraper, auto-reel, render farm) exposes the
same two calls:

    submit(request) -> handle
    poll(handle) -> PollResult(status, result, error)

and translates its own status vocabulary into ProviderStatus. The poll
loop in src.executor.polling only ever sees ProviderStatus.

Transient failures (network errors, timeouts, HTTP 5xx, 429) are retried
here, inside the adapter call, at most MAX_ATTEMPTS times. Anything else
raises immediately.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import httpx

from src.executor.errors import ProviderError, StepCancelledError, TransientProviderError

logger = logging.getLogger(__name__)

# Retry settings
MAX_ATTEMPTS = 3
RETRY_DELAYS = [2, 5]  # seconds, before attempt 2 and 3


class ProviderStatus(str, Enum):
    """Normalized status of a submitted provider task."""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PollResult:
    """One observation of a provider task."""

    status: ProviderStatus
    result: Any = None
    error: Optional[str] = None
    progress: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProviderStatus.DONE, ProviderStatus.FAILED)


@runtime_checkable
class PollableService(Protocol):
    """A provider whose work is submitted once and then polled."""

    name: str

    def submit(self, request: Any) -> str:
        ...

    def poll(self, handle: str) -> PollResult:
        ...


def normalize_status(
    provider: str,
    raw_status: Any,
    mapping: dict[str, ProviderStatus],
    label: str,
) -> ProviderStatus:
    """Map a provider's status word onto ProviderStatus.

    Unknown words keep the task polling (it still ends at the step
    timeout) but are logged so a new terminal state is noticed.
    """
    key = str(raw_status or "").strip().lower()
    status = mapping.get(key)
    if status is None:
        logger.warning(
            f"[{label}] Unrecognised {provider} status {raw_status!r}; treating as running"
        )
        return ProviderStatus.RUNNING
    return status


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    label: str,
    provider: str,
    cancel_event: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> httpx.Response:
    """Send one HTTP request, retrying transient failures.

    Returns the successful response. Raises TransientProviderError once
    all attempts are used up and ProviderError for any other non-2xx.
    """
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
            sleep(delay)

        try:
            response = client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            # Covers connect/read timeouts and dropped connections
            last_error = f"{type(e).__name__}: {e}"
            logger.error(f"[{label}] Attempt {attempt + 1} failed: {last_error}")
            continue

        if is_transient_status(response.status_code):
            last_error = f"HTTP {response.status_code}"
            logger.error(
                f"[{label}] Attempt {attempt + 1} failed: {last_error} "
                f"{response.text[:500]}"
            )
            continue

        if response.is_error:
            logger.error(
                f"[{label}] HTTP {response.status_code} (not retrying): {response.text[:500]}"
            )
            raise ProviderError(provider, f"{label} returned HTTP {response.status_code}")

        return response

    raise TransientProviderError(
        provider,
        f"{label} failed after {MAX_ATTEMPTS} attempts. Last error: {last_error}",
    )


class HttpProvider:
    """Base for adapters that talk to one HTTP API through an httpx.Client."""

    name = "provider"

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self._sleep = sleep
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        label: str,
        cancel_event: Optional[threading.Event] = None,
        **kwargs,
    ) -> httpx.Response:
        return request_with_retry(
            self.client,
            method,
            path,
            label=label,
            provider=self.name,
            cancel_event=cancel_event,
            sleep=self._sleep,
            **kwargs,
        )

    def _json(self, response: httpx.Response, label: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"{label} returned invalid JSON: {e}") from e

    def close(self) -> None:
        self.client.close()
