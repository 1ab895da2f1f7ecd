"""Poll loop for long-running provider tasks.

A poll step submits nothing; it repeatedly asks the provider for the
status of a handle it already has, sleeping between polls. While it
sleeps the job's work slot is free for other jobs, and the sleep waits
on the cancellation event so a failed fork sibling stops the loop at
its next boundary.
"""

import logging
import threading
import time
from contextlib import nullcontext
from typing import Any, Callable, Optional

from src.executor.errors import ProviderFailedError, StepCancelledError, StepTimeoutError
from src.executor.slots import WorkSlots
from src.providers.base import PollableService, ProviderStatus

logger = logging.getLogger(__name__)


def poll_until_done(
    service: PollableService,
    handle: str,
    *,
    interval: float,
    timeout: float,
    label: str = "",
    cancel_event: Optional[threading.Event] = None,
    slots: Optional[WorkSlots] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """Poll a provider task until it reaches a terminal status.

    Returns the provider's result on done. Raises ProviderFailedError on
    failed (provider message attached), StepTimeoutError once `timeout`
    seconds have passed, StepCancelledError if cancel_event is set.

    With `slots`, the caller's work slot is released while sleeping.
    """
    label = label or f"{service.name}:{handle}"
    cancel_event = cancel_event or threading.Event()
    deadline = clock() + timeout
    polls = 0

    while True:
        if cancel_event.is_set():
            raise StepCancelledError(label)

        result = service.poll(handle)
        polls += 1

        if result.status == ProviderStatus.DONE:
            logger.info(f"[{label}] Done after {polls} polls")
            return result.result

        if result.status == ProviderStatus.FAILED:
            message = result.error or f"{service.name} reported failure"
            logger.error(f"[{label}] Failed after {polls} polls: {message}")
            raise ProviderFailedError(service.name, message)

        if clock() + interval > deadline:
            logger.error(f"[{label}] Timed out after {polls} polls ({timeout:.0f}s)")
            raise StepTimeoutError(label, timeout)

        progress = f", progress {result.progress:.0%}" if result.progress is not None else ""
        logger.info(f"[{label}] Poll {polls}: {result.status.value}{progress}")

        with slots.idle() if slots is not None else nullcontext():
            # wait() returns True when cancelled during the sleep
            cancelled = cancel_event.wait(interval)
        if cancelled:
            raise StepCancelledError(label)
