"""Active-work slots.

Every job runs on its own scheduler thread, but only `size` of them may
be doing work (running steps, calling providers, writing rows) at once.
A job hands its slot back while a poll loop sleeps and takes one again
before the next poll, so jobs waiting on a render or a scrape never keep
runnable jobs from starting.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class WorkSlots:
    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"WorkSlots size must be at least 1, got {size}")
        self.size = size
        self._semaphore = threading.BoundedSemaphore(size)
        self._local = threading.local()

    @property
    def held(self) -> bool:
        """True if the calling thread currently holds a slot."""
        return getattr(self._local, "held", False)

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold a slot for the duration of the block (blocks until one frees)."""
        self._semaphore.acquire()
        self._local.held = True
        try:
            yield
        finally:
            self._local.held = False
            self._semaphore.release()

    @contextmanager
    def idle(self) -> Iterator[None]:
        """Give the caller's slot back for the duration of the block.

        No-op on threads that hold no slot (fork siblings share their
        parent job's slot).
        """
        if not self.held:
            yield
            return

        self._local.held = False
        self._semaphore.release()
        try:
            yield
        finally:
            self._semaphore.acquire()
            self._local.held = True
