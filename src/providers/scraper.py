"""Listing scraper backed by the Bright Data datasets API.

    POST /trigger?dataset_id=...&include_errors=true  -> snapshot_id
    GET  /progress/{snapshot_id}                      -> running | ready | failed
    GET  /snapshot/{snapshot_id}                      -> property JSON

Snapshots are immutable once ready, so fetched snapshots are cached in
process by snapshot id. The cache is small and short-lived: entries
expire after SNAPSHOT_CACHE_TTL and the oldest is evicted past
SNAPSHOT_CACHE_SIZE.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

import httpx

from src.config import Settings
from src.executor.errors import ProviderError
from src.providers.base import HttpProvider, PollResult, ProviderStatus, normalize_status

logger = logging.getLogger(__name__)

# Bright Data progress vocabulary -> normalized status
STATUS_MAP = {
    "starting": ProviderStatus.QUEUED,
    "running": ProviderStatus.RUNNING,
    "building": ProviderStatus.RUNNING,
    "ready": ProviderStatus.DONE,
    "failed": ProviderStatus.FAILED,
}

SNAPSHOT_CACHE_TTL = 3600  # seconds
SNAPSHOT_CACHE_SIZE = 32


class _CachedSnapshot:
    __slots__ = ("data", "created_at")

    def __init__(self, data: Any, created_at: float):
        self.data = data
        self.created_at = created_at


class BrightDataScraper(HttpProvider):
    """Submit a listing URL, poll the snapshot, fetch structured data."""

    name = "scraper"

    def __init__(
        self,
        api_key: Optional[str],
        dataset_id: str,
        base_url: str = "https://api.brightdata.com/datasets/v3",
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        cache_ttl: float = SNAPSHOT_CACHE_TTL,
        cache_size: int = SNAPSHOT_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        if not api_key:
            logger.warning("BRIGHT_DATA_API_KEY not set; listing scrapes will fail")
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {api_key or ''}"},
            timeout=timeout,
            transport=transport,
            **kwargs,
        )
        self.dataset_id = dataset_id
        self.cache_ttl = cache_ttl
        self.cache_size = cache_size
        self._clock = clock
        # Insertion order doubles as age order for eviction
        self._snapshots: dict[str, _CachedSnapshot] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrightDataScraper":
        return cls(
            api_key=settings.bright_data_api_key,
            dataset_id=settings.bright_data_dataset_id,
            base_url=settings.bright_data_base_url,
            timeout=settings.http_timeout,
        )

    def submit(self, request: str) -> str:
        """Trigger a scrape of one listing URL. Returns the snapshot id."""
        label = "scraper:trigger"
        response = self._request(
            "POST",
            "/trigger",
            label=label,
            params={"dataset_id": self.dataset_id, "include_errors": "true"},
            json=[{"url": request}],
        )
        data = self._json(response, label)
        snapshot_id = data.get("snapshot_id") if isinstance(data, dict) else None
        if not snapshot_id:
            raise ProviderError(self.name, "Trigger response has no snapshot_id")

        logger.info(f"[{label}] Triggered snapshot {snapshot_id} for {request}")
        return snapshot_id

    def poll(self, handle: str) -> PollResult:
        label = f"scraper:progress:{handle}"
        data = self._json(self._request("GET", f"/progress/{handle}", label=label), label)
        status = normalize_status(self.name, data.get("status"), STATUS_MAP, label)

        if status == ProviderStatus.FAILED:
            detail = data.get("error") or data.get("message")
            error = "Failed to scrape listing details"
            if detail:
                error = f"{error}: {detail}"
            return PollResult(status=status, error=error)

        return PollResult(status=status, result=handle if status == ProviderStatus.DONE else None)

    def fetch_snapshot(self, snapshot_id: str) -> dict:
        """Return the scraped listing for a ready snapshot."""
        cached = self._get_cached(snapshot_id)
        if cached is not None:
            logger.info(f"[scraper:snapshot:{snapshot_id}] Cache hit")
            return cached

        label = f"scraper:snapshot:{snapshot_id}"
        data = self._json(
            self._request("GET", f"/snapshot/{snapshot_id}", label=label, params={"format": "json"}),
            label,
        )
        # The dataset endpoint returns one record per submitted URL
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise ProviderError(self.name, "Snapshot not found")
        if data.get("error"):
            raise ProviderError(self.name, f"Snapshot error: {data['error']}")

        self._set_cached(snapshot_id, data)
        return data

    def _get_cached(self, snapshot_id: str) -> Optional[Any]:
        with self._cache_lock:
            entry = self._snapshots.get(snapshot_id)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.cache_ttl:
                del self._snapshots[snapshot_id]
                return None
            return entry.data

    def _set_cached(self, snapshot_id: str, data: Any) -> None:
        now = self._clock()
        with self._cache_lock:
            for key in [k for k, e in self._snapshots.items() if now - e.created_at > self.cache_ttl]:
                del self._snapshots[key]
            self._snapshots.pop(snapshot_id, None)
            while self._snapshots and len(self._snapshots) >= self.cache_size:
                oldest = next(iter(self._snapshots))
                del self._snapshots[oldest]
                logger.debug(f"[scraper] Evicted cached snapshot {oldest}")
            self._snapshots[snapshot_id] = _CachedSnapshot(data, now)
