"""Object storage adapter (Supabase storage REST API).

Object keys are deterministic per entity, and uploads are sent with
x-upsert, so uploading the same asset twice overwrites it.
"""

import hashlib
import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from src.config import Settings
from src.executor.errors import ProviderError
from src.providers.base import HttpProvider, request_with_retry

logger = logging.getLogger(__name__)


@dataclass
class RemoteFile:
    """A downloaded asset, held in memory between fetch and upload steps."""

    content: bytes
    content_type: str
    filename: str


def url_filename(url: str, default_ext: str = ".jpg") -> str:
    """Stable file name for a remote asset: md5 of the URL plus its extension."""
    name = urlparse(url).path.rsplit("/", 1)[-1]
    ext = os.path.splitext(name)[1].lower() or default_ext
    return f"{hashlib.md5(url.encode('utf-8')).hexdigest()}{ext}"


class StoragePaths:
    """Object key layout: {owner}/listing_{id}/uploads/{kind}/{file}."""

    def __init__(self, owner: str):
        self.owner = owner

    def _base(self, listing_id: str) -> str:
        return f"{self.owner}/listing_{listing_id}/uploads"

    def image(self, listing_id: str, source_url: str) -> str:
        return f"{self._base(listing_id)}/images/{url_filename(source_url)}"

    def auto_reel(self, listing_id: str, group_id: str) -> str:
        return f"{self._base(listing_id)}/auto-reels/{group_id}.mp4"

    def final_reel(self, listing_id: str, group_id: str) -> str:
        return f"{self._base(listing_id)}/final-reels/{group_id}.mp4"

    def voice_over(self, listing_id: str, group_id: str) -> str:
        return f"{self._base(listing_id)}/voice-overs/{group_id}.mp3"


class SupabaseStorage(HttpProvider):
    name = "storage"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        bucket: str,
        owner: str = "usr_default",
        timeout: float = 300.0,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs,
    ):
        if not api_key:
            logger.warning("SUPABASE_SERVICE_KEY not set; uploads will fail")
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {api_key or ''}",
                "apikey": api_key or "",
            },
            timeout=timeout,
            transport=transport,
            **kwargs,
        )
        self.bucket = bucket
        self.paths = StoragePaths(owner)
        # Plain client for third-party downloads (no storage credentials)
        self._download_client = httpx.Client(
            timeout=httpx.Timeout(timeout, connect=10.0),
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStorage":
        return cls(
            base_url=settings.supabase_url,
            api_key=settings.supabase_key,
            bucket=settings.storage_bucket,
            owner=settings.storage_owner,
            timeout=settings.download_timeout,
        )

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Upload (or overwrite) an object. Returns its public URL."""
        label = f"storage:upload:{path}"
        self._request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            label=label,
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        logger.info(f"[{label}] Uploaded {len(content):,} bytes")
        return self.public_url(path)

    def fetch(self, url: str, default_content_type: str = "application/octet-stream") -> RemoteFile:
        """Download a remote asset (listing photo, provider output) into memory."""
        label = f"storage:fetch:{urlparse(url).netloc}"
        response = request_with_retry(
            self._download_client,
            "GET",
            url,
            label=label,
            provider=self.name,
            sleep=self._sleep,
        )
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type:
            content_type = mimetypes.guess_type(url)[0] or default_content_type
        if not response.content:
            raise ProviderError(self.name, f"Empty response body for {url}")

        return RemoteFile(
            content=response.content,
            content_type=content_type,
            filename=url_filename(url),
        )

    def close(self) -> None:
        super().close()
        self._download_client.close()
