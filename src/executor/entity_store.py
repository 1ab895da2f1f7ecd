"""Entity store: Listing, MediaGroup and Media rows.

Writes are single statements. Groups and media are upserted on their
natural keys ((listing_id, group_name) and (listing_id, media_url)) so a
step that is replayed after a restart updates rows instead of
duplicating them.
"""

import logging
import uuid
from typing import Any, Optional

from src.executor.db import Database, json_dumps, json_loads, normalize_timestamps, utc_now
from src.executor.errors import EntityNotFoundError
from src.executor.schemas import Listing, Media, MediaGroup, MediaType, PropertyStats

logger = logging.getLogger(__name__)

# Columns workflows may set through update_listing / update_group
LISTING_COLUMNS = {
    "status", "location", "image_count", "property_stats", "property_context",
    "has_scripts", "has_video_reels", "is_published",
}
GROUP_COLUMNS = {"script", "audio_url", "auto_reel_url", "reel_url", "is_establishing_shot"}
BOOL_COLUMNS = {"has_scripts", "has_video_reels", "is_published", "is_establishing_shot"}


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _to_db(column: str, value: Any) -> Any:
    if column == "property_stats" and value is not None:
        if isinstance(value, PropertyStats):
            value = value.model_dump(exclude_none=True)
        return json_dumps(value)
    if column in BOOL_COLUMNS and value is not None:
        return bool(value)
    if hasattr(value, "value"):
        return value.value  # Enum
    return value


def _row_to_listing(row: dict, groups: Optional[list[MediaGroup]] = None) -> Listing:
    row = normalize_timestamps(row)
    row["property_stats"] = json_loads(row.get("property_stats"))
    row["groups"] = groups or []
    return Listing.model_validate(row)


def _row_to_group(row: dict, media: Optional[list[Media]] = None) -> MediaGroup:
    row = normalize_timestamps(row)
    row["media"] = media or []
    return MediaGroup.model_validate(row)


def _row_to_media(row: dict) -> Media:
    return Media.model_validate(normalize_timestamps(row))


class EntityStore:
    """CRUD for the domain entities built up by the workflows."""

    def __init__(self, db: Database):
        self.db = db

    # --- Listings ---

    def create_listing(self) -> Listing:
        listing_id = _new_id("lst")
        now = utc_now()
        self.db.execute(
            """INSERT INTO listings (id, status, created_at, updated_at)
               VALUES (%s, %s, %s, %s)""",
            (listing_id, "draft", now, now),
        )
        logger.info(f"Created listing {listing_id}")
        return self.require_listing(listing_id)

    def get_listing(self, listing_id: str, with_groups: bool = True) -> Optional[Listing]:
        row = self.db.execute(
            "SELECT * FROM listings WHERE id = %s",
            (listing_id,),
            fetch="one",
        )
        if row is None:
            return None
        groups = self.list_groups(listing_id) if with_groups else []
        return _row_to_listing(row, groups)

    def require_listing(self, listing_id: str, with_groups: bool = True) -> Listing:
        listing = self.get_listing(listing_id, with_groups=with_groups)
        if listing is None:
            raise EntityNotFoundError("listing", listing_id)
        return listing

    def update_listing(self, listing_id: str, **fields) -> Listing:
        self._update("listings", LISTING_COLUMNS, listing_id, fields)
        return self.require_listing(listing_id)

    # --- Media groups ---

    def upsert_group(
        self,
        listing_id: str,
        group_name: str,
        is_establishing_shot: bool = False,
    ) -> MediaGroup:
        """Create the group, or refresh it if the listing already has one by that name."""
        now = utc_now()
        self.db.execute(
            """INSERT INTO media_groups
               (id, listing_id, group_name, is_establishing_shot, created_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s)
               ON CONFLICT (listing_id, group_name) DO UPDATE
               SET is_establishing_shot = excluded.is_establishing_shot,
                   updated_at = excluded.updated_at""",
            (_new_id("grp"), listing_id, group_name, bool(is_establishing_shot), now, now),
        )
        row = self.db.execute(
            "SELECT * FROM media_groups WHERE listing_id = %s AND group_name = %s",
            (listing_id, group_name),
            fetch="one",
        )
        return _row_to_group(row)

    def get_group(self, group_id: str, with_media: bool = True) -> Optional[MediaGroup]:
        row = self.db.execute(
            "SELECT * FROM media_groups WHERE id = %s",
            (group_id,),
            fetch="one",
        )
        if row is None:
            return None
        media = self.list_media(group_id) if with_media else []
        return _row_to_group(row, media)

    def require_group(self, group_id: str, with_media: bool = True) -> MediaGroup:
        group = self.get_group(group_id, with_media=with_media)
        if group is None:
            raise EntityNotFoundError("group", group_id)
        return group

    def list_groups(self, listing_id: str) -> list[MediaGroup]:
        """Groups of a listing with their media, establishing shot first."""
        rows = self.db.execute(
            """SELECT * FROM media_groups WHERE listing_id = %s
               ORDER BY is_establishing_shot DESC, created_at, group_name""",
            (listing_id,),
            fetch="all",
        )
        return [_row_to_group(r, self.list_media(r["id"])) for r in rows]

    def update_group(self, group_id: str, **fields) -> MediaGroup:
        self._update("media_groups", GROUP_COLUMNS, group_id, fields)
        return self.require_group(group_id)

    # --- Media ---

    def upsert_media(
        self,
        listing_id: str,
        media_url: str,
        group_id: Optional[str] = None,
        media_type: MediaType = MediaType.IMAGE,
        description: Optional[str] = None,
        is_establishing_shot: bool = False,
    ) -> Media:
        now = utc_now()
        self.db.execute(
            """INSERT INTO media
               (id, listing_id, group_id, media_type, media_url, description,
                is_establishing_shot, created_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
               ON CONFLICT (listing_id, media_url) DO UPDATE
               SET group_id = excluded.group_id,
                   media_type = excluded.media_type,
                   description = excluded.description,
                   is_establishing_shot = excluded.is_establishing_shot,
                   updated_at = excluded.updated_at""",
            (_new_id("med"), listing_id, group_id, MediaType(media_type).value,
             media_url, description, bool(is_establishing_shot), now, now),
        )
        row = self.db.execute(
            "SELECT * FROM media WHERE listing_id = %s AND media_url = %s",
            (listing_id, media_url),
            fetch="one",
        )
        return _row_to_media(row)

    def list_media(self, group_id: str) -> list[Media]:
        rows = self.db.execute(
            "SELECT * FROM media WHERE group_id = %s ORDER BY created_at, media_url",
            (group_id,),
            fetch="all",
        )
        return [_row_to_media(r) for r in rows]

    # --- Internal ---

    def _update(self, table: str, allowed: set[str], entity_id: str, fields: dict) -> None:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")
        if not fields:
            return

        columns = sorted(fields)
        assignments = ", ".join(f"{c} = %s" for c in columns)
        params = tuple(_to_db(c, fields[c]) for c in columns) + (utc_now(), entity_id)
        self.db.execute(
            f"UPDATE {table} SET {assignments}, updated_at = %s WHERE id = %s",
            params,
        )
