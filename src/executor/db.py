"""Database layer for the executor.

Supports two backends:
- PostgreSQL (production, set EXECUTOR_DATABASE_URL)
- SQLite (local development and tests, default)

Uses raw SQL via psycopg2 (Postgres) or sqlite3 (SQLite). No ORM.

Thread-safety: Postgres uses a ThreadedConnectionPool shared by the
job worker threads. SQLite uses per-call connections with
check_same_thread=False and WAL mode so pollers can read while a job
is writing.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an ISO string (the storage format for timestamps)."""
    return datetime.now(timezone.utc).isoformat()


def json_dumps(data: Any) -> Optional[str]:
    """Serialize data to JSON string for storage."""
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False, default=str)


def json_loads(text: Any) -> Any:
    """Deserialize JSON string from storage."""
    if text is None or text == "":
        return None
    if isinstance(text, (dict, list)):
        return text  # Already parsed (Postgres JSONB)
    return json.loads(text)


def normalize_timestamps(row: dict) -> dict:
    """Convert datetime objects to ISO strings (Postgres returns datetimes)."""
    for key in ("created_at", "updated_at"):
        val = row.get(key)
        if val is not None and isinstance(val, datetime):
            row[key] = val.isoformat()
    return row


class Database:
    """Connection handle for one database.

    Constructed once per process and passed to the ledger and entity
    store. Holds no state beyond the connection pool.
    """

    def __init__(self, database_url: str = "", sqlite_path: Optional[Path] = None):
        self.database_url = database_url
        self.sqlite_path = Path(sqlite_path) if sqlite_path else Path("executor.db")
        self._pg_pool = None
        self._pool_lock = threading.Lock()
        self._initialized = False

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgres")

    def _get_pg_pool(self):
        """Get or create the Postgres connection pool (lazy)."""
        with self._pool_lock:
            if self._pg_pool is None:
                import psycopg2.pool
                self._pg_pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=10,
                    dsn=self.database_url,
                )
                logger.info("PostgreSQL connection pool initialized (1-10 connections)")
        return self._pg_pool

    @contextmanager
    def get_connection(self):
        """Get a database connection (Postgres or SQLite).

        Usage:
            with db.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(...)
                conn.commit()
        """
        if self.is_postgres:
            pool = self._get_pg_pool()
            conn = pool.getconn()
            try:
                yield conn
            finally:
                pool.putconn(conn)
        else:
            conn = sqlite3.connect(
                str(self.sqlite_path),
                check_same_thread=False,
                timeout=30,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            try:
                yield conn
            finally:
                conn.close()

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a single SQL statement and commit.

        Args:
            sql: SQL statement (use %s placeholders; adapted for SQLite)
            params: Parameters tuple
            fetch: "none", "one", "all"

        Returns:
            None for "none", dict (or None) for "one", list[dict] for "all"
        """
        adapted_sql = sql if self.is_postgres else sql.replace("%s", "?")

        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(adapted_sql, params)
                result: Any = None
                if fetch == "one":
                    row = cursor.fetchone()
                    if row is not None:
                        result = self._row_to_dict(cursor, row)
                elif fetch == "all":
                    result = [self._row_to_dict(cursor, row) for row in cursor.fetchall()]
                conn.commit()
                return result
            except Exception:
                conn.rollback()
                raise

    def _row_to_dict(self, cursor, row) -> dict:
        if self.is_postgres:
            columns = [desc[0] for desc in cursor.description]
            return dict(zip(columns, row))
        return dict(row)

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        if self._initialized:
            return

        if self.is_postgres:
            self._init_postgres()
        else:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_sqlite()

        self._initialized = True
        backend = "PostgreSQL" if self.is_postgres else f"SQLite ({self.sqlite_path})"
        logger.info(f"Executor database initialized: {backend}")

    def close(self) -> None:
        if self._pg_pool is not None:
            self._pg_pool.closeall()
            self._pg_pool = None

    def _init_postgres(self) -> None:
        """Create Postgres tables."""
        ddl = """
        CREATE TABLE IF NOT EXISTS listings (
            id VARCHAR(100) PRIMARY KEY,
            status VARCHAR(20) NOT NULL DEFAULT 'draft',
            location TEXT,
            image_count INTEGER,
            property_stats JSONB,
            property_context TEXT,
            has_scripts BOOLEAN NOT NULL DEFAULT FALSE,
            has_video_reels BOOLEAN NOT NULL DEFAULT FALSE,
            is_published BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS media_groups (
            id VARCHAR(100) PRIMARY KEY,
            listing_id VARCHAR(100) NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            group_name TEXT NOT NULL,
            is_establishing_shot BOOLEAN NOT NULL DEFAULT FALSE,
            script TEXT,
            audio_url TEXT,
            auto_reel_url TEXT,
            reel_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE(listing_id, group_name)
        );

        CREATE TABLE IF NOT EXISTS media (
            id VARCHAR(100) PRIMARY KEY,
            listing_id VARCHAR(100) NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            group_id VARCHAR(100) REFERENCES media_groups(id) ON DELETE CASCADE,
            media_type VARCHAR(10) NOT NULL,
            media_url TEXT NOT NULL,
            description TEXT,
            is_establishing_shot BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE(listing_id, media_url)
        );

        CREATE INDEX IF NOT EXISTS idx_media_group ON media(group_id);

        CREATE TABLE IF NOT EXISTS jobs (
            id VARCHAR(200) PRIMARY KEY,
            workflow_name VARCHAR(100) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'running',
            current_step VARCHAR(100),
            error TEXT,
            entity_id VARCHAR(100),
            input JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(ddl)
            conn.commit()

    def _init_sqlite(self) -> None:
        """Create SQLite tables."""
        ddl = """
        CREATE TABLE IF NOT EXISTS listings (
            id TEXT PRIMARY KEY,
            status TEXT NOT NULL DEFAULT 'draft',
            location TEXT,
            image_count INTEGER,
            property_stats TEXT,
            property_context TEXT,
            has_scripts INTEGER NOT NULL DEFAULT 0,
            has_video_reels INTEGER NOT NULL DEFAULT 0,
            is_published INTEGER NOT NULL DEFAULT 0,
            created_at TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS media_groups (
            id TEXT PRIMARY KEY,
            listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            group_name TEXT NOT NULL,
            is_establishing_shot INTEGER NOT NULL DEFAULT 0,
            script TEXT,
            audio_url TEXT,
            auto_reel_url TEXT,
            reel_url TEXT,
            created_at TEXT,
            updated_at TEXT,
            UNIQUE(listing_id, group_name)
        );

        CREATE TABLE IF NOT EXISTS media (
            id TEXT PRIMARY KEY,
            listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
            group_id TEXT REFERENCES media_groups(id) ON DELETE CASCADE,
            media_type TEXT NOT NULL,
            media_url TEXT NOT NULL,
            description TEXT,
            is_establishing_shot INTEGER NOT NULL DEFAULT 0,
            created_at TEXT,
            updated_at TEXT,
            UNIQUE(listing_id, media_url)
        );

        CREATE INDEX IF NOT EXISTS idx_media_group ON media(group_id);

        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            workflow_name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'running',
            current_step TEXT,
            error TEXT,
            entity_id TEXT,
            input TEXT,
            created_at TEXT,
            updated_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.executescript(ddl)
            conn.commit()
