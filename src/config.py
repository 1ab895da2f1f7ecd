"""Runtime configuration.

All settings come from environment variables. Provider credentials are
optional at startup: a missing key only fails the steps that need it,
so the API can still serve status polls for existing jobs.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

# SQLite default path (local development)
DEFAULT_SQLITE_PATH = Path(__file__).parent / "executor" / "executor.db"


class Settings(BaseModel):
    """Environment-driven settings for the pipeline service."""

    # --- Persistence ---
    database_url: str = Field(
        default="",
        description="postgres://... for Postgres; empty for SQLite",
    )
    sqlite_path: Path = DEFAULT_SQLITE_PATH

    # --- Execution ---
    max_workers: int = Field(default=4, description="Jobs doing active work at once per process")
    max_job_threads: int = Field(default=256, description="Live job threads, including sleeping pollers")
    photo_analysis_concurrency: int = 3

    # --- Scraper (Bright Data datasets API) ---
    bright_data_api_key: Optional[str] = None
    bright_data_base_url: str = "https://api.brightdata.com/datasets/v3"
    bright_data_dataset_id: str = "gd_lfqkr8wm13ixtbd8f5"

    # --- Auto-reel (image -> video) ---
    auto_reel_api_key: Optional[str] = None
    auto_reel_base_url: str = "https://api.autoreelapp.com/api/v1"

    # --- Render farm ---
    render_api_key: Optional[str] = None
    render_base_url: str = "http://localhost:3001/api"
    render_composition_id: str = "FinalVideoVertical"

    # --- Text to speech (ElevenLabs) ---
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    tts_voice_id: str = "FGY2WhTYpPnrIDTdsKH5"
    tts_model_id: str = "eleven_v3"
    tts_output_format: str = "mp3_44100_128"

    # --- Object storage (Supabase) ---
    supabase_url: str = "http://localhost:54321"
    supabase_key: Optional[str] = None
    storage_bucket: str = "media"
    storage_owner: str = "usr_default"

    # --- LLM / vision ---
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    llm_timeout: float = 300.0
    vision_model: str = "claude-sonnet-4-6"
    grouping_model: str = "claude-sonnet-4-6"
    script_model: str = "claude-sonnet-4-6"
    context_model: str = "claude-haiku-4-5-20251001"

    # --- Poll loops (seconds) ---
    scrape_poll_interval: float = 5.0
    scrape_timeout: float = 15 * 60
    auto_reel_poll_interval: float = 5.0
    auto_reel_timeout: float = 30 * 60
    render_poll_interval: float = 10.0
    render_timeout: float = 30 * 60

    # --- HTTP timeouts (seconds) ---
    http_timeout: float = 60.0
    download_timeout: float = 300.0

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgres")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Only variables that are actually set override the defaults.
        """
        env_map = {
            "database_url": "EXECUTOR_DATABASE_URL",
            "sqlite_path": "EXECUTOR_SQLITE_PATH",
            "max_workers": "EXECUTOR_MAX_WORKERS",
            "max_job_threads": "EXECUTOR_MAX_JOB_THREADS",
            "photo_analysis_concurrency": "PHOTO_ANALYSIS_CONCURRENCY",
            "bright_data_api_key": "BRIGHT_DATA_API_KEY",
            "bright_data_base_url": "BRIGHT_DATA_BASE_URL",
            "bright_data_dataset_id": "BRIGHT_DATA_DATASET_ID",
            "auto_reel_api_key": "AUTO_REEL_API_KEY",
            "auto_reel_base_url": "AUTO_REEL_BASE_URL",
            "render_api_key": "RENDER_API_KEY",
            "render_base_url": "RENDER_BASE_URL",
            "render_composition_id": "RENDER_COMPOSITION_ID",
            "elevenlabs_api_key": "ELEVENLABS_API_KEY",
            "elevenlabs_base_url": "ELEVENLABS_BASE_URL",
            "tts_voice_id": "TTS_VOICE_ID",
            "tts_model_id": "TTS_MODEL_ID",
            "tts_output_format": "TTS_OUTPUT_FORMAT",
            "supabase_url": "SUPABASE_URL",
            "supabase_key": "SUPABASE_SERVICE_KEY",
            "storage_bucket": "STORAGE_BUCKET",
            "storage_owner": "STORAGE_OWNER",
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "gemini_api_key": "GEMINI_API_KEY",
            "llm_timeout": "LLM_TIMEOUT",
            "vision_model": "VISION_MODEL",
            "grouping_model": "GROUPING_MODEL",
            "script_model": "SCRIPT_MODEL",
            "context_model": "CONTEXT_MODEL",
            "scrape_poll_interval": "SCRAPE_POLL_INTERVAL",
            "scrape_timeout": "SCRAPE_TIMEOUT",
            "auto_reel_poll_interval": "AUTO_REEL_POLL_INTERVAL",
            "auto_reel_timeout": "AUTO_REEL_TIMEOUT",
            "render_poll_interval": "RENDER_POLL_INTERVAL",
            "render_timeout": "RENDER_TIMEOUT",
            "http_timeout": "HTTP_TIMEOUT",
            "download_timeout": "DOWNLOAD_TIMEOUT",
        }
        values = {
            field: os.environ[var]
            for field, var in env_map.items()
            if os.environ.get(var)
        }
        return cls.model_validate(values)
