"""Service container: explicitly constructed handles shared by the API and runner.

Everything a workflow touches (database, ledger, entity store, provider
adapters) is built here once and passed down. Tests build a container
with fakes in place of the provider adapters.
"""

import logging
from typing import Optional

from src.config import Settings
from src.executor.db import Database
from src.executor.entity_store import EntityStore
from src.executor.job_manager import JobLedger
from src.executor.progress import ProgressService
from src.executor.slots import WorkSlots
from src.executor.workflow_runner import JobScheduler, WorkflowRunner
from src.llm.client import ListingLLM
from src.providers.auto_reel import AutoReelClient
from src.providers.media_probe import MediaProbe
from src.providers.render import RenderFarmClient
from src.providers.scraper import BrightDataScraper
from src.providers.storage import SupabaseStorage
from src.providers.tts import ElevenLabsClient
from src.workflows.registry import WorkflowRegistry, build_default_registry

logger = logging.getLogger(__name__)


class ServiceContainer:
    def __init__(
        self,
        settings: Settings,
        *,
        db: Optional[Database] = None,
        scraper=None,
        auto_reel=None,
        render=None,
        tts=None,
        storage=None,
        llm=None,
        media_probe=None,
        registry: Optional[WorkflowRegistry] = None,
    ):
        self.settings = settings
        self.db = db or Database(settings.database_url, settings.sqlite_path)

        self.scraper = scraper or BrightDataScraper.from_settings(settings)
        self.auto_reel = auto_reel or AutoReelClient.from_settings(settings)
        self.render = render or RenderFarmClient.from_settings(settings)
        self.tts = tts or ElevenLabsClient.from_settings(settings)
        self.storage = storage or SupabaseStorage.from_settings(settings)
        self.llm = llm or ListingLLM(settings)
        self.media_probe = media_probe or MediaProbe()

        self.registry = registry or build_default_registry()
        self.ledger = JobLedger(self.db)
        self.entities = EntityStore(self.db)
        self.progress = ProgressService(self.ledger, self.entities)
        self.runner = WorkflowRunner(
            self.ledger, self.registry, deps=self, slots=WorkSlots(settings.max_workers)
        )
        self.scheduler = JobScheduler(
            self.ledger,
            self.registry,
            self.runner,
            max_threads=settings.max_job_threads,
        )

    def start(self) -> None:
        """Create tables and resume jobs a previous process left running."""
        self.db.init_db()
        logger.info(f"Loaded {self.registry.count()} workflows")
        resumed, failed = self.scheduler.recover_orphaned_jobs()
        if resumed or failed:
            logger.info(f"Startup recovery: {resumed} jobs resumed, {failed} failed")

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=False)
        for client in (self.scraper, self.auto_reel, self.render, self.tts, self.storage):
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self.db.close()
