"""Shared fixtures: a temp SQLite database and a container wired to fakes."""

from types import SimpleNamespace

import pytest

from src.config import Settings
from src.container import ServiceContainer
from src.executor.db import Database
from src.executor.entity_store import EntityStore
from src.executor.job_manager import JobLedger
from src.executor.schemas import MediaType
from tests.fakes import (
    JOB_TIMEOUT,
    FakeAutoReel,
    FakeLLM,
    FakeMediaProbe,
    FakeRender,
    FakeScraper,
    FakeStorage,
    FakeTTS,
)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        sqlite_path=tmp_path / "pipeline.db",
        max_workers=2,
        photo_analysis_concurrency=2,
        scrape_poll_interval=0,
        auto_reel_poll_interval=0,
        render_poll_interval=0,
    )


@pytest.fixture
def db(settings):
    database = Database(sqlite_path=settings.sqlite_path)
    database.init_db()
    yield database
    database.close()


@pytest.fixture
def ledger(db):
    return JobLedger(db)


@pytest.fixture
def entities(db):
    return EntityStore(db)


@pytest.fixture
def fakes():
    return SimpleNamespace(
        scraper=FakeScraper(),
        auto_reel=FakeAutoReel(),
        render=FakeRender(),
        tts=FakeTTS(),
        storage=FakeStorage(),
        llm=FakeLLM(),
        media_probe=FakeMediaProbe(),
    )


@pytest.fixture
def container(settings, db, fakes):
    c = ServiceContainer(
        settings,
        db=db,
        scraper=fakes.scraper,
        auto_reel=fakes.auto_reel,
        render=fakes.render,
        tts=fakes.tts,
        storage=fakes.storage,
        llm=fakes.llm,
        media_probe=fakes.media_probe,
    )
    c.start()
    yield c
    c.scheduler.shutdown(wait=True)
    c.shutdown()


@pytest.fixture
def run_event(container):
    """Dispatch an event and block until its job reaches a terminal state."""

    def _run(event_name: str, data: dict, event_id=None):
        job = container.scheduler.dispatch(event_name, data, event_id)
        return container.scheduler.wait(job.id, timeout=JOB_TIMEOUT)

    return _run


@pytest.fixture
def seeded_group(entities):
    """A listing with one two-photo group (no script, audio or reels yet)."""
    listing = entities.create_listing()
    entities.update_listing(listing.id, location="12 Oak St, Austin, TX, 78701")
    group = entities.upsert_group(listing.id, "Kitchen")
    for n in (1, 2):
        entities.upsert_media(
            listing.id,
            f"https://storage.test/media/kitchen-{n}.jpg",
            group_id=group.id,
            media_type=MediaType.IMAGE,
            description=f"Kitchen photo {n}",
        )
    return entities.require_group(group.id)
