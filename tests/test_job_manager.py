"""Tests for the job ledger."""

import pytest

from src.executor.errors import JobNotFoundError
from src.executor.schemas import JobStatus


def test_create_starts_running_with_no_step(ledger):
    job = ledger.create("evt-1", "parse-listing", input={"url": "https://example.com/a"})

    assert job.status == JobStatus.RUNNING
    assert job.current_step is None
    assert job.error is None
    assert job.entity_id is None
    assert job.input == {"url": "https://example.com/a"}


def test_create_is_idempotent_per_event_id(ledger):
    first = ledger.create("evt-1", "parse-listing", input={"url": "https://example.com/a"})
    ledger.advance_step("evt-1", "setup")

    second = ledger.create("evt-1", "parse-listing", input={"url": "https://example.com/other"})

    assert second.id == first.id
    assert second.current_step == "setup"
    assert second.input == {"url": "https://example.com/a"}
    assert len(ledger.list_jobs()) == 1


def test_get_by_id_unknown_returns_none(ledger):
    assert ledger.get_by_id("missing") is None


def test_advance_step_records_checkpoint(ledger):
    ledger.create("evt-1", "generate-scripts")

    job = ledger.advance_step("evt-1", "generate-scripts")

    assert job.current_step == "generate-scripts"
    assert ledger.get_by_id("evt-1").current_step == "generate-scripts"


def test_advance_step_unknown_job_raises(ledger):
    with pytest.raises(JobNotFoundError):
        ledger.advance_step("missing", "setup")


def test_attach_entity_first_write_wins(ledger):
    ledger.create("evt-1", "parse-listing")

    ledger.attach_entity("evt-1", "lst-aaa")
    job = ledger.attach_entity("evt-1", "lst-bbb")

    assert job.entity_id == "lst-aaa"


def test_complete_sets_ready_and_finish_step(ledger):
    ledger.create("evt-1", "generate-scripts")
    ledger.advance_step("evt-1", "update-groups-with-scripts")

    job = ledger.complete("evt-1")

    assert job.status == JobStatus.READY
    assert job.current_step == "finish"
    assert job.error is None


def test_fail_records_error_and_keeps_step(ledger):
    ledger.create("evt-1", "generate-final-video")
    ledger.advance_step("evt-1", "poll-render-progress")

    job = ledger.fail("evt-1", "render: Render failed: out of memory")

    assert job.status == JobStatus.FAILED
    assert job.current_step == "poll-render-progress"
    assert job.error == "render: Render failed: out of memory"


def test_terminal_job_is_immutable(ledger):
    ledger.create("evt-1", "generate-scripts")
    ledger.complete("evt-1")

    ledger.advance_step("evt-1", "setup")
    ledger.fail("evt-1", "late failure")
    job = ledger.get_by_id("evt-1")

    assert job.status == JobStatus.READY
    assert job.current_step == "finish"
    assert job.error is None


def test_failed_job_keeps_first_error(ledger):
    ledger.create("evt-1", "generate-scripts")
    ledger.fail("evt-1", "first")

    ledger.fail("evt-1", "second")
    ledger.complete("evt-1")
    job = ledger.get_by_id("evt-1")

    assert job.status == JobStatus.FAILED
    assert job.error == "first"


def test_list_jobs_filters_by_status(ledger):
    ledger.create("evt-1", "generate-scripts")
    ledger.create("evt-2", "generate-scripts")
    ledger.complete("evt-2")

    running = ledger.list_jobs(status="running")
    ready = ledger.list_jobs(status="ready")

    assert [j.id for j in running] == ["evt-1"]
    assert [j.id for j in ready] == ["evt-2"]


def test_list_running_returns_only_running_jobs(ledger):
    ledger.create("evt-1", "generate-scripts", input={"listing_id": "lst-1"})
    ledger.create("evt-2", "generate-scripts")
    ledger.fail("evt-2", "boom")

    running = ledger.list_running()

    assert [j.id for j in running] == ["evt-1"]
    assert running[0].input == {"listing_id": "lst-1"}
