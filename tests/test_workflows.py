"""End-to-end runs of the four listing workflows against fake providers."""

from src.executor.schemas import JobStatus, ListingStatus
from src.workflows.definitions import ALL_DEFINITIONS
from tests.fakes import done, failed, running


def test_default_registry_has_all_workflows(container):
    names = {s.workflow_name for s in container.registry.list_all()}

    assert names == {d.workflow_name for d in ALL_DEFINITIONS} == {
        "parse-listing",
        "generate-scripts",
        "generate-auto-reel",
        "generate-final-video",
    }


# --- parse-listing ---


def test_parse_listing_builds_grouped_listing(container, run_event, fakes, monkeypatch):
    after_setup = {}
    advance_step = container.ledger.advance_step

    def record_state_after_setup(job_id, step_name):
        if step_name == "start-scrape":
            job = container.ledger.get_by_id(job_id)
            after_setup["job"] = job
            after_setup["listing"] = container.entities.get_listing(job.entity_id)
        return advance_step(job_id, step_name)

    monkeypatch.setattr(container.ledger, "advance_step", record_state_after_setup)

    job = run_event("listing/parse", {"url": "https://www.zillow.com/homedetails/1"})

    assert job.status == JobStatus.READY
    assert job.current_step == "finish"
    assert job.error is None

    assert after_setup["job"].current_step == "setup"
    assert after_setup["job"].status == JobStatus.RUNNING
    assert after_setup["listing"].id == job.entity_id
    assert after_setup["listing"].status == ListingStatus.DRAFT
    assert after_setup["listing"].groups == []

    listing = container.entities.require_listing(job.entity_id)
    assert listing.location == "12 Oak St, Austin, TX, 78701"
    assert listing.status == ListingStatus.DRAFT
    assert listing.has_scripts is False
    assert listing.has_video_reels is False
    assert listing.image_count == 3
    assert listing.property_stats.bedrooms == 3
    assert [g.group_name for g in listing.groups] == ["Front Exterior", "Kitchen"]
    assert listing.groups[0].is_establishing_shot is True
    assert len(listing.groups[1].media) == 2
    assert all(m.description for g in listing.groups for m in g.media)
    assert all(m.media_url.startswith("https://storage.test/media/") for g in listing.groups for m in g.media)

    assert fakes.scraper.submitted == ["https://www.zillow.com/homedetails/1"]
    assert fakes.scraper.polls == 2
    assert sorted(fakes.llm.described) == [
        "https://photos.example.com/front.jpg",
        "https://photos.example.com/kitchen-1.jpg",
        "https://photos.example.com/kitchen-2.jpg",
    ]
    assert len(fakes.storage.uploads) == 3


def test_parse_listing_skips_photos_that_cannot_be_fetched(container, run_event, fakes):
    fakes.storage.missing.add("https://photos.example.com/kitchen-2.jpg")

    job = run_event("listing/parse", {"url": "https://www.zillow.com/homedetails/1"})

    listing = container.entities.require_listing(job.entity_id)
    kitchen = [g for g in listing.groups if g.group_name == "Kitchen"][0]
    assert job.status == JobStatus.READY
    assert len(kitchen.media) == 1


def test_parse_listing_scrape_failure_fails_job(container, run_event, fakes):
    fakes.scraper.script = [running(), failed("Failed to scrape listing details: blocked")]

    job = run_event("listing/parse", {"url": "https://www.zillow.com/homedetails/1"})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "poll-scrape-status"
    assert job.error == "scraper: Failed to scrape listing details: blocked"
    listing = container.entities.require_listing(job.entity_id)
    assert listing.groups == []


def test_parse_listing_without_photos_fails_in_analysis(container, run_event, fakes):
    fakes.scraper.snapshot = {"address": {"city": "Austin"}, "photos": []}

    job = run_event("listing/parse", {"url": "https://www.zillow.com/homedetails/1"})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "analyze-photos"
    assert job.error == "Listing has no photos"


def test_parse_listing_resumes_with_same_listing(container, fakes):
    container.ledger.create(
        "evt-resume", "parse-listing", input={"url": "https://www.zillow.com/homedetails/1"}
    )
    container.scheduler.submit("evt-resume")
    first = container.scheduler.wait("evt-resume", timeout=10)
    listing_id = first.entity_id

    # Simulate a crash mid-run: the job is running again from store-groups
    container.db.execute(
        "UPDATE jobs SET status = %s, current_step = %s WHERE id = %s",
        ("running", "store-groups", "evt-resume"),
    )
    container.scheduler.recover_orphaned_jobs()
    resumed = container.scheduler.wait("evt-resume", timeout=10)

    assert resumed.status == JobStatus.READY
    assert resumed.entity_id == listing_id
    listing = container.entities.require_listing(listing_id)
    assert len(listing.groups) == 2
    assert sum(len(g.media) for g in listing.groups) == 3


def test_parse_listing_resume_with_vanished_listing_fails_without_new_row(container, fakes):
    container.ledger.create(
        "evt-gone", "parse-listing", input={"url": "https://www.zillow.com/homedetails/1"}
    )
    container.ledger.attach_entity("evt-gone", "lst-gone")
    container.ledger.advance_step("evt-gone", "start-scrape")

    container.scheduler.recover_orphaned_jobs()
    job = container.scheduler.wait("evt-gone", timeout=10)

    assert job.status == JobStatus.FAILED
    assert job.current_step == "start-scrape"
    assert job.error == "Listing lst-gone not found"
    assert job.entity_id == "lst-gone"
    assert container.db.execute("SELECT id FROM listings", fetch="all") == []
    assert fakes.scraper.submitted == []


# --- generate-scripts ---


def test_generate_scripts_updates_groups(container, run_event, seeded_group):
    job = run_event("listing/generate-scripts", {"listing_id": seeded_group.listing_id})

    assert job.status == JobStatus.READY
    assert job.entity_id == seeded_group.listing_id
    listing = container.entities.require_listing(seeded_group.listing_id)
    assert listing.has_scripts is True
    assert listing.property_context.startswith("A home at 12 Oak St")
    assert listing.groups[0].script == "Welcome to the kitchen."


def test_generate_scripts_for_listing_without_groups_fails(container, run_event, entities):
    listing = entities.create_listing()

    job = run_event("listing/generate-scripts", {"listing_id": listing.id})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "setup"
    assert "has no media groups" in job.error


def test_generate_scripts_for_missing_listing_fails(run_event):
    job = run_event("listing/generate-scripts", {"listing_id": "lst-missing"})

    assert job.status == JobStatus.FAILED
    assert job.error == "Listing lst-missing not found"


# --- generate-auto-reel ---


def test_generate_auto_reel_stores_video(container, run_event, fakes, seeded_group):
    job = run_event("group/generate-auto-reel", {"group_id": seeded_group.id})

    assert job.status == JobStatus.READY
    group = container.entities.require_group(seeded_group.id)
    expected_path = fakes.storage.paths.auto_reel(seeded_group.listing_id, seeded_group.id)
    assert group.auto_reel_url == fakes.storage.public_url(expected_path)
    assert fakes.auto_reel.submitted == [seeded_group.image_urls]
    assert fakes.storage.uploads[expected_path][1] == "video/mp4"
    assert container.entities.require_listing(seeded_group.listing_id).has_video_reels is True


def test_generate_auto_reel_provider_error(container, run_event, fakes, seeded_group):
    fakes.auto_reel.script = [running(), failed("Auto-reel generation failed: bad input")]

    job = run_event("group/generate-auto-reel", {"group_id": seeded_group.id})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "poll-video-status"
    assert job.error == "auto-reel: Auto-reel generation failed: bad input"
    assert container.entities.require_group(seeded_group.id).auto_reel_url is None


def test_generate_auto_reel_group_without_images_fails(container, run_event, entities):
    listing = entities.create_listing()
    group = entities.upsert_group(listing.id, "Empty")

    job = run_event("group/generate-auto-reel", {"group_id": group.id})

    assert job.status == JobStatus.FAILED
    assert job.error == f"Group {group.id} has no images"


# --- generate-final-video ---


def ready_for_render(entities, group):
    return entities.update_group(
        group.id,
        auto_reel_url="https://storage.test/media/reel.mp4",
        audio_url="https://storage.test/media/voice.mp3",
    )


def test_generate_final_video_renders_and_stores(container, run_event, fakes, entities, seeded_group):
    ready_for_render(entities, seeded_group)
    fakes.media_probe.durations = {
        "https://storage.test/media/voice.mp3": 25.0,
        "https://storage.test/media/reel.mp4": 45.0,
    }

    job = run_event("group/generate-final-video", {"group_id": seeded_group.id})

    assert job.status == JobStatus.READY
    request = fakes.render.submitted[0]
    assert request.composition_id == "FinalVideoVertical"
    assert request.out_name == f"final-video-{seeded_group.id}"
    assert request.input_props.playback_rate == 1.5
    assert request.input_props.audio_padding == 2.5
    assert "https://renders.example.com/final.mp4" in fakes.storage.fetched
    group = container.entities.require_group(seeded_group.id)
    expected_path = fakes.storage.paths.final_reel(seeded_group.listing_id, seeded_group.id)
    assert group.reel_url == fakes.storage.public_url(expected_path)


def test_render_fatal_error_leaves_reel_url_empty(container, run_event, fakes, entities, seeded_group):
    ready_for_render(entities, seeded_group)
    fakes.render.script = [running(0.2), failed("Render failed: chunk 3 crashed")]

    job = run_event("group/generate-final-video", {"group_id": seeded_group.id})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "poll-render-progress"
    assert job.error == "render: Render failed: chunk 3 crashed"
    assert container.entities.require_group(seeded_group.id).reel_url is None


def test_render_without_output_file_fails(container, run_event, fakes, entities, seeded_group):
    ready_for_render(entities, seeded_group)
    fakes.render.script = [done(None)]

    job = run_event("group/generate-final-video", {"group_id": seeded_group.id})

    assert job.status == JobStatus.FAILED
    assert job.error == "Render completed but no output file was generated"


def test_final_video_without_audio_fails_at_setup(container, run_event, entities, seeded_group):
    entities.update_group(seeded_group.id, auto_reel_url="https://storage.test/media/reel.mp4")

    job = run_event("group/generate-final-video", {"group_id": seeded_group.id})

    assert job.status == JobStatus.FAILED
    assert job.current_step == "setup"
    assert job.error == f"Group {seeded_group.id} does not have voice-over audio"
