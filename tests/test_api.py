"""API tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from tests.fakes import JOB_TIMEOUT


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def wait_for(container, event_id):
    return container.scheduler.wait(event_id, timeout=JOB_TIMEOUT)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["workflows_loaded"] == 4


def test_root_lists_endpoints(client):
    assert "events" in client.get("/").json()["endpoints"]


def test_workflows_list_declared_steps(client):
    workflows = {w["workflow_name"]: w for w in client.get("/workflows").json()}

    steps = [s["step_name"] for s in workflows["parse-listing"]["steps"]]
    assert steps[0] == "setup"
    assert steps[-1] == "finish"
    assert workflows["generate-final-video"]["event_name"] == "group/generate-final-video"


# --- Events ---


def test_unknown_event_is_rejected(client):
    response = client.post("/events", json={"eventName": "listing/unknown", "data": {}})

    assert response.status_code == 400
    assert client.get("/jobs").json() == []


def test_invalid_payload_is_rejected(client):
    response = client.post("/events", json={"eventName": "listing/parse", "data": {"url": "nope"}})

    assert response.status_code == 400
    assert "url" in response.json()["detail"]
    assert client.get("/jobs").json() == []


def test_event_runs_workflow_and_reports_progress(client, container):
    response = client.post(
        "/events",
        json={"eventName": "listing/parse", "data": {"url": "https://www.zillow.com/homedetails/1"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["workflowName"] == "parse-listing"
    event_id = body["eventId"]
    wait_for(container, event_id)

    progress = client.get(f"/jobs/{event_id}/listing").json()
    assert progress["job"]["status"] == "ready"
    assert progress["job"]["current_step"] == "finish"
    assert [g["group_name"] for g in progress["entity"]["groups"]] == ["Front Exterior", "Kitchen"]


def test_redelivered_event_id_returns_same_job(client, container, fakes):
    payload = {
        "eventName": "listing/parse",
        "eventId": "evt-delivery-1",
        "data": {"url": "https://www.zillow.com/homedetails/1"},
    }

    first = client.post("/events", json=payload).json()
    wait_for(container, "evt-delivery-1")
    second = client.post("/events", json=payload).json()

    assert first["eventId"] == second["eventId"] == "evt-delivery-1"
    assert second["status"] == "ready"
    assert len(client.get("/jobs").json()) == 1
    assert fakes.scraper.submitted == ["https://www.zillow.com/homedetails/1"]


# --- Jobs ---


def test_unknown_job_returns_null(client):
    response = client.get("/jobs/evt-missing/group")

    assert response.status_code == 200
    assert response.json() == {"job": None, "entity": None}


def test_unknown_entity_kind_is_rejected(client):
    assert client.get("/jobs/evt-1/house").status_code == 422


# --- Listings ---


def test_parse_route_rejects_invalid_url(client):
    assert client.post("/listings/parse", json={"url": "not a url"}).status_code == 422


def test_parse_route_starts_job(client, container):
    response = client.post("/listings/parse", json={"url": "https://www.zillow.com/homedetails/1"})

    job = wait_for(container, response.json()["eventId"])
    assert job.status.value == "ready"
    listing = client.get(f"/listings/{job.entity_id}/groups").json()
    assert listing["image_count"] == 3


def test_scripts_route_requires_listing(client):
    assert client.post("/listings/lst-missing/scripts").status_code == 404
    assert client.get("/listings/lst-missing/groups").status_code == 404


def test_scripts_route_requires_groups(client, entities):
    listing = entities.create_listing()

    response = client.post(f"/listings/{listing.id}/scripts")

    assert response.status_code == 400
    assert client.get("/jobs").json() == []


def test_scripts_route_starts_job(client, container, seeded_group):
    response = client.post(f"/listings/{seeded_group.listing_id}/scripts")

    job = wait_for(container, response.json()["eventId"])
    assert job.status.value == "ready"
    assert client.get(f"/groups/{seeded_group.id}").json()["script"] == "Welcome to the kitchen."


# --- Groups ---


def test_get_group_includes_media(client, seeded_group):
    group = client.get(f"/groups/{seeded_group.id}").json()

    assert group["group_name"] == "Kitchen"
    assert len(group["media"]) == 2
    assert len(group["described_images"]) == 2


def test_auto_reel_route_requires_images(client, entities):
    listing = entities.create_listing()
    group = entities.upsert_group(listing.id, "Empty")

    response = client.post(f"/groups/{group.id}/auto-reel")

    assert response.status_code == 400
    assert client.get("/jobs").json() == []


def test_auto_reel_route_starts_job(client, container, seeded_group):
    response = client.post(f"/groups/{seeded_group.id}/auto-reel")

    assert response.json()["workflowName"] == "generate-auto-reel"
    job = wait_for(container, response.json()["eventId"])
    assert job.status.value == "ready"
    progress = client.get(f"/jobs/{job.id}/group").json()
    assert progress["entity"]["auto_reel_url"].endswith(f"/auto-reels/{seeded_group.id}.mp4")


def test_voice_over_requires_script(client, seeded_group):
    assert client.post(f"/groups/{seeded_group.id}/voice-over").status_code == 400


def test_voice_over_stores_audio(client, entities, fakes, seeded_group):
    entities.update_group(seeded_group.id, script="Welcome to the kitchen.")

    response = client.post(f"/groups/{seeded_group.id}/voice-over")

    assert response.status_code == 200
    assert response.json()["audio_url"].endswith(f"/voice-overs/{seeded_group.id}.mp3")
    assert fakes.tts.texts == ["Welcome to the kitchen."]
    path = fakes.storage.paths.voice_over(seeded_group.listing_id, seeded_group.id)
    assert fakes.storage.uploads[path] == (b"ID3-fake-mp3", "audio/mpeg")


def test_final_video_requires_audio(client, entities, seeded_group):
    entities.update_group(seeded_group.id, auto_reel_url="https://storage.test/media/reel.mp4")

    response = client.post(f"/groups/{seeded_group.id}/final-video")

    assert response.status_code == 400
    assert "voice-over audio" in response.json()["detail"]
    assert client.get("/jobs").json() == []


def test_final_video_requires_auto_reel(client, entities, seeded_group):
    entities.update_group(seeded_group.id, audio_url="https://storage.test/media/voice.mp3")

    response = client.post(f"/groups/{seeded_group.id}/final-video")

    assert response.status_code == 400
    assert "auto-reel" in response.json()["detail"]
    assert client.get("/jobs").json() == []


def test_final_video_route_starts_job(client, container, entities, seeded_group):
    entities.update_group(
        seeded_group.id,
        auto_reel_url="https://storage.test/media/reel.mp4",
        audio_url="https://storage.test/media/voice.mp3",
    )

    response = client.post(f"/groups/{seeded_group.id}/final-video")

    job = wait_for(container, response.json()["eventId"])
    assert job.status.value == "ready"
    assert client.get(f"/groups/{seeded_group.id}").json()["reel_url"].endswith(
        f"/final-reels/{seeded_group.id}.mp4"
    )


def test_missing_group_is_404(client):
    assert client.get("/groups/grp-missing").status_code == 404
    assert client.post("/groups/grp-missing/final-video").status_code == 404
