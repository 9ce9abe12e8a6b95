import time

import pytest
from fastapi.testclient import TestClient

from shortvideo.main import app, get_video_service
from shortvideo.queue.queue import LocalQueue


@pytest.fixture
def client(make_service):
    service = make_service()
    queue = LocalQueue(processor=service.process_job)
    service.bind_queue(queue)
    app.dependency_overrides[get_video_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        queue.close()


def wait_for_state(client, job_id, states=("ready", "failed")):
    payload = None
    for _ in range(200):
        resp = client.get(f"/videos/{job_id}")
        assert resp.status_code == 200
        payload = resp.json()
        if payload["state"] in states:
            return payload
        time.sleep(0.02)
    raise AssertionError(f"job stuck in {payload}")


def test_video_flow_with_local_queue(client):
    payload = {
        "scenes": [{"text": "Hello world", "searchTerms": ["nature"]}],
        "config": {"padding_back_ms": 1500, "music": "chill", "orientation": "portrait"},
    }
    create_resp = client.post("/videos", json=payload)
    assert create_resp.status_code == 202
    job_id = create_resp.json()["job_id"]

    status_payload = wait_for_state(client, job_id)
    assert status_payload["state"] == "ready"
    assert status_payload["error"] is None
    assert status_payload["result"]["duration_ms"] == 800 + 1500

    result_resp = client.get(f"/videos/{job_id}/result")
    assert result_resp.status_code == 200
    assert result_resp.headers["content-type"] == "video/mp4"
    assert result_resp.content

    list_resp = client.get("/videos")
    assert list_resp.status_code == 200
    assert [item["id"] for item in list_resp.json()["items"]] == [job_id]

    assert client.delete(f"/videos/{job_id}").status_code == 204
    assert client.delete(f"/videos/{job_id}").status_code == 404
    assert client.get(f"/videos/{job_id}").status_code == 404


def test_empty_scenes_are_rejected(client):
    resp = client.post("/videos", json={"scenes": []})
    assert resp.status_code == 400
    assert client.get("/videos").json()["items"] == []


def test_bad_enumeration_is_rejected(client):
    resp = client.post("/videos", json={"scenes": [{"text": "Hi"}], "config": {"orientation": "square"}})
    assert resp.status_code == 422


def test_fallback_footage_keeps_job_alive(client):
    resp = client.post("/videos", json={"scenes": [{"text": "Hi", "search_terms": ["unicorns"]}]})
    assert resp.status_code == 202
    assert wait_for_state(client, resp.json()["job_id"])["state"] == "ready"


def test_failed_job_reports_error(client, footage):
    footage.library = {}
    resp = client.post("/videos", json={"scenes": [{"text": "Hi", "search_terms": ["unicorns"]}]})
    job_id = resp.json()["job_id"]

    status_payload = wait_for_state(client, job_id)
    assert status_payload["state"] == "failed"
    assert status_payload["error"].startswith("FootageNotFoundError")
    assert client.get(f"/videos/{job_id}/result").status_code == 409
    assert wait_for_state(client, job_id) == status_payload


def test_unknown_job_is_not_found(client):
    missing = "00000000-0000-4000-8000-000000000000"
    assert client.get(f"/videos/{missing}").status_code == 404
    assert client.get(f"/videos/{missing}/result").status_code == 404
    assert client.delete(f"/videos/{missing}").status_code == 404


def test_voices_and_moods(client):
    voices = client.get("/voices").json()["items"]
    assert any(voice["name"] == "rachel" for voice in voices)
    assert client.get("/music/moods").json()["items"] == ["chill"]
