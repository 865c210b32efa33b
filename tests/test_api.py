"""
HTTP endpoints through FastAPI's TestClient with the service container overridden.
"""

import pytest
from fastapi.testclient import TestClient

from api.config import Settings, settings
from api.deps import get_services
from api.main import app


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def _poll(client, **body):
    response = client.post("/api/simplifications/run", json=body)
    assert response.status_code == 200
    return response.json()


def _poll_to_end(client, **body):
    state = _poll(client, initialization=True, **body)
    while state[2]:
        state = _poll(client, **body)
    return state


class TestRunEndpoint:
    def test_initialize_then_poll_to_the_end(self, client, gutenberg_post):
        first = _poll(client, object_id=10, initialization=True, target_language="de_LS", max_items_per_tick=2)
        assert first == [0, 3, 1, {}]

        second = _poll(client, object_id=10, target_language="de_LS")
        assert second[:3] == [2, 3, 1]

        last = _poll(client, object_id=10, target_language="de_LS")
        assert last[:3] == [3, 3, 0]
        assert last[3]["kind"] == "success"
        assert last[3]["links"][0]["label"] == "View"

    def test_unknown_object(self, client):
        response = client.post("/api/simplifications/run", json={"object_id": 404, "initialization": True})
        assert response.status_code == 404

    def test_unknown_api_becomes_an_error_payload(self, client, gutenberg_post):
        body = _poll(client, object_id=10, initialization=True, api="deepl")
        assert body[:3] == [1, 1, 0]
        assert body[3]["category"] == "internal"

    def test_second_initialization_reports_the_lock(self, client, gutenberg_post):
        _poll(client, object_id=10, initialization=True, max_items_per_tick=1)
        body = _poll(client, object_id=10, initialization=True)
        assert body[3]["kind"] == "error"

    def test_poll_without_run(self, client, gutenberg_post):
        response = client.post("/api/simplifications/run", json={"object_id": 10})
        assert response.status_code == 404


class TestOtherEndpoints:
    def test_reset(self, client, services, gutenberg_post):
        _poll(client, object_id=10, initialization=True, max_items_per_tick=5)
        response = client.post("/api/simplifications/reset", json={"object_id": 10, "target_language": "de_LS"})
        assert response.status_code == 200
        assert response.json() == {"reset": 3}

    def test_delete_copies(self, client, services, gutenberg_post):
        _poll(client, object_id=10, initialization=True, max_items_per_tick=5)
        response = client.post("/api/simplifications/delete", json={"object_id": 10, "initialization": True})
        assert response.json()[:3] == [0, 1, 1]
        body = client.post("/api/simplifications/delete", json={"object_id": 10}).json()
        assert body[:3] == [1, 1, 0]
        assert services.objects.list_copies(gutenberg_post.content_object_id) == []

    def test_list_texts_with_simplifications(self, client, gutenberg_post):
        assert _poll_to_end(client, object_id=10, target_language="de_LS", max_items_per_tick=5)[2] == 0
        response = client.get("/api/texts", params={"state": "in_use", "target_language": "de_LS"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["texts"][0]["content"] == "Hallo Welt"
        assert data["texts"][0]["simplification"] == "HALLO WELT"
        assert data["texts"][0]["object_count"] == 1

    def test_ignore_and_delete_text(self, client, services, gutenberg_post):
        services.orchestrator.prepare_copy(gutenberg_post, "de_LS")
        fragment = services.store.get_fragment_by_original("Hallo Welt", "de_DE")

        response = client.post(f"/api/simplifications/ignore/{fragment.fragment_id}")
        assert response.json()["state"] == "ignore"

        assert client.delete(f"/api/texts/{fragment.fragment_id}").status_code == 204
        assert client.delete(f"/api/texts/{fragment.fragment_id}").status_code == 404

    def test_usage(self, client, services):
        services.quota.record_usage("stub", 12)
        response = client.get("/api/usage/stub")
        assert response.json() == {"api_name": "stub", "spent": 12, "limit": None, "rest": None, "percent": 0.0}
        assert client.get("/api/usage/deepl").status_code == 404

    def test_usage_check_for_an_object(self, client, gutenberg_post):
        response = client.get("/api/usage/stub/check", params={"object_id": 10})
        data = response.json()
        assert data["status"] == "ok"
        assert data["chars_count"] == len("Hallo Welt") + len("Das ist ein Text.") + len("Noch ein <strong>Absatz</strong>.")

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestTickSize:
    def test_requested_tick_size_is_capped(self, monkeypatch, client, gutenberg_post):
        monkeypatch.setattr(settings, "tick_size_cap", 2)
        first = _poll(client, object_id=10, initialization=True, max_items_per_tick=50)
        assert first == [0, 3, 1, {}]
        assert _poll(client, object_id=10)[:3] == [2, 3, 1]

    def test_tick_size_bounds(self):
        capped = Settings(tick_size_cap=4)
        assert capped.tick_size(None) is None
        assert capped.tick_size(0) == 1
        assert capped.tick_size(9) == 4
