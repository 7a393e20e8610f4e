"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from sitemap_builder.core.config import settings
from sitemap_builder.core.database import get_db
from sitemap_builder.main import app
from sitemap_builder.services.sitemap_builder import CREATE_SITEMAP_TASK
from sitemap_builder.services.sitemap_file import get_sitemap_file
from sitemap_builder.services.sitemap_xml import XML_FOOTER, XML_HEADER
from sitemap_builder.services.task_queue import get_task_queue


@pytest.fixture
def client(db_session, task_queue, sitemap_file, monkeypatch):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_queue] = lambda: task_queue
    app.dependency_overrides[get_sitemap_file] = lambda: sitemap_file
    monkeypatch.setattr(settings, "SITEMAP_POST_TYPES", {"page": "0.9"})
    monkeypatch.setattr(settings, "SITEMAP_PATH", sitemap_file.path)
    monkeypatch.setattr(settings, "SITEMAP_REBUILD_DELAY_SECONDS", 300)

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestPublishWebhook:

    def test_publish_schedules_rebuild(self, client, task_queue, make_items):
        [item] = make_items(1)

        response = client.post(
            "/api/v1/sitemap/events/published",
            json={"content_id": item.id, "old_status": "draft"},
        )

        assert response.status_code == 200
        assert response.json()["scheduled"] is True
        [task] = task_queue.scheduled
        assert task.name == CREATE_SITEMAP_TASK
        assert task.delay == 300

    def test_second_publish_is_coalesced(self, client, task_queue, make_items):
        items = make_items(2)

        for item in items:
            response = client.post(
                "/api/v1/sitemap/events/published",
                json={"content_id": item.id, "old_status": "draft"},
            )

        assert response.json()["scheduled"] is False
        assert len(task_queue.scheduled) == 1

    def test_draft_content_is_ignored(self, client, task_queue, make_items):
        [item] = make_items(1, status="draft")

        response = client.post(
            "/api/v1/sitemap/events/published",
            json={"content_id": item.id, "old_status": "draft"},
        )

        assert response.status_code == 200
        assert response.json()["scheduled"] is False
        assert task_queue.scheduled == []

    def test_unknown_content(self, client):
        response = client.post(
            "/api/v1/sitemap/events/published",
            json={"content_id": 999, "old_status": "draft"},
        )
        assert response.status_code == 404

    def test_invalid_body(self, client):
        response = client.post("/api/v1/sitemap/events/published", json={"content_id": 0})
        assert response.status_code == 422


class TestRebuildAndStatus:

    def test_manual_rebuild(self, client, task_queue):
        response = client.post("/api/v1/sitemap/rebuild")

        assert response.status_code == 202
        assert response.json()["scheduled"] is True
        assert task_queue.scheduled[0].delay == 0

    def test_status_absent(self, client):
        response = client.get("/api/v1/sitemap/status")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "absent"
        assert body["rebuild_pending"] is False

    def test_status_reports_pending_rebuild(self, client):
        client.post("/api/v1/sitemap/rebuild")

        assert client.get("/api/v1/sitemap/status").json()["rebuild_pending"] is True

    def test_serves_generated_sitemap(self, client, sitemap_file):
        assert client.get("/sitemap.xml").status_code == 404

        sitemap_file.write_header("gen-1", 1)
        sitemap_file.path.write_text(XML_HEADER + XML_FOOTER, encoding="utf-8")

        response = client.get("/sitemap.xml")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<urlset" in response.text


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
