"""
Tests for the HTTP endpoints.
"""
import gzip

import pytest
from fastapi.testclient import TestClient

from magenta_epg.main import app
from magenta_epg.services.regeneration_service import get_regeneration_controller

from conftest import FakeUpstream


@pytest.fixture
def client_for(make_controller):
    def _client_for(upstream, **kwargs):
        controller = make_controller(upstream, **kwargs)
        app.dependency_overrides[get_regeneration_controller] = lambda: controller
        return TestClient(app), controller

    yield _client_for
    app.dependency_overrides.clear()


class TestFeedEndpoint:

    @pytest.mark.parametrize("path", ["/epg.xml.gz", "/epg"])
    def test_regenerates_and_serves_gzipped_feed(self, client_for, path):
        client, controller = client_for(FakeUpstream())

        response = client.get(path)

        assert response.status_code == 200
        assert response.headers["content-encoding"] == "gzip"
        assert response.headers["content-type"].startswith("application/xml")
        assert int(response.headers["content-length"]) == controller.artifact_path.stat().st_size
        # httpx transparently decodes the gzip body
        assert response.content == gzip.decompress(controller.artifact_path.read_bytes())
        assert b'<channel id="14">' in response.content

    def test_fresh_feed_is_served_without_upstream_calls(self, client_for):
        upstream = FakeUpstream()
        client, controller = client_for(upstream)
        controller.artifact_path.write_bytes(gzip.compress(b"<tv/>"))

        response = client.get("/epg.xml.gz")

        assert response.status_code == 200
        assert response.content == b"<tv/>"
        assert upstream.requests == []

    def test_placeholder_while_first_feed_is_generating(self, client_for):
        client, controller = client_for(FakeUpstream())
        controller.lease_lock.acquire()

        response = client.get("/epg.xml.gz")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "No EPG generated yet."

    def test_failure_is_reported_in_band(self, client_for):
        client, controller = client_for(FakeUpstream(channels={"stations": []}))

        response = client.get("/epg.xml.gz")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text.startswith("Exception: Could not decode channel list")
        assert not controller.lease_lock.is_held()


class TestFetchEndpoint:

    def test_forces_regeneration_of_fresh_feed(self, client_for):
        upstream = FakeUpstream()
        client, controller = client_for(upstream)
        controller.artifact_path.write_bytes(gzip.compress(b"<tv/>"))

        response = client.post("/fetch")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["channels"] == 1
        assert upstream.schedule_requests

    def test_skipped_while_lease_held(self, client_for):
        client, controller = client_for(FakeUpstream())
        controller.lease_lock.acquire()

        response = client.post("/fetch")

        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    def test_failure_returns_500(self, client_for):
        client, _ = client_for(FakeUpstream(landing_html="<html></html>"))

        response = client.post("/fetch")

        assert response.status_code == 500
        assert response.json()["detail"]["error_kind"] == "ConfigExtractionError"


class TestInfoEndpoints:

    def test_root(self, client_for):
        client, controller = client_for(FakeUpstream())

        body = client.get("/").json()

        assert body["service"] == "Magenta EPG Feed"
        assert body["feed_generated_at"] is None
        assert body["regeneration_in_progress"] is False
        assert "/epg.xml.gz" in body["endpoints"]["feed"]

    def test_health(self, client_for):
        client, _ = client_for(FakeUpstream())

        body = client.get("/health").json()

        assert body == {"status": "ok", "scheduler_running": False, "next_check": None}


class TestStorageFailures:

    def test_missing_data_dir_is_reported_in_band(self, client_for):
        client, controller = client_for(FakeUpstream())
        controller.data_dir.rmdir()

        response = client.get("/epg.xml.gz")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text.startswith("Exception: ")
        assert "No such file or directory" in response.text

    def test_missing_data_dir_fails_manual_fetch(self, client_for):
        client, controller = client_for(FakeUpstream())
        controller.data_dir.rmdir()

        response = client.post("/fetch")

        assert response.status_code == 500
        assert response.json()["detail"]["error_kind"] == "FileNotFoundError"
