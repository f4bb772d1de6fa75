"""
Shared fixtures: isolated settings, the cache database and a fake Magenta upstream.
"""
import json
import os
import tempfile
from datetime import timedelta

os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="magenta-epg-test-"))
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest

from magenta_epg.database import close_db, init_db
from magenta_epg.services.cache_service import ResponseCache
from magenta_epg.services.channel_remapper import load_channel_id_map
from magenta_epg.services.regeneration_service import RegenerationController
from magenta_epg.services.upstream_client import MagentaClient
from magenta_epg.config import DEFAULT_CHANNEL_ID_MAP_PATH


LANDING_HTML = """<!DOCTYPE html>
<html><head>
<script>
window.APP_CONSTANTS = {"CMS_CONFIGURATION_API_KEY":"key-123","APP_VERSION":"02.0.660","DEVICE_ID":"device-abc","ENV":"prod"}
</script>
</head><body></body></html>
"""

CHANNELS_PAYLOAD = {
    "channels": [
        {"station_id": "14", "channel_logo": "http://x/icon.png", "title": "ORF 1"},
    ]
}

WINDOW_PAYLOAD = {
    "channels": {
        "14": [
            {
                "start_time": "2024-01-01T20:00:00Z",
                "end_time": "2024-01-01T21:00:00Z",
                "description": "News",
                "release_year": 0,
                "genres": [{"name": "News"}],
            }
        ]
    }
}

EMPTY_WINDOW_PAYLOAD = {"channels": {}}


class FakeUpstream:
    """httpx.MockTransport handler imitating the Magenta landing page and EPG API."""

    def __init__(self, channels=None, window=None, landing_html=LANDING_HTML):
        self.channels = CHANNELS_PAYLOAD if channels is None else channels
        # window(station_id, date, hour_offset) -> payload; default serves one programme at 20:00 UTC on 2024-01-01
        self.window = window or self.default_window
        self.landing_html = landing_html
        self.requests: list[httpx.Request] = []

    @staticmethod
    def default_window(station_id: str, day: str, hour_offset: str):
        if station_id == "14" and day == "2024-01-01" and hour_offset == "21":
            return WINDOW_PAYLOAD
        return EMPTY_WINDOW_PAYLOAD

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "tv.magenta.at":
            return httpx.Response(200, text=self.landing_html)
        if request.url.path.endswith("/epg/channel"):
            return _json_response(self.channels)
        if request.url.path.endswith("/epg/channel/schedules/v2"):
            params = request.url.params
            return _json_response(self.window(params["station_ids"], params["date"], params["hour_offset"]))
        return httpx.Response(404)

    def client_factory(self) -> MagentaClient:
        return MagentaClient(transport=httpx.MockTransport(self.handler))

    @property
    def schedule_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/schedules/v2")]

    @property
    def channel_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/epg/channel")]


def _json_response(payload) -> httpx.Response:
    if isinstance(payload, (bytes, str)):
        return httpx.Response(200, content=payload)
    return httpx.Response(200, content=json.dumps(payload).encode("utf-8"))


class MemoryCache(ResponseCache):
    """In-process cache for tests that do not exercise the cache database."""

    def __init__(self, ttl: timedelta = timedelta(hours=48)):
        super().__init__(ttl)
        self.entries: dict[str, bytes] = {}

    async def get(self, key, *, now=None):
        return self.entries.get(key)

    async def set(self, key, payload, *, now=None):
        self.entries[key] = payload

    async def purge_expired(self, *, now=None):
        return 0


@pytest.fixture
async def cache_db(tmp_path):
    await init_db(tmp_path / "cache" / "cache.db")
    yield
    await close_db()


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def channel_id_map():
    return load_channel_id_map(DEFAULT_CHANNEL_ID_MAP_PATH)


@pytest.fixture
def make_controller(tmp_path):
    def _make(upstream, cache=None, **kwargs):
        kwargs.setdefault("max_concurrency", 4)
        return RegenerationController(
            tmp_path / "feed",
            cache if cache is not None else MemoryCache(),
            upstream.client_factory,
            **kwargs,
        )

    (tmp_path / "feed").mkdir()
    return _make
