"""
Tests for the Magenta upstream client.
"""
from datetime import date

import httpx
import pytest

from magenta_epg.exceptions import ConfigExtractionError, UpstreamRequestError
from magenta_epg.services.upstream_client import (
    CLIENT_ID_HEADER,
    USER_AGENT,
    MagentaClient,
    extract_session,
)

from conftest import LANDING_HTML, FakeUpstream


class TestExtractSession:
    """Test scraping of the embedded app configuration."""

    def test_extracts_session_fields(self):
        session = extract_session(LANDING_HTML)

        assert session.api_key == "key-123"
        assert session.app_version == "02.0.660"
        assert session.device_id == "device-abc"

    def test_missing_assignment(self):
        with pytest.raises(ConfigExtractionError):
            extract_session("<html><script>var x = 1;</script></html>")

    def test_missing_key(self):
        html = 'window.APP_CONSTANTS = {"APP_VERSION":"1","DEVICE_ID":"d"}'
        with pytest.raises(ConfigExtractionError):
            extract_session(html)

    def test_invalid_json(self):
        html = 'window.APP_CONSTANTS = {"APP_VERSION":"1", broken "}'
        with pytest.raises(ConfigExtractionError):
            extract_session(html)


class TestMagentaClient:
    """Test request construction and failure handling."""

    async def test_every_request_carries_session_headers(self):
        upstream = FakeUpstream()
        async with upstream.client_factory() as client:
            await client.bootstrap_session()
            await client.fetch_channel_list()
            await client.fetch_schedule_window("14", date(2024, 1, 1), 0)
            await client.fetch_schedule_window("14", date(2024, 1, 1), 3)

        api_requests = upstream.requests[1:]
        assert len(api_requests) == 3
        for request in api_requests:
            assert request.headers["app_key"] == "key-123"
            assert request.headers["app_version"] == "02.0.660"
            assert request.headers["Device-Id"] == "device-abc"
            assert request.headers["User-Agent"] == USER_AGENT
            assert request.headers["X-User-Agent"] == CLIENT_ID_HEADER

    async def test_channel_list_url(self):
        upstream = FakeUpstream()
        async with upstream.client_factory() as client:
            await client.bootstrap_session()
            await client.fetch_channel_list()

        assert str(upstream.channel_requests[0].url) == (
            "https://tv-at-prod.yo-digital.com/at-bifrost/epg/channel?app_language=de&natco_code=at"
        )

    async def test_schedule_window_url(self):
        upstream = FakeUpstream()
        async with upstream.client_factory() as client:
            await client.bootstrap_session()
            await client.fetch_schedule_window("14", date(2024, 1, 2), 21)

        assert str(upstream.schedule_requests[0].url) == (
            "https://tv-at-prod.yo-digital.com/at-bifrost/epg/channel/schedules/v2"
            "?app_language=de&natco_code=at&date=2024-01-02&hour_offset=21&hour_range=3&station_ids=14"
        )

    async def test_fetch_without_session_is_rejected(self):
        async with FakeUpstream().client_factory() as client:
            with pytest.raises(RuntimeError):
                await client.fetch_channel_list()

    async def test_landing_page_without_config(self):
        upstream = FakeUpstream(landing_html="<html></html>")
        async with upstream.client_factory() as client:
            with pytest.raises(ConfigExtractionError):
                await client.bootstrap_session()

    async def test_empty_body(self):
        upstream = FakeUpstream(channels=b"")
        async with upstream.client_factory() as client:
            await client.bootstrap_session()
            with pytest.raises(UpstreamRequestError):
                await client.fetch_channel_list()

    async def test_transport_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = MagentaClient(transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(UpstreamRequestError):
                await client.bootstrap_session()
        finally:
            await client.aclose()

        assert len(calls) == 1

    async def test_server_error(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        client = MagentaClient(transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(UpstreamRequestError):
                await client.bootstrap_session()
        finally:
            await client.aclose()
