"""
Magenta TV upstream client

Bootstraps a short-lived session from the provider landing page and fetches
the channel list and schedule windows. No retries: a single failed request
aborts the caller's run.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import date

import httpx

from magenta_epg.exceptions import ConfigExtractionError, UpstreamRequestError
from magenta_epg.services.schedule_types import UpstreamSession


logger = logging.getLogger(__name__)

LANDING_PAGE_URL = "https://tv.magenta.at/epg"
CHANNEL_LIST_URL = "https://tv-at-prod.yo-digital.com/at-bifrost/epg/channel"
SCHEDULE_URL = "https://tv-at-prod.yo-digital.com/at-bifrost/epg/channel/schedules/v2"

LOCALE_QUERY = {
    "app_language": "de",
    "natco_code": "at",
}
HOUR_RANGE = 3

USER_AGENT = "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/114.0"
CLIENT_ID_HEADER = "web|web|Firefox-114|02.0.660|1"

APP_CONSTANTS_PATTERN = re.compile(r'window\.APP_CONSTANTS = (?P<config>\{".*"\})')


def extract_session(html: str) -> UpstreamSession:
    """
    Extract the session context from the landing page HTML.

    The page assigns a JSON object to ``window.APP_CONSTANTS``; only the API
    key, app version and device id are kept.

    Raises:
        ConfigExtractionError: If the assignment is missing or incomplete
    """
    match = APP_CONSTANTS_PATTERN.search(html)
    if not match:
        raise ConfigExtractionError("Could not extract API key from Magenta website")

    try:
        constants = json.loads(match.group("config"))
    except json.JSONDecodeError as exc:
        raise ConfigExtractionError(f"Embedded app configuration is not valid JSON: {exc}") from exc

    try:
        return UpstreamSession(
            api_key=str(constants["CMS_CONFIGURATION_API_KEY"]),
            app_version=str(constants["APP_VERSION"]),
            device_id=str(constants["DEVICE_ID"]),
        )
    except (KeyError, TypeError) as exc:
        raise ConfigExtractionError(f"Embedded app configuration lacks {exc}") from exc


def schedule_query(channel_id: str, day: date, hour_offset: int) -> dict[str, str]:
    """Query parameters of one schedule window request, in wire order."""
    return {
        **LOCALE_QUERY,
        "date": day.isoformat(),
        "hour_offset": str(hour_offset),
        "hour_range": str(HOUR_RANGE),
        "station_ids": channel_id,
    }


class MagentaClient:
    """
    Authenticated HTTP fetcher for the Magenta EPG API.

    Use as an async context manager; one instance serves one regeneration run.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "User-Agent": USER_AGENT,
                "X-User-Agent": CLIENT_ID_HEADER,
            },
            follow_redirects=True,
        )
        self.session: UpstreamSession | None = None

    async def __aenter__(self) -> MagentaClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _session_headers(self) -> dict[str, str]:
        if self.session is None:
            raise RuntimeError("Upstream session not bootstrapped")
        return {
            "app_key": self.session.api_key,
            "app_version": self.session.app_version,
            "Device-Id": self.session.device_id,
        }

    async def _get(self, url: str, *, params: dict[str, str] | None = None, headers: dict[str, str] | None = None) -> httpx.Response:
        logger.debug("Loading infos from URL %s params=%s", url, params)
        try:
            response = await self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamRequestError(
                f"HTTP {exc.response.status_code} from {exc.request.url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamRequestError(f"Request to {url} failed: {type(exc).__name__}: {exc}") from exc

        if not response.content:
            raise UpstreamRequestError(f"Empty response from {response.request.url}")
        return response

    async def bootstrap_session(self) -> UpstreamSession:
        """Scrape the landing page and keep the session for every following request."""
        response = await self._get(LANDING_PAGE_URL)
        self.session = extract_session(response.text)
        logger.info("Bootstrapped upstream session (app version %s)", self.session.app_version)
        return self.session

    async def fetch_channel_list(self) -> bytes:
        response = await self._get(CHANNEL_LIST_URL, params=dict(LOCALE_QUERY), headers=self._session_headers())
        return response.content

    async def fetch_schedule_window(self, channel_id: str, day: date, hour_offset: int) -> bytes:
        response = await self._get(
            SCHEDULE_URL,
            params=schedule_query(channel_id, day, hour_offset),
            headers=self._session_headers(),
        )
        return response.content
