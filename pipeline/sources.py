"""
Build configured fetchers from settings
"""

import base64
from typing import Dict, List, Optional
import httpx
from core.config import Settings
from models.base import SourceType
from pipeline.base import SourceFetcher
from pipeline.fetchers.hr import HRFetcher
from pipeline.fetchers.time_tracking import TimeTrackingFetcher
from pipeline.fetchers.tracker import TrackerFetcher
from pipeline.http import APIClient
import logging

logger = logging.getLogger(__name__)


def _api_client(client: httpx.AsyncClient, settings: Settings, source: SourceType, headers: Dict[str, str]) -> APIClient:
    return APIClient(
        client,
        source_name=source.value,
        headers=headers,
        max_retries=settings.HTTP_MAX_RETRIES,
        retry_delay=settings.HTTP_RETRY_DELAY_SECONDS,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


_REQUIRED_SETTINGS = {
    SourceType.TRACKER: ("TRACKER_API_TOKEN", "TRACKER_TEAM_ID"),
    SourceType.TIME_TRACKING: ("TIME_TRACKING_API_KEY", "TIME_TRACKING_WORKSPACE_ID"),
    SourceType.HR: ("HR_API_KEY", "HR_COMPANY"),
}


def is_configured(source: SourceType, settings: Settings) -> bool:
    return all(getattr(settings, name) for name in _REQUIRED_SETTINGS[source])


def configured_sources(settings: Settings) -> List[SourceType]:
    """Enabled sources that have credentials, in ENABLED_SOURCES order"""
    sources = []
    for name in settings.ENABLED_SOURCES:
        source = SourceType(name)
        if is_configured(source, settings):
            sources.append(source)
        else:
            logger.warning(f"Source {source.value} is enabled but not configured; skipping")
    return sources


def build_fetcher(source: SourceType, settings: Settings, client: httpx.AsyncClient) -> Optional[SourceFetcher]:
    """
    Create the fetcher for one source.

    Returns None when the source's credentials or scope are not configured.
    """
    if not is_configured(source, settings):
        return None

    if source == SourceType.TRACKER:
        api = _api_client(client, settings, source, {"Authorization": settings.TRACKER_API_TOKEN})
        return TrackerFetcher(
            api,
            team_id=settings.TRACKER_TEAM_ID,
            api_url=settings.TRACKER_API_URL,
            max_concurrency=settings.MEMBER_FETCH_CONCURRENCY,
        )

    if source == SourceType.TIME_TRACKING:
        api = _api_client(client, settings, source, {"X-Api-Key": settings.TIME_TRACKING_API_KEY})
        return TimeTrackingFetcher(
            api,
            workspace_id=settings.TIME_TRACKING_WORKSPACE_ID,
            reports_url=settings.TIME_TRACKING_REPORTS_URL,
            page_size=settings.TIME_TRACKING_PAGE_SIZE,
            max_pages=settings.MAX_PAGES,
        )

    if source == SourceType.HR:
        # API key as the Basic auth user, any password
        token = base64.b64encode(f"{settings.HR_API_KEY}:x".encode()).decode()
        api = _api_client(client, settings, source, {
            "Authorization": f"Basic {token}",
            "Accept": "application/json",
        })
        return HRFetcher(api, company=settings.HR_COMPANY, api_url=settings.HR_API_URL)

    raise ValueError(f"Unknown source: {source}")


def build_fetchers(settings: Settings, client: httpx.AsyncClient) -> List[SourceFetcher]:
    """Fetchers for every enabled source that has credentials"""
    return [build_fetcher(source, settings, client) for source in configured_sources(settings)]
