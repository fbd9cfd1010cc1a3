"""
Time-tracking source: paginated detailed report for one workspace
"""

from typing import Any, Dict, List
from models.base import SourceType
from pipeline.base import SourceFetcher, expect_json
from pipeline.http import APIClient
from pipeline.run_context import SyncRun
from schemas.records import FetchResult, RecordKind, SourceRecord
from schemas.sync import IngestionWindow
import logging

logger = logging.getLogger(__name__)


class TimeTrackingFetcher(SourceFetcher):
    """
    Fetch time entries from the detailed report endpoint.

    The report is requested page by page with POST bodies carrying the
    window and a fixed page size; pagination ends on the first short page.
    """

    source_type = SourceType.TIME_TRACKING
    tables = ("time_tracking_entries",)

    def __init__(
        self,
        api: APIClient,
        workspace_id: str,
        reports_url: str = "https://reports.api.clockify.me/v1",
        page_size: int = 1000,
        max_pages: int = 50
    ):
        super().__init__(api=api, scope_key=workspace_id)
        self.workspace_id = workspace_id
        self.report_url = f"{reports_url.rstrip('/')}/workspaces/{workspace_id}/reports/detailed"
        self.page_size = page_size
        self.max_pages = max_pages

    async def fetch(self, window: IngestionWindow, run: SyncRun) -> FetchResult:
        async def fetch_page(page: int) -> List[Dict[str, Any]]:
            body = {
                "dateRangeStart": window.start_iso,
                "dateRangeEnd": window.end_iso,
                "exportType": "JSON",
                "detailedFilter": {
                    "page": page,
                    "pageSize": self.page_size,
                },
            }
            data = expect_json(await self.api.post_json(self.report_url, body), dict, self.report_url)
            entries = expect_json(data.get("timeentries") or [], list, self.report_url)
            return [e for e in entries if isinstance(e, dict)]

        entries = await self.paginate(run, fetch_page, self.page_size, self.max_pages)

        return FetchResult(
            records=[SourceRecord(kind=RecordKind.TIME_TRACKING_ENTRY, payload=e) for e in entries]
        )
