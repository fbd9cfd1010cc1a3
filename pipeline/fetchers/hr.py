"""
HR source: employee directory and time-off requests for one company
"""

from core.exceptions import SyncException
from models.base import SourceType
from pipeline.base import SourceFetcher, expect_json
from pipeline.http import APIClient
from pipeline.lookups import LookupBuilder
from pipeline.run_context import SyncRun
from schemas.records import FetchResult, RecordKind, SourceRecord
from schemas.sync import IngestionWindow
import logging

logger = logging.getLogger(__name__)


class HRFetcher(SourceFetcher):
    """
    Fetch the employee directory and the window's time-off requests.

    Both calls are required for a complete picture, so either failing is
    critical. The directory also feeds the employee lookup used to name
    time-off rows.
    """

    source_type = SourceType.HR
    tables = ("hr_employees", "hr_time_off")

    def __init__(
        self,
        api: APIClient,
        company: str,
        api_url: str = "https://api.bamboohr.com/api/gateway.php"
    ):
        super().__init__(api=api, scope_key=company)
        self.company = company
        self.base_url = f"{api_url.rstrip('/')}/{company}/v1"

    async def fetch(self, window: IngestionWindow, run: SyncRun) -> FetchResult:
        employees = []
        time_off_requests = []

        url = f"{self.base_url}/employees/directory"
        try:
            data = expect_json(await self.api.get_json(url), dict, url)
            employees = [e for e in expect_json(data.get("employees") or [], list, url) if isinstance(e, dict)]
        except SyncException as e:
            self.record_failure(run, "employee_directory_error", e, context={"company": self.company})

        url = f"{self.base_url}/time_off/requests"
        try:
            data = await self.api.get_json(
                url,
                params={
                    "start": window.start_date.isoformat(),
                    "end": window.end_date.isoformat(),
                }
            )
            # The time-off endpoint returns a bare array
            time_off_requests = [r for r in expect_json(data, list, url) if isinstance(r, dict)]
        except SyncException as e:
            self.record_failure(
                run,
                "time_off_error",
                e,
                context={"company": self.company, "start": window.start_date.isoformat()}
            )

        logger.info(
            f"HR company {self.company}: {len(employees)} employees, "
            f"{len(time_off_requests)} time-off requests"
        )

        records = [SourceRecord(kind=RecordKind.HR_EMPLOYEE, payload=e) for e in employees]
        records.extend(SourceRecord(kind=RecordKind.HR_TIME_OFF, payload=r) for r in time_off_requests)

        return FetchResult(records=records, lookups=LookupBuilder.employee_directory(employees))
