"""
Tracker source: per-member time entries for one team
"""

import asyncio
from typing import Any, Dict, List, Optional
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


class TrackerFetcher(SourceFetcher):
    """
    Fetch time entries from the task tracker.

    Call sequence:
    1. GET /team (required entry point; failure aborts the run)
    2. Space/folder lookups (enrichment; failures are warnings)
    3. GET /team/{id}/time_entries once per member, concurrently up to
       max_concurrency; each failure is critical but siblings still run
    """

    source_type = SourceType.TRACKER
    tables = ("tracker_entries",)

    def __init__(
        self,
        api: APIClient,
        team_id: str,
        api_url: str = "https://api.clickup.com/api/v2",
        max_concurrency: int = 4
    ):
        super().__init__(api=api, scope_key=team_id)
        self.team_id = str(team_id)
        self.api_url = api_url.rstrip("/")
        self.max_concurrency = max(1, max_concurrency)
        self.lookup_builder = LookupBuilder(api, self.api_url)

    async def fetch(self, window: IngestionWindow, run: SyncRun) -> FetchResult:
        url = f"{self.api_url}/team"
        try:
            team_data = expect_json(await self.api.get_json(url), dict, url)
        except SyncException as e:
            self.record_failure(run, "team_fetch_error", e, context={"team_id": self.team_id})
            return FetchResult(aborted=True)

        member_ids = self._member_ids(team_data)
        if member_ids is None:
            run.record_error(
                "team_not_found",
                context={"team_id": self.team_id},
                message=f"Team {self.team_id} is not visible to the configured token",
                critical=True
            )
            return FetchResult(aborted=True)

        lookups = await self.lookup_builder.tracker_hierarchy(self.team_id, run)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._fetch_member(user_id, window, run, semaphore) for user_id in member_ids)
        )

        entries = [entry for member_entries in results if member_entries for entry in member_entries]
        failed = sum(1 for r in results if r is None)

        logger.info(
            f"Tracker team {self.team_id}: {len(entries)} entries from "
            f"{len(member_ids) - failed}/{len(member_ids)} members"
        )

        return FetchResult(
            records=[SourceRecord(kind=RecordKind.TRACKER_TIME_ENTRY, payload=e) for e in entries],
            lookups=lookups
        )

    def _member_ids(self, team_data: Any):
        teams = team_data.get("teams")
        for team in teams if isinstance(teams, list) else []:
            if not isinstance(team, dict) or str(team.get("id")) != self.team_id:
                continue
            ids = []
            members = team.get("members")
            for member in members if isinstance(members, list) else []:
                user = member.get("user") if isinstance(member, dict) else None
                user_id = user.get("id") if isinstance(user, dict) else None
                if user_id is not None:
                    ids.append(str(user_id))
            return ids
        return None

    async def _fetch_member(
        self,
        user_id: str,
        window: IngestionWindow,
        run: SyncRun,
        semaphore: asyncio.Semaphore
    ) -> Optional[List[Dict[str, Any]]]:
        url = f"{self.api_url}/team/{self.team_id}/time_entries"
        async with semaphore:
            try:
                data = await self.api.get_json(
                    url,
                    params={
                        "start_date": window.start_ms,
                        "end_date": window.end_ms,
                        "assignee": user_id,
                    }
                )
                data = expect_json(data, dict, url)
                entries = expect_json(data.get("data") or [], list, url)
            except SyncException as e:
                self.record_failure(run, "member_fetch_error", e, context={"user_id": user_id})
                return None

        return [e for e in entries if isinstance(e, dict)]
