"""
Lookup maps used to resolve display names during normalization.

Lookups are enrichment only: a failed lookup call is recorded as a warning
and never affects fetch completeness.
"""

from typing import Any, Dict, Iterable
from core.exceptions import SyncException
from pipeline.base import expect_json
from pipeline.http import APIClient
from pipeline.run_context import SyncRun
import logging

logger = logging.getLogger(__name__)


class LookupBuilder:
    """Build id -> name maps for one run"""

    def __init__(self, api: APIClient, api_url: str):
        self.api = api
        self.api_url = api_url.rstrip("/")

    async def tracker_hierarchy(self, team_id: str, run: SyncRun) -> Dict[str, Dict[str, str]]:
        """
        Resolve tracker spaces and folders.

        Returns:
            {"spaces": {space_id: name}, "folders": {folder_id: name}}; either
            map may be partial or empty when lookups fail.
        """
        spaces: Dict[str, str] = {}
        folders: Dict[str, str] = {}

        url = f"{self.api_url}/team/{team_id}/space"
        try:
            data = expect_json(await self.api.get_json(url, params={"archived": "false"}), dict, url)
            space_items = expect_json(data.get("spaces") or [], list, url)
        except SyncException as e:
            self._warn(run, "space_fetch_warning", e, {"team_id": team_id})
            return {"spaces": spaces, "folders": folders}

        for space in space_items:
            if not isinstance(space, dict) or not space.get("id"):
                continue
            space_id = str(space["id"])
            spaces[space_id] = space.get("name")

            url = f"{self.api_url}/space/{space_id}/folder"
            try:
                folder_data = expect_json(await self.api.get_json(url, params={"archived": "false"}), dict, url)
                folder_items = expect_json(folder_data.get("folders") or [], list, url)
            except SyncException as e:
                self._warn(run, "folder_fetch_warning", e, {"space_id": space_id, "space_name": space.get("name")})
                continue

            for folder in folder_items:
                if isinstance(folder, dict) and folder.get("id"):
                    folders[str(folder["id"])] = folder.get("name")

        logger.info(f"Loaded {len(spaces)} spaces and {len(folders)} folders for team {team_id}")
        return {"spaces": spaces, "folders": folders}

    @staticmethod
    def _warn(run: SyncRun, error_type: str, error: SyncException, context: Dict[str, Any]):
        if "received" in error.context:
            context["received"] = error.context["received"]
        run.record_error(error_type, context=context, message=error.message, critical=False)

    @staticmethod
    def employee_directory(employees: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """
        Map employee id -> {"name", "email"} from directory payloads.

        Returns:
            {"employees": {...}} ready to merge into a FetchResult's lookups
        """
        lookup: Dict[str, Any] = {}
        for emp in employees:
            emp_id = emp.get("id")
            if emp_id is None or emp_id == "":
                continue
            name = emp.get("displayName") or " ".join(
                part for part in (emp.get("firstName"), emp.get("lastName")) if part
            )
            lookup[str(emp_id)] = {
                "name": name or None,
                "email": emp.get("workEmail"),
            }
        return {"employees": lookup}
