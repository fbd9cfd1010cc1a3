"""
Unit tests for source fetchers
"""

import json
import pytest
import httpx
from models.base import SourceType
from pipeline.fetchers.hr import HRFetcher
from pipeline.fetchers.time_tracking import TimeTrackingFetcher
from pipeline.fetchers.tracker import TrackerFetcher
from schemas.records import RecordKind

TRACKER_URL = "https://tracker.test/api/v2"
REPORTS_URL = "https://reports.test/v1"
HR_URL = "https://hr.test/api/gateway.php"


def _entries(prefix, count):
    return [{"_id": f"{prefix}_{i}", "timeInterval": {"start": "2026-03-02T09:00:00Z", "duration": 600}} for i in range(count)]


class TestTimeTrackingFetcher:

    @pytest.mark.asyncio
    async def test_three_pages_ending_short(self, http_client_factory, make_run, window):
        pages = {1: _entries("a", 2), 2: _entries("b", 2), 3: _entries("c", 1)}
        requested = []

        def handler(request):
            body = json.loads(request.content)
            page = body["detailedFilter"]["page"]
            requested.append(page)
            assert body["detailedFilter"]["pageSize"] == 2
            assert body["dateRangeStart"] == "2026-02-01T00:00:00.000Z"
            assert body["dateRangeEnd"] == "2026-03-31T23:59:59.999Z"
            return httpx.Response(200, json={"timeentries": pages[page]})

        fetcher = TimeTrackingFetcher(http_client_factory(handler), "ws_1", REPORTS_URL, page_size=2, max_pages=50)
        run = make_run(SourceType.TIME_TRACKING, "ws_1")

        result = await fetcher.fetch(window, run)

        assert requested == [1, 2, 3]
        assert len(result.records) == 5
        assert all(r.kind == RecordKind.TIME_TRACKING_ENTRY for r in result.records)
        assert run.fetch_complete is True
        assert not any(e.type == "safety_limit" for e in run.errors)

    @pytest.mark.asyncio
    async def test_empty_first_page(self, http_client_factory, make_run, window):
        fetcher = TimeTrackingFetcher(
            http_client_factory(lambda r: httpx.Response(200, json={"timeentries": []})),
            "ws_1", REPORTS_URL, page_size=2
        )
        run = make_run()

        result = await fetcher.fetch(window, run)

        assert result.records == []
        assert run.fetch_complete is True

    @pytest.mark.asyncio
    async def test_safety_limit(self, http_client_factory, make_run, window):
        requested = []

        def handler(request):
            requested.append(json.loads(request.content)["detailedFilter"]["page"])
            return httpx.Response(200, json={"timeentries": _entries(f"p{len(requested)}", 2)})

        fetcher = TimeTrackingFetcher(http_client_factory(handler), "ws_1", REPORTS_URL, page_size=2, max_pages=3)
        run = make_run()

        result = await fetcher.fetch(window, run)

        assert requested == [1, 2, 3]
        assert len(result.records) == 6
        assert run.fetch_complete is False
        assert [e.type for e in run.errors] == ["safety_limit"]
        assert run.errors[0].critical is True

    @pytest.mark.asyncio
    async def test_page_failure_stops_pagination(self, http_client_factory, make_run, window):
        def handler(request):
            page = json.loads(request.content)["detailedFilter"]["page"]
            if page == 2:
                return httpx.Response(500)
            return httpx.Response(200, json={"timeentries": _entries("a", 2)})

        fetcher = TimeTrackingFetcher(http_client_factory(handler), "ws_1", REPORTS_URL, page_size=2)
        run = make_run()

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 2
        assert run.fetch_complete is False
        assert run.errors[0].type == "page_fetch_error"
        assert run.errors[0].context["page"] == 2
        assert run.errors[0].context["status_code"] == 500

    @pytest.mark.asyncio
    async def test_malformed_page_is_not_an_empty_page(self, http_client_factory, make_run, window):
        def handler(request):
            page = json.loads(request.content)["detailedFilter"]["page"]
            if page == 2:
                return httpx.Response(200, json={"timeentries": "none"})
            return httpx.Response(200, json={"timeentries": _entries("a", 2)})

        fetcher = TimeTrackingFetcher(http_client_factory(handler), "ws_1", REPORTS_URL, page_size=2)
        run = make_run()

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 2
        assert run.fetch_complete is False
        assert [e.type for e in run.errors] == ["page_fetch_error"]
        assert run.errors[0].context["page"] == 2
        assert run.errors[0].context["received"] == "string"


def _tracker_handler(
    failing_members=(),
    malformed_members=(),
    failing_folders=(),
    malformed_folders=(),
    space_status=200,
    space_body=None,
    team_status=200,
    teams=None
):
    if teams is None:
        teams = [{"id": "team_1", "members": [{"user": {"id": 1}}, {"user": {"id": 2}}, {"user": {"id": 3}}]}]

    def handler(request: httpx.Request):
        path = request.url.path.replace("/api/v2", "")
        if path == "/team":
            if team_status != 200:
                return httpx.Response(team_status)
            return httpx.Response(200, json={"teams": teams})
        if path == "/team/team_1/space":
            if space_status != 200:
                return httpx.Response(space_status)
            if space_body is not None:
                return httpx.Response(200, json=space_body)
            return httpx.Response(200, json={"spaces": [{"id": "sp_1", "name": "Acme"}, {"id": "sp_2", "name": "Beta"}]})
        if path.startswith("/space/"):
            space_id = path.split("/")[2]
            if space_id in failing_folders:
                return httpx.Response(500)
            if space_id in malformed_folders:
                return httpx.Response(200, json={"folders": "none"})
            return httpx.Response(200, json={"folders": [{"id": f"fd_{space_id}", "name": f"Folder {space_id}"}]})
        if path == "/team/team_1/time_entries":
            assignee = request.url.params["assignee"]
            assert request.url.params["start_date"].isdigit()
            if assignee in failing_members:
                return httpx.Response(502)
            if assignee in malformed_members:
                return httpx.Response(200, json=["unexpected"])
            return httpx.Response(200, json={"data": [
                {"id": f"te_{assignee}", "start": "1772442000000", "duration": "3600000", "user": {"id": assignee}}
            ]})
        return httpx.Response(404)

    return handler


class TestTrackerFetcher:

    @pytest.mark.asyncio
    async def test_fetches_all_members(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler()), "team_1", TRACKER_URL, max_concurrency=2)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert sorted(r.payload["id"] for r in result.records) == ["te_1", "te_2", "te_3"]
        assert result.lookups["spaces"] == {"sp_1": "Acme", "sp_2": "Beta"}
        assert result.lookups["folders"] == {"fd_sp_1": "Folder sp_1", "fd_sp_2": "Folder sp_2"}
        assert run.fetch_complete is True
        assert run.errors == []

    @pytest.mark.asyncio
    async def test_member_failure_is_isolated(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler(failing_members={"2"})), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert sorted(r.payload["id"] for r in result.records) == ["te_1", "te_3"]
        assert run.fetch_complete is False
        assert [e.type for e in run.errors] == ["member_fetch_error"]
        assert run.errors[0].context["user_id"] == "2"

    @pytest.mark.asyncio
    async def test_folder_failure_is_a_warning(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler(failing_folders={"sp_2"})), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 3
        assert run.fetch_complete is True
        assert run.errors[0].type == "folder_fetch_warning"
        assert run.errors[0].critical is False
        assert run.errors[0].context["space_id"] == "sp_2"
        assert run.errors[0].context["space_name"] == "Beta"
        assert "fd_sp_2" not in result.lookups["folders"]

    @pytest.mark.asyncio
    async def test_malformed_member_body_is_isolated(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler(malformed_members={"2"})), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert sorted(r.payload["id"] for r in result.records) == ["te_1", "te_3"]
        assert result.aborted is False
        assert run.fetch_complete is False
        assert [e.type for e in run.errors] == ["member_fetch_error"]
        assert run.errors[0].critical is True
        assert run.errors[0].context["user_id"] == "2"
        assert run.errors[0].context["received"] == "array"

    @pytest.mark.asyncio
    async def test_space_failure_is_a_warning(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler(space_status=500)), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 3
        assert result.lookups == {"spaces": {}, "folders": {}}
        assert run.fetch_complete is True
        assert [e.type for e in run.errors] == ["space_fetch_warning"]
        assert run.errors[0].critical is False
        assert run.errors[0].context["team_id"] == "team_1"

    @pytest.mark.asyncio
    async def test_malformed_space_body_is_a_warning(self, http_client_factory, make_run, window):
        handler = _tracker_handler(space_body=["unexpected"])
        fetcher = TrackerFetcher(http_client_factory(handler), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 3
        assert run.fetch_complete is True
        assert [e.type for e in run.errors] == ["space_fetch_warning"]
        assert run.errors[0].critical is False
        assert run.errors[0].context["received"] == "array"

    @pytest.mark.asyncio
    async def test_malformed_space_and_folder_items_are_skipped(self, http_client_factory, make_run, window):
        handler = _tracker_handler(
            space_body={"spaces": ["junk", {"id": "sp_1", "name": "Acme"}, {"id": "sp_2", "name": "Beta"}]},
            malformed_folders={"sp_2"}
        )
        fetcher = TrackerFetcher(http_client_factory(handler), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert len(result.records) == 3
        assert result.lookups["spaces"] == {"sp_1": "Acme", "sp_2": "Beta"}
        assert result.lookups["folders"] == {"fd_sp_1": "Folder sp_1"}
        assert run.fetch_complete is True
        assert [e.type for e in run.errors] == ["folder_fetch_warning"]
        assert run.errors[0].critical is False
        assert run.errors[0].context["space_id"] == "sp_2"

    @pytest.mark.asyncio
    async def test_team_failure_aborts(self, http_client_factory, make_run, window):
        fetcher = TrackerFetcher(http_client_factory(_tracker_handler(team_status=401)), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert result.aborted is True
        assert result.records == []
        assert run.fetch_complete is False
        assert run.errors[0].type == "team_fetch_error"
        assert run.errors[0].context["status_code"] == 401

    @pytest.mark.asyncio
    async def test_unknown_team_aborts(self, http_client_factory, make_run, window):
        handler = _tracker_handler(teams=[{"id": "other", "members": []}])
        fetcher = TrackerFetcher(http_client_factory(handler), "team_1", TRACKER_URL)
        run = make_run(SourceType.TRACKER, "team_1")

        result = await fetcher.fetch(window, run)

        assert result.aborted is True
        assert run.errors[0].type == "team_not_found"


def _hr_handler(directory_status=200, time_off_status=200):
    def handler(request: httpx.Request):
        path = request.url.path
        if path.endswith("/acme/v1/employees/directory"):
            if directory_status != 200:
                return httpx.Response(directory_status)
            return httpx.Response(200, json={"employees": [
                {"id": "101", "displayName": "Katherine Johnson", "workEmail": "kj@example.com"},
                {"id": "102", "firstName": "Dorothy", "lastName": "Vaughan"},
            ]})
        if path.endswith("/acme/v1/time_off/requests"):
            if time_off_status != 200:
                return httpx.Response(time_off_status)
            assert request.url.params["start"] == "2026-02-01"
            assert request.url.params["end"] == "2026-03-31"
            return httpx.Response(200, json=[{"id": "9001", "employeeId": "101", "start": "2026-03-09"}])
        return httpx.Response(404)

    return handler


class TestHRFetcher:

    @pytest.mark.asyncio
    async def test_directory_and_time_off(self, http_client_factory, make_run, window):
        fetcher = HRFetcher(http_client_factory(_hr_handler()), "acme", HR_URL)
        run = make_run(SourceType.HR, "acme")

        result = await fetcher.fetch(window, run)

        assert result.count_by_kind() == {"hr_employee": 2, "hr_time_off": 1}
        assert result.lookups["employees"]["101"] == {"name": "Katherine Johnson", "email": "kj@example.com"}
        assert result.lookups["employees"]["102"]["name"] == "Dorothy Vaughan"
        assert run.fetch_complete is True

    @pytest.mark.asyncio
    async def test_directory_failure(self, http_client_factory, make_run, window):
        fetcher = HRFetcher(http_client_factory(_hr_handler(directory_status=500)), "acme", HR_URL)
        run = make_run(SourceType.HR, "acme")

        result = await fetcher.fetch(window, run)

        assert result.count_by_kind() == {"hr_time_off": 1}
        assert run.fetch_complete is False
        assert run.errors[0].type == "employee_directory_error"

    @pytest.mark.asyncio
    async def test_time_off_failure(self, http_client_factory, make_run, window):
        fetcher = HRFetcher(http_client_factory(_hr_handler(time_off_status=403)), "acme", HR_URL)
        run = make_run(SourceType.HR, "acme")

        result = await fetcher.fetch(window, run)

        assert result.count_by_kind() == {"hr_employee": 2}
        assert run.fetch_complete is False
        assert run.errors[0].type == "time_off_error"

    @pytest.mark.asyncio
    async def test_malformed_bodies_are_fetch_errors(self, http_client_factory, make_run, window):
        def handler(request: httpx.Request):
            if request.url.path.endswith("/employees/directory"):
                return httpx.Response(200, json=["unexpected"])
            return httpx.Response(200, json={"requests": []})

        fetcher = HRFetcher(http_client_factory(handler), "acme", HR_URL)
        run = make_run(SourceType.HR, "acme")

        result = await fetcher.fetch(window, run)

        assert result.records == []
        assert run.fetch_complete is False
        assert [e.type for e in run.errors] == ["employee_directory_error", "time_off_error"]
        assert [e.context["received"] for e in run.errors] == ["array", "object"]
