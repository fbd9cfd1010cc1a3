"""
Transform raw source records into normalized rows with Pydantic validation
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from schemas.normalized import (
    NormalizedRow,
    TrackerEntryRow,
    TimeTrackingEntryRow,
    EmployeeRow,
    TimeOffRow,
)
from schemas.records import RecordKind, SourceRecord
import logging

logger = logging.getLogger(__name__)

NO_PROJECT = "No Project"
UNKNOWN = "Unknown"
NO_DESCRIPTION = "(no description)"

ISO_DURATION_RE = re.compile(
    r"^P"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T"
    r"(?:(?P<hours>\d+)H)?"
    r"(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)

# Per-record problems that mean "drop this row", never "stop the run"
_ROW_ERRORS = (ValueError, TypeError, AttributeError, KeyError, OverflowError)


def billable_minutes(seconds: Any) -> Optional[int]:
    """
    Convert elapsed seconds to minutes rounded up to the next 15.

    Returns None for zero, negative or unparsable durations so the caller
    drops the row instead of storing a zero-minute entry.
    """
    if seconds is None or isinstance(seconds, bool):
        return None
    try:
        seconds = float(seconds)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return int(math.ceil(seconds / 60 / 15) * 15)


def parse_iso_duration(value: Optional[str]) -> Optional[float]:
    """PT1H30M -> 5400.0; None when the string is not an ISO-8601 duration"""
    if not value:
        return None
    match = ISO_DURATION_RE.match(value)
    if not match:
        return None
    days = int(match.group("days") or 0)
    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = float(match.group("seconds") or 0)
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string into an aware UTC datetime"""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch_ms(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def _parse_date(value: Any) -> Optional[date]:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class DataNormalizer:
    """
    Normalize raw records from every source into row models.

    Handles:
    - Natural key and anchor date extraction (missing -> row dropped)
    - Duration rounding (up to 15-minute increments)
    - Name resolution: record value, then lookup map, then placeholder
    - Validation through the row schemas

    normalize() is total: malformed records are dropped and never raise.
    """

    def __init__(self, scope_key: str):
        self.scope_key = scope_key
        self._handlers: Dict[RecordKind, Callable[[Dict[str, Any], Dict[str, Dict[str, Any]]], Optional[NormalizedRow]]] = {
            RecordKind.TRACKER_TIME_ENTRY: self._normalize_tracker_entry,
            RecordKind.TIME_TRACKING_ENTRY: self._normalize_time_tracking_entry,
            RecordKind.HR_EMPLOYEE: self._normalize_employee,
            RecordKind.HR_TIME_OFF: self._normalize_time_off,
        }
        missing = set(RecordKind) - set(self._handlers)
        if missing:
            raise NotImplementedError(f"No normalizer for record kinds: {sorted(k.value for k in missing)}")

    def normalize(
        self,
        records: List[SourceRecord],
        lookups: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> List[NormalizedRow]:
        """
        Normalize a batch of raw records.

        Returns:
            Validated rows; records lacking a natural key or anchor date, or
            failing validation, are left out.
        """
        lookups = lookups or {}
        rows: List[NormalizedRow] = []
        dropped = 0

        for record in records:
            try:
                row = self._handlers[record.kind](record.payload, lookups)
            except _ROW_ERRORS as e:
                logger.debug(f"Dropping malformed {record.kind.value} record: {e}")
                row = None

            if row is None:
                dropped += 1
                continue
            rows.append(row)

        if dropped:
            logger.info(f"Normalization dropped {dropped} of {len(records)} records")
        return rows

    def _normalize_tracker_entry(self, e: Dict[str, Any], lookups: Dict[str, Dict[str, Any]]) -> Optional[NormalizedRow]:
        entry_id = _str_or_none(e.get("id"))
        started_at = _from_epoch_ms(e.get("start"))
        if not entry_id or started_at is None:
            return None

        # Duration is milliseconds as a string; negative while a timer runs
        duration_ms = int(float(e.get("duration") or 0))
        minutes = billable_minutes(duration_ms // 1000)
        if minutes is None:
            return None

        task = e.get("task") if isinstance(e.get("task"), dict) else {}
        user = e.get("user") or {}
        location = e.get("task_location") or {}

        space_id = _str_or_none(location.get("space_id"))
        folder_id = _str_or_none(location.get("folder_id"))
        space_name = lookups.get("spaces", {}).get(space_id) if space_id else None
        folder_name = lookups.get("folders", {}).get(folder_id) if folder_id else None

        # Hierarchy: space = client, folder = project (space for folderless lists)
        return TrackerEntryRow(
            natural_key=entry_id,
            scope_key=self.scope_key,
            work_date=started_at.date(),
            subject_id=_str_or_none(user.get("id")),
            subject_name=user.get("username") or UNKNOWN,
            subject_email=user.get("email"),
            container_id=folder_id or space_id,
            container_name=folder_name or space_name or NO_PROJECT,
            client_id=space_id,
            client_name=space_name,
            task_id=_str_or_none(task.get("id")),
            task_name=_text(task.get("name")) or _text(e.get("description")) or NO_DESCRIPTION,
            billable=bool(e.get("billable", False)),
            started_at=started_at,
            ended_at=_from_epoch_ms(e.get("end")),
            quantity=minutes,
        )

    def _normalize_time_tracking_entry(self, e: Dict[str, Any], lookups: Dict[str, Dict[str, Any]]) -> Optional[NormalizedRow]:
        entry_id = _str_or_none(e.get("_id") or e.get("id"))
        interval = e.get("timeInterval") or {}
        started_at = _parse_datetime(interval.get("start"))
        if not entry_id or started_at is None:
            return None

        duration = interval.get("duration")
        if isinstance(duration, str):
            duration = parse_iso_duration(duration)
        minutes = billable_minutes(duration)
        if minutes is None:
            return None

        project_id = _str_or_none(e.get("projectId"))
        return TimeTrackingEntryRow(
            natural_key=entry_id,
            scope_key=self.scope_key,
            work_date=started_at.date(),
            subject_id=_str_or_none(e.get("userId")),
            subject_name=e.get("userName") or UNKNOWN,
            subject_email=e.get("userEmail"),
            container_id=project_id,
            container_name=e.get("projectName") or NO_PROJECT,
            client_id=_str_or_none(e.get("clientId")),
            client_name=e.get("clientName") or None,
            task_id=_str_or_none(e.get("taskId")),
            task_name=_text(e.get("description")) or NO_DESCRIPTION,
            billable=e.get("billable"),
            started_at=started_at,
            ended_at=_parse_datetime(interval.get("end")),
            quantity=minutes,
        )

    def _normalize_employee(self, e: Dict[str, Any], lookups: Dict[str, Dict[str, Any]]) -> Optional[NormalizedRow]:
        employee_id = _str_or_none(e.get("id"))
        if not employee_id:
            return None

        first_name = _text(e.get("firstName"))
        last_name = _text(e.get("lastName"))
        display_name = _text(e.get("displayName")) or " ".join(p for p in (first_name, last_name) if p)

        return EmployeeRow(
            natural_key=employee_id,
            scope_key=self.scope_key,
            subject_id=employee_id,
            subject_name=display_name or UNKNOWN,
            container_id=None,
            container_name=_text(e.get("department")),
            first_name=first_name,
            last_name=last_name,
            work_email=e.get("workEmail"),
            job_title=_text(e.get("jobTitle")),
        )

    def _normalize_time_off(self, r: Dict[str, Any], lookups: Dict[str, Dict[str, Any]]) -> Optional[NormalizedRow]:
        request_id = _str_or_none(r.get("id"))
        employee_id = _str_or_none(r.get("employeeId"))
        start_date = _parse_date(r.get("start"))
        if not request_id or not employee_id or start_date is None:
            return None

        employee = lookups.get("employees", {}).get(employee_id) or {}

        time_off_type = r.get("type")
        if isinstance(time_off_type, dict):
            type_id = _str_or_none(time_off_type.get("id"))
            type_name = time_off_type.get("name")
        else:
            type_id, type_name = None, time_off_type

        status = r.get("status")
        if isinstance(status, dict):
            status = status.get("status")

        amount = r.get("amount")
        if isinstance(amount, dict):
            amount = amount.get("amount")
        try:
            days = float(amount or 0)
        except (ValueError, TypeError):
            days = 0.0
        if not math.isfinite(days):
            days = 0.0

        notes = r.get("notes")
        if isinstance(notes, dict):
            notes = notes.get("employee")

        return TimeOffRow(
            natural_key=request_id,
            scope_key=self.scope_key,
            work_date=start_date,
            end_date=_parse_date(r.get("end")),
            subject_id=employee_id,
            subject_name=employee.get("name") or r.get("name") or UNKNOWN,
            subject_email=employee.get("email"),
            container_id=type_id,
            container_name=_text(type_name) or UNKNOWN,
            status=(_text(status) or "unknown").lower(),
            notes=_text(notes),
            quantity=round(max(days, 0.0), 2),
        )
