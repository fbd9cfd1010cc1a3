"""
Pydantic schemas for normalized rows with validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, ClassVar, Dict, Any
from datetime import date, datetime


class NormalizedRow(BaseModel):
    """
    Common row shape written to every pipeline-owned table.

    Ensures:
    - natural_key and scope_key are present and non-blank
    - display names are never empty (placeholders instead)

    sync_run_id / synced_at are not part of the row: the upsert engine stamps
    them from the sealed run at write time.
    """
    table_name: ClassVar[str] = ""

    natural_key: str = Field(..., min_length=1, max_length=255)
    scope_key: str = Field(..., min_length=1, max_length=100)
    work_date: Optional[date] = None

    subject_id: Optional[str] = Field(None, max_length=100)
    subject_name: str = "Unknown"
    container_id: Optional[str] = Field(None, max_length=100)
    container_name: Optional[str] = None

    @field_validator("natural_key", "scope_key", mode="before")
    @classmethod
    def clean_key(cls, v):
        """Keys are compared as strings; upstream sends ints for some ids"""
        if v is None:
            return v
        return str(v).strip()

    @field_validator("subject_name", mode="before")
    @classmethod
    def default_subject_name(cls, v):
        if v is None or not str(v).strip():
            return "Unknown"
        return str(v).strip()

    def to_db_dict(self, sync_run_id: str, synced_at: datetime) -> Dict[str, Any]:
        """Column values for the target table, stamped with the writing run"""
        values = self.model_dump()
        values["sync_run_id"] = sync_run_id
        values["synced_at"] = synced_at
        return values


class TimeEntryRow(NormalizedRow):
    """A worked time entry; quantity is minutes in 15-minute increments"""
    work_date: date
    quantity: int = Field(..., gt=0)

    subject_email: Optional[str] = None
    client_id: Optional[str] = Field(None, max_length=100)
    client_name: Optional[str] = None
    task_id: Optional[str] = Field(None, max_length=100)
    task_name: str = "(no description)"
    billable: Optional[bool] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @field_validator("quantity")
    @classmethod
    def quarter_hour_increments(cls, v):
        if v % 15 != 0:
            raise ValueError("quantity must be a multiple of 15 minutes")
        return v


class TrackerEntryRow(TimeEntryRow):
    table_name: ClassVar[str] = "tracker_entries"


class TimeTrackingEntryRow(TimeEntryRow):
    table_name: ClassVar[str] = "time_tracking_entries"


class EmployeeRow(NormalizedRow):
    """An employee directory entry; container is the department"""
    table_name: ClassVar[str] = "hr_employees"

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    work_email: Optional[str] = None
    job_title: Optional[str] = None
    quantity: Optional[float] = None


class TimeOffRow(NormalizedRow):
    """A time-off request; container is the time-off type, quantity is days"""
    table_name: ClassVar[str] = "hr_time_off"

    work_date: date
    end_date: Optional[date] = None
    subject_email: Optional[str] = None
    status: str = "unknown"
    notes: Optional[str] = None
    quantity: float = Field(0.0, ge=0)
