"""
Raw upstream records as a tagged variant
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, List
import enum


class RecordKind(str, enum.Enum):
    """Every shape of raw record a fetcher can produce"""
    TRACKER_TIME_ENTRY = "tracker_time_entry"
    TIME_TRACKING_ENTRY = "time_tracking_entry"
    HR_EMPLOYEE = "hr_employee"
    HR_TIME_OFF = "hr_time_off"


class SourceRecord(BaseModel):
    """
    A raw unit of data as returned by one API call.

    The payload is kept exactly as the upstream API sent it; only the
    normalizer for its kind interprets the fields.
    """
    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    payload: Dict[str, Any] = Field(default_factory=dict)


class FetchResult(BaseModel):
    """
    Raw records plus the lookup maps built alongside them.

    lookups maps a lookup name ("spaces", "folders", "employees", ...)
    to an id -> value dictionary. Missing lookups only degrade display names.
    aborted is set when the required entry point failed and nothing
    downstream should run.
    """
    records: List[SourceRecord] = Field(default_factory=list)
    lookups: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    aborted: bool = False

    def count_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in self.records:
            counts[record.kind.value] = counts.get(record.kind.value, 0) + 1
        return counts
