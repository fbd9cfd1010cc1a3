"""
Abstract base class for source fetchers
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from core.exceptions import SyncException, UnexpectedResponseError
from models.base import SourceType
from pipeline.http import APIClient
from pipeline.run_context import SyncRun
from schemas.records import FetchResult
from schemas.sync import IngestionWindow, SyncError
import logging

logger = logging.getLogger(__name__)

_JSON_TYPE_NAMES = {dict: "object", list: "array", str: "string", int: "number", float: "number", bool: "boolean"}


def expect_json(data: Any, expected: type, url: str) -> Any:
    """Raise UnexpectedResponseError unless data is of the expected JSON type"""
    if isinstance(data, expected):
        return data
    received = _JSON_TYPE_NAMES.get(type(data), "null" if data is None else type(data).__name__)
    raise UnexpectedResponseError(
        f"Expected a JSON {_JSON_TYPE_NAMES[expected]} but received {received}",
        context={"url": url, "expected": _JSON_TYPE_NAMES[expected], "received": received}
    )


class SourceFetcher(ABC):
    """
    Abstract base class for all upstream sources.

    Responsibilities:
    - Fetch raw records for one scope and window
    - Record every failed call on the run, classified as critical or not
    - Never raise for upstream failures; the run carries the outcome
    """

    source_type: SourceType
    tables: Tuple[str, ...] = ()

    def __init__(self, api: APIClient, scope_key: str):
        self.api = api
        self.scope_key = scope_key

    @property
    def source_name(self) -> str:
        return self.source_type.value

    @abstractmethod
    async def fetch(self, window: IngestionWindow, run: SyncRun) -> FetchResult:
        """
        Fetch raw records for the window.

        Args:
            window: Ingestion window shared by the whole cycle
            run: Open sync run; errors and fetch completeness are recorded on it

        Returns:
            FetchResult with raw records and any lookup maps
        """
        pass

    def record_failure(
        self,
        run: SyncRun,
        error_type: str,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        critical: bool = True
    ) -> SyncError:
        """Record a caught exception on the run with merged context"""
        merged = dict(context or {})
        if isinstance(error, SyncException):
            for key in ("status_code", "url", "attempts", "received"):
                if key in error.context:
                    merged.setdefault(key, error.context[key])
            message = error.message
        else:
            message = str(error) or type(error).__name__

        return run.record_error(error_type, context=merged, message=message, critical=critical)

    async def paginate(
        self,
        run: SyncRun,
        fetch_page: Callable[[int], Awaitable[List[Dict[str, Any]]]],
        page_size: int,
        max_pages: int
    ) -> List[Dict[str, Any]]:
        """
        Request fixed-size pages sequentially.

        Continues while the last page was full. Stops on a short page, on a
        failed page (critical page_fetch_error) or once max_pages full pages
        have been read (critical safety_limit).
        """
        items: List[Dict[str, Any]] = []
        page = 1

        while True:
            try:
                batch = await fetch_page(page)
            except SyncException as e:
                self.record_failure(run, "page_fetch_error", e, context={"page": page})
                break

            items.extend(batch)
            logger.debug(f"{self.source_name}: page {page} returned {len(batch)} records")

            if len(batch) < page_size:
                break

            if page >= max_pages:
                run.record_error(
                    "safety_limit",
                    context={"page": page, "page_size": page_size, "records_fetched": len(items)},
                    message=f"Hit {max_pages} page safety limit - possible runaway pagination or unusually large dataset",
                    critical=True
                )
                break

            page += 1

        logger.info(f"{self.source_name}: fetched {len(items)} records over {page} pages")
        return items
