import logging
from datetime import datetime
from typing import Callable, List, Optional

from .config import config
from .destinations import iso_instant, join_tags, utc_now
from .schemas import (
    ACTION_APPEND_TO_PROJECT,
    ACTION_INBOX,
    ACTION_NEW_IDEA,
    ACTION_SAVE_LINK,
    ClassificationResult,
)
from .store import TableStore

logger = logging.getLogger(__name__)


"""
Activity log of every pipeline run.

Columns: Timestamp | Raw Input | Source | Parsed Action | Parsed Tags |
Destination | Status | Error

record() is the single place where failures are logged and swallowed: the
audit trail must never turn a routed capture into a failed one, nor report
a failure twice.
"""


ACTIVITY_TAB = "Sheet1"
ACTIVITY_RANGE = f"{ACTIVITY_TAB}!A:H"
ACTIVITY_HEADER = [
    "Timestamp",
    "Raw Input",
    "Source",
    "Parsed Action",
    "Parsed Tags",
    "Destination",
    "Status",
    "Error",
]

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def describe_destination(result: ClassificationResult) -> str:
    if result.action == ACTION_SAVE_LINK:
        return "Links Sheet"
    if result.action == ACTION_NEW_IDEA:
        return f"Ideas Folder: {result.title}"
    if result.action == ACTION_APPEND_TO_PROJECT:
        return f"Project Doc: {result.project or 'unknown'}"
    if result.action == ACTION_INBOX:
        return "Inbox Doc"
    return "unknown"


class ActivityRecorder:
    def __init__(self, table_store: TableStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.table_store = table_store
        self.clock = clock

    def record(
        self,
        raw_input: str,
        source: str,
        result: ClassificationResult,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        destination = describe_destination(result)
        try:
            activity_table_id = config.require("ACTIVITY_LOG_SHEET_ID")
            self.table_store.append_row(
                activity_table_id,
                ACTIVITY_RANGE,
                [
                    iso_instant(self.clock()),
                    raw_input,
                    source,
                    result.action,
                    join_tags(result.tags),
                    destination,
                    status,
                    error_message or "",
                ],
            )
        except Exception as e:
            logger.error(
                f"Failed to write activity log: {e}",
                extra={
                    "component": "activity",
                    "operation": "record",
                    "action": result.action,
                    "destination": destination,
                    "error_type": type(e).__name__,
                },
            )

    def recent(self, limit: int) -> List[List[str]]:
        """
        Newest-first activity rows, header excluded.

        Raises:
            ConfigurationError: if ACTIVITY_LOG_SHEET_ID is not set
        """
        activity_table_id = config.require("ACTIVITY_LOG_SHEET_ID")
        total = self.table_store.count_rows(activity_table_id, ACTIVITY_TAB)
        first_row = max(1, total - limit + 1)
        rows = self.table_store.read_rows(activity_table_id, f"{ACTIVITY_TAB}!A{first_row}:H{max(total, 1)}")
        if first_row == 1 and rows and rows[0] == ACTIVITY_HEADER:
            rows = rows[1:]
        rows.reverse()
        return [row + [""] * (len(ACTIVITY_HEADER) - len(row)) for row in rows]
