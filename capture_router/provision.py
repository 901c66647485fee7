"""
One-time provisioning of the capture router's tables and documents.

Creates (or reuses, when the identifier is already configured):
- the config table with header rows on its Projects and Tags tabs
- the links table and the activity table with header rows
- the ideas collection identifier
- the inbox document

and prints the resulting identifiers as KEY=value lines for the .env file.

Usage:
    python -m capture_router.provision [--seed]
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional
from uuid import uuid4

from .activity import ACTIVITY_HEADER, ACTIVITY_RANGE
from .config import config
from .db import SessionLocal, engine, init_db
from .destinations import LINKS_RANGE
from .logging_config import configure_logging
from .registry import PROJECTS_APPEND_RANGE
from .store import DocumentStore, SqlDocumentStore, SqlTableStore, TableStore

logger = logging.getLogger(__name__)


LINKS_HEADER = ["Date", "URL", "Comment", "Tags", "Source Project", "Raw Input"]
PROJECTS_HEADER = ["Project Name", "Doc ID", "Status", "Description"]
TAGS_HEADER = ["Tag Name", "Category"]
TAGS_APPEND_RANGE = "Tags!A:B"
INBOX_TITLE = "Inbox"

SAMPLE_PROJECTS = [
    ["Smart Router", "", "active", "Voice capture and knowledge routing system"],
    ["Personal Site", "", "active", "Personal website and blog"],
    ["CLI Tools", "", "active", "Collection of command-line utilities"],
    ["Learning Notes", "", "active", "Notes from courses, books, and tutorials"],
]

SAMPLE_TAGS = [
    ["python", "language"],
    ["rust", "language"],
    ["api", "architecture"],
    ["database", "architecture"],
    ["devops", "infrastructure"],
    ["testing", "practice"],
    ["productivity", "topic"],
]


def _new_id() -> str:
    return uuid4().hex


def _ensure_header(table_store: TableStore, table_id: str, range_name: str, header: List[str]) -> None:
    existing = table_store.read_rows(table_id, range_name)
    if existing:
        return
    table_store.append_row(table_id, range_name, header)


def provision(
    table_store: TableStore,
    document_store: DocumentStore,
    seed: bool = False,
    existing: Optional[Dict[str, Optional[str]]] = None,
) -> Dict[str, str]:
    """
    Create whatever is missing and return every identifier by variable name.

    Args:
        existing: already configured identifiers to reuse (defaults to the environment)
    """
    if existing is None:
        existing = {key: config.optional(key) for key in config.DESTINATION_KEYS}

    ids = {key: existing.get(key) or _new_id() for key in config.DESTINATION_KEYS if key != "INBOX_DOC_ID"}

    config_table = ids["CONFIG_SHEET_ID"]
    projects_empty = not table_store.read_rows(config_table, "Projects")
    tags_empty = not table_store.read_rows(config_table, "Tags")

    _ensure_header(table_store, config_table, "Projects", PROJECTS_HEADER)
    _ensure_header(table_store, config_table, "Tags", TAGS_HEADER)
    _ensure_header(table_store, ids["LINKS_SHEET_ID"], LINKS_RANGE, LINKS_HEADER)
    _ensure_header(table_store, ids["ACTIVITY_LOG_SHEET_ID"], ACTIVITY_RANGE, ACTIVITY_HEADER)

    if seed:
        # Seed only tabs created in this run, so re-running never duplicates entries.
        if projects_empty:
            for row in SAMPLE_PROJECTS:
                table_store.append_row(config_table, PROJECTS_APPEND_RANGE, row)
        if tags_empty:
            for row in SAMPLE_TAGS:
                table_store.append_row(config_table, TAGS_APPEND_RANGE, row)

    inbox_doc_id = existing.get("INBOX_DOC_ID")
    if not inbox_doc_id:
        inbox_doc_id = document_store.create_document(
            None, INBOX_TITLE, "Captures that could not be routed with confidence.\n"
        )
    ids["INBOX_DOC_ID"] = inbox_doc_id

    logger.info(
        "Provisioning complete",
        extra={"component": "provision", "operation": "provision"},
    )
    return ids


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Provision capture router tables and documents")
    parser.add_argument("--seed", action="store_true", help="add sample projects and tags")
    args = parser.parse_args(argv)

    configure_logging(json_logs=False, log_level=config.LOG_LEVEL)
    init_db(engine)
    ids = provision(SqlTableStore(SessionLocal), SqlDocumentStore(SessionLocal), seed=args.seed)

    for key, value in ids.items():
        print(f"{key}={value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
