import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from .config import config
from .registry import PROJECTS_APPEND_RANGE, RegistryLoader
from .schemas import ClassificationResult
from .store import DocumentStore, TableStore

logger = logging.getLogger(__name__)


"""
Destination handlers.

Each handler performs exactly one write (new-idea additionally registers
the idea when a config table exists). Store and configuration errors
propagate so the pipeline records the run as failed.

Formatting rules shared by all handlers:
- rows carry a full ISO-8601 instant, document sections "YYYY-MM-DD HH:MM"
- tags render as "a, b" in rows and as "none" when empty in documents
- absent optional fields are left out of documents and empty in rows
"""


LINKS_RANGE = "Sheet1!A:F"
IDEA_STATUS = "idea"


class ProjectLookupError(LookupError):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_instant(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def section_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")


def join_tags(tags: Iterable[str]) -> str:
    return ", ".join(tags)


def format_tags(tags: Iterable[str]) -> str:
    return join_tags(tags) or "none"


def format_confidence(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


class Destinations:
    def __init__(
        self,
        table_store: TableStore,
        document_store: DocumentStore,
        registry_loader: RegistryLoader,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.table_store = table_store
        self.document_store = document_store
        self.registry_loader = registry_loader
        self.clock = clock

    def save_link(self, result: ClassificationResult, raw_text: str) -> None:
        """
        Append the link to the links table.
        Columns: Date | URL | Comment | Tags | Source Project | Raw Input
        """
        links_table_id = config.require("LINKS_SHEET_ID")
        self.table_store.append_row(
            links_table_id,
            LINKS_RANGE,
            [
                iso_instant(self.clock()),
                result.url or "",
                result.comment,
                join_tags(result.tags),
                result.project or "",
                raw_text,
            ],
        )

    def new_idea(self, result: ClassificationResult) -> str:
        """
        Create a document for the idea in the ideas collection and, when a
        config table is configured, register it as a project with status
        "idea". Returns the new document id.
        """
        ideas_folder_id = config.require("IDEAS_FOLDER_ID")

        body = "\n".join(
            [
                f"# {result.title}",
                "",
                f"Tags: {format_tags(result.tags)}",
                f"Created: {iso_instant(self.clock())}",
                "",
                "---",
                "",
                result.comment,
            ]
        )
        doc_id = self.document_store.create_document(ideas_folder_id, result.title, body)

        config_table_id = config.optional("CONFIG_SHEET_ID")
        if config_table_id:
            self.table_store.append_row(
                config_table_id,
                PROJECTS_APPEND_RANGE,
                [result.title, doc_id, IDEA_STATUS, result.comment],
            )
        else:
            logger.debug(
                "CONFIG_SHEET_ID not set, idea not registered as a project",
                extra={"component": "destinations", "operation": "new_idea"},
            )
        return doc_id

    def append_to_project(self, result: ClassificationResult) -> None:
        """
        Append a timestamped note to the matching project's document.

        Raises:
            ProjectLookupError: project missing, unknown, or without a document
        """
        if not result.project:
            raise ProjectLookupError("append_to_project action requires a project name")

        registry = self.registry_loader.load()
        project = registry.find_project(result.project)
        if project is None or not project.doc_id:
            raise ProjectLookupError(
                f'Project "{result.project}" not found in registry or has no Doc ID'
            )

        section = "\n".join(
            [
                section_timestamp(self.clock()),
                f"Tags: {format_tags(result.tags)}",
                "",
                result.comment,
            ]
        )
        self.document_store.append_section(project.doc_id, section)

    def inbox(self, result: ClassificationResult, raw_text: str, source: str) -> None:
        """
        Append the capture to the inbox document with whatever partial
        classification exists, so it can be triaged by hand.
        """
        inbox_doc_id = config.require("INBOX_DOC_ID")

        lines = [
            f"{section_timestamp(self.clock())} [{source}]",
            f"Confidence: {format_confidence(result.confidence)}",
            f"Suggested action: {result.suggested_action or result.action}",
            f"Tags: {format_tags(result.tags)}",
        ]
        if result.project:
            lines.append(f"Project: {result.project}")
        if result.url:
            lines.append(f"URL: {result.url}")
        lines.extend(["", f"Raw: {raw_text}", "", f"Parsed: {result.comment}"])

        self.document_store.append_section(inbox_doc_id, "\n".join(lines))

