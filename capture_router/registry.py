import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .config import config
from .store import TableStore

logger = logging.getLogger(__name__)


"""
Registry of known projects and tags.

The config table has two tabs, both with a header row:
- Projects: Project Name | Doc ID | Status | Description
- Tags: Tag Name | Category

The registry is read fresh for every capture and never cached, so edits to
the config table apply to the next capture without a restart.
"""


PROJECTS_RANGE = "Projects!A2:D"
TAGS_RANGE = "Tags!A2:B"
PROJECTS_APPEND_RANGE = "Projects!A:D"


@dataclass(frozen=True)
class Project:
    name: str
    doc_id: str = ""
    status: str = ""
    description: str = ""


@dataclass(frozen=True)
class Tag:
    name: str
    category: str = ""


@dataclass(frozen=True)
class Registry:
    projects: List[Project] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)

    def find_project(self, name: Optional[str]) -> Optional[Project]:
        """
        Case-insensitive exact match on project name. The first registered
        project wins when names collide.
        """
        if not name:
            return None
        wanted = name.lower()
        for project in self.projects:
            if project.name.lower() == wanted:
                return project
        return None


def _cell(row: Sequence[str], index: int) -> str:
    return row[index] if index < len(row) else ""


class RegistryLoader:
    def __init__(self, table_store: TableStore) -> None:
        self.table_store = table_store

    def load(self) -> Registry:
        """
        Read projects and tags from the config table.

        Raises:
            ConfigurationError: if CONFIG_SHEET_ID is not set
            Any store error
        """
        config_table_id = config.require("CONFIG_SHEET_ID")

        project_rows = self.table_store.read_rows(config_table_id, PROJECTS_RANGE)
        tag_rows = self.table_store.read_rows(config_table_id, TAGS_RANGE)

        projects = [
            Project(
                name=_cell(row, 0),
                doc_id=_cell(row, 1),
                status=_cell(row, 2),
                description=_cell(row, 3),
            )
            for row in project_rows
        ]
        tags = [Tag(name=_cell(row, 0), category=_cell(row, 1)) for row in tag_rows]

        logger.debug(
            f"Loaded registry: {len(projects)} projects, {len(tags)} tags",
            extra={"component": "registry", "operation": "load"},
        )
        return Registry(projects=projects, tags=tags)
