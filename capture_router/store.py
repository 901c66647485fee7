import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from .db_utils import session_scope
from .models import Document, TableRow

logger = logging.getLogger(__name__)


"""
Storage capabilities used by the pipeline.

The pipeline only ever sees two narrow interfaces:
- TableStore: read a rectangular range of rows, append one row
- DocumentStore: create a document, append a section to a document

Ranges use spreadsheet A1 notation ("Projects!A2:D", "Sheet1!A:H") so the
same identifiers work against any tabular backend. The SQL implementations
below keep everything in the service database.
"""


DEFAULT_TAB = "Sheet1"
SECTION_SEPARATOR = "\n---\n"

_CELL_RE = re.compile(r"^([A-Za-z]*)(\d*)$")


class DocumentNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class CellRange:
    """
    Parsed A1 range. Rows are 1-based, columns 0-based and inclusive;
    None means unbounded.
    """

    tab: str
    start_row: int = 1
    end_row: Optional[int] = None
    start_col: int = 0
    end_col: Optional[int] = None


def _column_index(letters: str) -> int:
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def _parse_cell(ref: str) -> tuple:
    match = _CELL_RE.match(ref.strip())
    if not match:
        raise ValueError(f"Invalid cell reference: {ref!r}")
    letters, digits = match.groups()
    col = _column_index(letters) if letters else None
    row = int(digits) if digits else None
    return col, row


def parse_range(range_name: str) -> CellRange:
    """
    Parse "Tab!A2:D" style ranges. A name without "!" or ":" selects a
    whole tab; "A2:D" without a tab refers to Sheet1.
    """
    if "!" in range_name:
        tab, cells = range_name.split("!", 1)
    elif ":" in range_name:
        tab, cells = DEFAULT_TAB, range_name
    else:
        return CellRange(tab=range_name.strip().strip("'") or DEFAULT_TAB)

    tab = tab.strip().strip("'") or DEFAULT_TAB
    start_ref, _, end_ref = cells.partition(":")
    start_col, start_row = _parse_cell(start_ref)
    end_col, end_row = _parse_cell(end_ref) if end_ref else (start_col, start_row)
    return CellRange(
        tab=tab,
        start_row=start_row or 1,
        end_row=end_row,
        start_col=start_col or 0,
        end_col=end_col,
    )


def _trim_trailing(cells: List[str]) -> List[str]:
    while cells and cells[-1] == "":
        cells.pop()
    return cells


class TableStore(ABC):
    @abstractmethod
    def read_rows(self, table_id: str, range_name: str) -> List[List[str]]:
        """Return the rows of a range; trailing empty cells are omitted."""
        raise NotImplementedError

    @abstractmethod
    def append_row(self, table_id: str, range_name: str, values: Sequence[str]) -> None:
        raise NotImplementedError

    def count_rows(self, table_id: str, tab: str) -> int:
        """Number of rows stored in a tab."""
        return len(self.read_rows(table_id, tab))


class DocumentStore(ABC):
    @abstractmethod
    def create_document(self, parent_id: Optional[str], title: str, body: str) -> str:
        """Create a document and return its id."""
        raise NotImplementedError

    @abstractmethod
    def append_section(self, doc_id: str, content: str) -> None:
        """Append a separator and the content to the end of a document."""
        raise NotImplementedError


class SqlTableStore(TableStore):
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def read_rows(self, table_id: str, range_name: str) -> List[List[str]]:
        cell_range = parse_range(range_name)
        with session_scope(self.session_factory) as db:
            query = (
                db.query(TableRow.cells)
                .filter(TableRow.table_id == table_id, TableRow.tab == cell_range.tab)
                .order_by(TableRow.id.asc())
                .offset(cell_range.start_row - 1)
            )
            if cell_range.end_row is not None:
                query = query.limit(max(0, cell_range.end_row - cell_range.start_row + 1))
            stored = query.all()

        stop_col = cell_range.end_col + 1 if cell_range.end_col is not None else None

        rows = []
        for (raw_cells,) in stored:
            cells = json.loads(raw_cells)
            rows.append(_trim_trailing([str(c) for c in cells[cell_range.start_col : stop_col]]))

        while rows and not rows[-1]:
            rows.pop()
        return rows

    def count_rows(self, table_id: str, tab: str) -> int:
        with session_scope(self.session_factory) as db:
            return (
                db.query(func.count(TableRow.id))
                .filter(TableRow.table_id == table_id, TableRow.tab == tab)
                .scalar()
            )

    def append_row(self, table_id: str, range_name: str, values: Sequence[str]) -> None:
        cell_range = parse_range(range_name)
        cells = [""] * cell_range.start_col + ["" if v is None else str(v) for v in values]
        with session_scope(self.session_factory) as db:
            db.add(
                TableRow(
                    table_id=table_id,
                    tab=cell_range.tab,
                    cells=json.dumps(cells, ensure_ascii=False),
                )
            )
        logger.debug(
            f"Appended row to {table_id}:{cell_range.tab}",
            extra={"component": "store", "operation": "append_row"},
        )


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def create_document(self, parent_id: Optional[str], title: str, body: str) -> str:
        document = Document(parent_id=parent_id, title=title, body=body)
        with session_scope(self.session_factory) as db:
            db.add(document)
            db.flush()
            doc_id = document.id
        logger.info(
            f"Created document {doc_id} '{title}'",
            extra={"component": "store", "operation": "create_document"},
        )
        return doc_id

    def append_section(self, doc_id: str, content: str) -> None:
        # One UPDATE statement: concurrent appends to a document all survive.
        with session_scope(self.session_factory) as db:
            updated = db.execute(
                update(Document)
                .where(Document.id == doc_id)
                .values(
                    body=Document.body + f"{SECTION_SEPARATOR}{content}\n",
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                raise DocumentNotFoundError(f"Document {doc_id} not found")
        logger.debug(
            f"Appended section to document {doc_id}",
            extra={"component": "store", "operation": "append_section"},
        )

    def get_document(self, doc_id: str) -> Optional[Document]:
        with session_scope(self.session_factory) as db:
            document = db.get(Document, doc_id)
            if document is not None:
                db.expunge(document)
            return document
