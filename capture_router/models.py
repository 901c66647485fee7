from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


def _new_document_id() -> str:
    return uuid4().hex


class TableRow(Base):
    """
    One row of a spreadsheet-like table.

    Rows are addressed by (table_id, tab) and ordered by insertion; the
    first row appended to a tab is row 1. Cells are stored as a JSON array
    of strings.
    """

    __tablename__ = "table_rows"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(String(255), nullable=False, index=True)
    tab = Column(String(255), nullable=False, index=True)
    cells = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Document(Base):
    """
    A text document, optionally filed under a parent collection.

    Content is append-only from the pipeline's point of view: the body is
    created once and sections are appended to its end.
    """

    __tablename__ = "documents"

    id = Column(String(64), primary_key=True, default=_new_document_id)
    parent_id = Column(String(255), nullable=True, index=True)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
