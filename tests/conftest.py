import os
from datetime import datetime, timezone
from pathlib import Path

# Force a test-safe DB path before importing capture_router.db (which creates directories on import).
TEST_DB_PATH = Path(__file__).resolve().parent / "test.db"
os.environ.setdefault("DATABASE_PATH", str(TEST_DB_PATH))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from capture_router.db import Base  # noqa: E402
from capture_router import models  # noqa: E402,F401  - register tables on Base
from capture_router.registry import RegistryLoader  # noqa: E402
from capture_router.store import SqlDocumentStore, SqlTableStore  # noqa: E402

FIXED_NOW = datetime(2026, 2, 8, 12, 34, 56, 789000, tzinfo=timezone.utc)

DESTINATION_ENV = {
    "LINKS_SHEET_ID": "links-table",
    "ACTIVITY_LOG_SHEET_ID": "activity-table",
    "CONFIG_SHEET_ID": "config-table",
    "IDEAS_FOLDER_ID": "ideas-folder",
}


class FakeCompletion:
    """
    Completion client double. Returns text blocks for queued replies, or
    raises when a reply is an exception.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, system_prompt, user_message):
        self.calls.append((system_prompt, user_message))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, list):
            return reply
        return [{"type": "text", "text": reply}]


@pytest.fixture
def session_factory():
    # StaticPool keeps one in-memory database shared by every session.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def table_store(session_factory):
    return SqlTableStore(session_factory)


@pytest.fixture
def document_store(session_factory):
    return SqlDocumentStore(session_factory)


@pytest.fixture
def registry_loader(table_store):
    return RegistryLoader(table_store)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def inbox_doc(document_store):
    return document_store.create_document(None, "Inbox", "Inbox\n")


@pytest.fixture
def destination_env(monkeypatch, inbox_doc):
    for key, value in DESTINATION_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("INBOX_DOC_ID", inbox_doc)
    monkeypatch.delenv("WEBHOOK_SECRET", raising=False)
    return dict(DESTINATION_ENV, INBOX_DOC_ID=inbox_doc)


@pytest.fixture
def compiler_project(document_store, table_store, destination_env):
    """Register a "Compiler" project with its own document and two tags."""
    doc_id = document_store.create_document(None, "Compiler", "Compiler notes\n")
    table_store.append_row("config-table", "Projects!A:D", ["Project Name", "Doc ID", "Status", "Description"])
    table_store.append_row("config-table", "Projects!A:D", ["Compiler", doc_id, "active", "Toy compiler in Rust"])
    table_store.append_row("config-table", "Tags!A:B", ["Tag Name", "Category"])
    table_store.append_row("config-table", "Tags!A:B", ["rust", "language"])
    table_store.append_row("config-table", "Tags!A:B", ["async", "topic"])
    return doc_id


@pytest.fixture
def make_completion():
    return FakeCompletion
