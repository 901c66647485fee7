import json

import pytest

from capture_router.activity import ActivityRecorder
from capture_router.classifier import Classifier
from capture_router.destinations import Destinations
from capture_router.pipeline import CapturePipeline


def _reply(**overrides):
    data = {
        "action": "save_link",
        "url": "https://x.io",
        "tags": ["rust"],
        "project": "compiler",
        "title": "X",
        "comment": "A post",
        "confidence": 0.95,
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def build(table_store, document_store, registry_loader, clock, make_completion):
    def _build(*replies):
        return CapturePipeline(
            classifier=Classifier(registry_loader, make_completion(*replies)),
            destinations=Destinations(table_store, document_store, registry_loader, clock=clock),
            recorder=ActivityRecorder(table_store, clock=clock),
        )

    return _build


def _activity(table_store):
    return table_store.read_rows("activity-table", "Sheet1!A:H")


def test_save_link_run_writes_link_and_success_record(build, table_store, compiler_project):
    build(_reply()).run("save https://x.io for compiler tag rust", "siri")

    links = table_store.read_rows("links-table", "Sheet1!A:F")
    assert links == [
        [
            "2026-02-08T12:34:56.789Z",
            "https://x.io",
            "A post",
            "rust",
            "compiler",
            "save https://x.io for compiler tag rust",
        ]
    ]
    assert _activity(table_store) == [
        [
            "2026-02-08T12:34:56.789Z",
            "save https://x.io for compiler tag rust",
            "siri",
            "save_link",
            "rust",
            "Links Sheet",
            "success",
        ]
    ]


def test_low_confidence_idea_lands_in_inbox(build, table_store, document_store, destination_env, compiler_project):
    build(_reply(action="new_idea", confidence=0.4)).run("maybe an idea", "siri")

    body = document_store.get_document(destination_env["INBOX_DOC_ID"]).body
    assert "Suggested action: new_idea" in body
    assert "Confidence: 0.4" in body
    assert "Raw: maybe an idea" in body
    assert [row[3] for row in _activity(table_store)] == ["inbox"]


def test_classifier_fallback_is_recorded_as_success(build, table_store, document_store, destination_env):
    build("not json").run("garbled words", "siri")

    body = document_store.get_document(destination_env["INBOX_DOC_ID"]).body
    assert "Confidence: 0\n" in body
    assert "Parsed: garbled words" in body
    record = _activity(table_store)[0]
    assert record[3:7] == ["inbox", "", "Inbox Doc", "success"]


def test_append_to_project_reaches_project_document(build, document_store, table_store, compiler_project):
    build(_reply(action="append_to_project", url=None, comment="Lexer done")).run("note for compiler", "siri")

    assert document_store.get_document(compiler_project).body.endswith("\n\nLexer done\n")
    assert _activity(table_store)[0][5] == "Project Doc: compiler"


def test_new_idea_creates_document_and_registers_project(build, table_store, compiler_project):
    build(_reply(action="new_idea", url=None, project=None, title="Scaffolder")).run("idea for a scaffolder", "siri")

    projects = table_store.read_rows("config-table", "Projects!A2:D")
    assert projects[-1][0] == "Scaffolder"
    assert projects[-1][2] == "idea"
    assert _activity(table_store)[0][5] == "Ideas Folder: Scaffolder"


def test_destination_failure_is_recorded_once_as_error(build, table_store, document_store, compiler_project):
    build(_reply(action="append_to_project", project="unknown-project")).run("note for nothing", "siri")

    records = _activity(table_store)
    assert len(records) == 1
    assert records[0][1:] == [
        "note for nothing",
        "siri",
        "inbox",
        "",
        "Inbox Doc",
        "error",
        'Project "unknown-project" not found in registry or has no Doc ID',
    ]
    assert document_store.get_document(compiler_project).body == "Compiler notes\n"


def test_missing_inbox_document_is_recorded_as_error(build, table_store, destination_env, monkeypatch):
    monkeypatch.delenv("INBOX_DOC_ID")

    build(_reply(action="inbox", confidence=0.3)).run("hmm", "siri")

    record = _activity(table_store)[0]
    assert record[6] == "error"
    assert record[7] == "INBOX_DOC_ID environment variable is not set"


def test_run_survives_activity_log_failure(build, table_store, destination_env, monkeypatch):
    monkeypatch.delenv("ACTIVITY_LOG_SHEET_ID")

    build(_reply()).run("save https://x.io", "siri")

    assert len(table_store.read_rows("links-table", "Sheet1!A:F")) == 1
