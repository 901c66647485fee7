from types import SimpleNamespace

import pytest
import requests

from capture_router import llm
from capture_router.http_utils import reset_circuit_breakers


@pytest.fixture(autouse=True)
def fresh_breakers():
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


def _response(status_code, payload):
    def raise_for_status():
        if status_code >= 400:
            response = requests.Response()
            response.status_code = status_code
            raise requests.HTTPError(f"{status_code} error", response=response)

    return SimpleNamespace(
        status_code=status_code,
        json=lambda: payload,
        raise_for_status=raise_for_status,
    )


def test_content_blocks_from_string():
    assert llm.content_blocks({"content": "{}"}) == [{"type": "text", "text": "{}"}]


def test_content_blocks_passes_list_parts_through():
    parts = [{"type": "text", "text": "a"}, "junk", {"type": "image_url"}]

    assert llm.content_blocks({"content": parts}) == [{"type": "text", "text": "a"}, {"type": "image_url"}]


def test_content_blocks_for_refusal():
    assert llm.content_blocks({"content": None, "refusal": "no"}) == [{"type": "refusal", "text": "no"}]


def test_http_client_posts_chat_completion(monkeypatch):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return _response(200, {"choices": [{"message": {"role": "assistant", "content": '{"a": 1}'}}]})

    monkeypatch.setattr(llm.requests, "post", fake_post)
    client = llm.HttpCompletionClient("key", base_url="https://llm.test/v1/", model="m", timeout=5)

    blocks = client.complete("system", "[Source: siri] hi")

    assert blocks == [{"type": "text", "text": '{"a": 1}'}]
    assert captured["url"] == "https://llm.test/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer key"
    assert captured["timeout"] == 5
    assert captured["json"]["model"] == "m"
    assert captured["json"]["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "[Source: siri] hi"},
    ]


def test_http_client_without_key_raises():
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        llm.HttpCompletionClient(None).complete("s", "u")


def test_http_client_raises_on_error_payload(monkeypatch):
    monkeypatch.setattr(llm.requests, "post", lambda *a, **k: _response(200, {"error": {"message": "bad model"}}))

    with pytest.raises(RuntimeError, match="LLM API returned error"):
        llm.HttpCompletionClient("key").complete("s", "u")


def test_http_client_does_not_retry_client_errors(monkeypatch):
    calls = []

    def fake_post(*args, **kwargs):
        calls.append(1)
        return _response(401, {})

    monkeypatch.setattr(llm.requests, "post", fake_post)

    with pytest.raises(requests.HTTPError):
        llm.HttpCompletionClient("key").complete("s", "u")
    assert len(calls) == 1


def test_build_completion_client_rejects_unknown_backend(monkeypatch):
    monkeypatch.setattr(llm.config, "LLM_BACKEND", "carrier-pigeon")

    with pytest.raises(ValueError, match="Unknown LLM_BACKEND"):
        llm.build_completion_client()


def test_build_completion_client_defaults_to_http(monkeypatch):
    monkeypatch.setattr(llm.config, "LLM_BACKEND", "http")
    monkeypatch.setenv("OPENAI_API_KEY", "key")

    assert isinstance(llm.build_completion_client(), llm.HttpCompletionClient)
