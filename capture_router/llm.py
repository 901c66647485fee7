import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from openai import OpenAI

from .config import config
from .http_utils import retry_with_backoff

logger = logging.getLogger(__name__)


"""
Text-completion clients.

The classifier only needs complete(system, user) returning a list of
content blocks ({"type": "text", "text": ...}). Two implementations talk to
OpenAI-compatible chat-completion APIs:
- HttpCompletionClient: plain requests with retry/backoff and a circuit
  breaker; works with OpenRouter and local proxies
- OpenAISdkCompletionClient: the official openai client
"""


ContentBlock = Dict[str, Any]


class CompletionClient(ABC):
    @abstractmethod
    def complete(self, system_prompt: str, user_message: str) -> List[ContentBlock]:
        raise NotImplementedError


def content_blocks(message: Dict[str, Any]) -> List[ContentBlock]:
    """
    Normalise a chat-completion message into typed content blocks.

    String content becomes a single text block; list content (multi-part
    messages) is passed through; a refusal becomes a "refusal" block.
    """
    content = message.get("content")
    blocks: List[ContentBlock] = []
    if isinstance(content, str):
        blocks.append({"type": "text", "text": content})
    elif isinstance(content, list):
        blocks.extend(part for part in content if isinstance(part, dict))
    if message.get("refusal"):
        blocks.append({"type": "refusal", "text": message["refusal"]})
    return blocks


def _first_message(data: Dict[str, Any]) -> Dict[str, Any]:
    if "error" in data:
        raise RuntimeError(f"LLM API returned error: {data['error']}")
    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise RuntimeError("Unexpected response structure from LLM") from e
    if not isinstance(message, dict):
        raise RuntimeError("Unexpected response structure from LLM")
    return message


def _request_body(model: str, system_prompt: str, user_message: str) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
        "temperature": config.LLM_TEMPERATURE,
    }
    if config.LLM_JSON_MODE:
        body["response_format"] = {"type": "json_object"}
    return body


@retry_with_backoff(circuit_breaker="llm_api")
def _post_chat_completion(
    base_url: str, api_key: str, payload: Dict[str, Any], timeout: int
) -> Dict[str, Any]:
    """
    Make the HTTP request. Separate so the decorator wraps only the
    network call.
    """
    response = requests.post(
        f"{base_url.rstrip('/')}/chat/completions",
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        json=payload,
        timeout=timeout,
    )
    response.raise_for_status()
    return response.json()


class HttpCompletionClient(CompletionClient):
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = config.OPENAI_BASE_URL,
        model: str = config.OPENAI_MODEL,
        timeout: int = config.LLM_API_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout

    def complete(self, system_prompt: str, user_message: str) -> List[ContentBlock]:
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is not configured")
        payload = _request_body(self.model, system_prompt, user_message)
        data = _post_chat_completion(self.base_url, self.api_key, payload, self.timeout)
        if not isinstance(data, dict):
            raise RuntimeError("Unexpected response structure from LLM")
        return content_blocks(_first_message(data))


class OpenAISdkCompletionClient(CompletionClient):
    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = config.OPENAI_MODEL,
        timeout: int = config.LLM_API_TIMEOUT,
    ) -> None:
        self.model = model
        self._client: Optional[OpenAI] = None
        if not api_key:
            logger.info("OPENAI_API_KEY not configured, completion client unavailable")
            return
        if base_url:
            logger.info(f"Using custom OpenAI base URL: {base_url}")
            self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        else:
            self._client = OpenAI(api_key=api_key, timeout=timeout)

    def complete(self, system_prompt: str, user_message: str) -> List[ContentBlock]:
        if self._client is None:
            raise RuntimeError("OPENAI_API_KEY is not configured")
        response = self._client.chat.completions.create(
            **_request_body(self.model, system_prompt, user_message)
        )
        return content_blocks(_first_message(response.model_dump()))


def build_completion_client() -> CompletionClient:
    """
    Build the completion client selected by LLM_BACKEND.
    """
    api_key = config.optional("OPENAI_API_KEY")
    if config.LLM_BACKEND == "sdk":
        return OpenAISdkCompletionClient(api_key=api_key, base_url=config.optional("OPENAI_BASE_URL"))
    if config.LLM_BACKEND != "http":
        raise ValueError(f"Unknown LLM_BACKEND: {config.LLM_BACKEND}")
    if not api_key:
        logger.warning("OPENAI_API_KEY not configured, every capture will fall back to the inbox")
    return HttpCompletionClient(api_key=api_key)
