import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .llm import CompletionClient
from .prompts import build_system_prompt, build_user_message
from .registry import RegistryLoader
from .schemas import ACTION_INBOX, ClassificationResult, InboxCapture, inbox_result, parse_classification

logger = logging.getLogger(__name__)


"""
LLM-based capture classification.

Responsibilities:
- Load the registry of projects and tags for prompt context.
- Call the completion client once per capture.
- Validate the returned JSON into a ClassificationResult.
- Route low-confidence results to the inbox.

classify() never raises. Every failure resolves to the fallback inbox
result carrying the raw text, so a capture is never lost at this stage.
"""


CONFIDENCE_THRESHOLD = 0.6
FALLBACK_TITLE = "Unclassified capture"


class ClassificationFailed(Exception):
    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type


def fallback_result(raw_text: str) -> InboxCapture:
    return inbox_result(title=FALLBACK_TITLE, comment=raw_text or FALLBACK_TITLE, confidence=0.0)


def apply_confidence_gate(result: ClassificationResult) -> ClassificationResult:
    """
    Force results below CONFIDENCE_THRESHOLD to the inbox. The threshold
    itself passes.
    """
    if result.confidence < CONFIDENCE_THRESHOLD and result.action != ACTION_INBOX:
        logger.info(
            f"Confidence {result.confidence} below {CONFIDENCE_THRESHOLD}, routing "
            f"suggested {result.action} to inbox",
            extra={"component": "classifier", "operation": "confidence_gate", "action": result.action},
        )
        return result.as_inbox()
    return result


def first_text_block(blocks: List[Dict[str, Any]]) -> Optional[str]:
    for block in blocks or []:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                return text
    return None


class Classifier:
    def __init__(self, registry_loader: RegistryLoader, completion: CompletionClient) -> None:
        self.registry_loader = registry_loader
        self.completion = completion

    def classify(self, raw_text: str, source: str) -> ClassificationResult:
        try:
            result = self._classify(raw_text, source)
        except ClassificationFailed as e:
            logger.error(
                f"Classification failed, falling back to inbox: {e}",
                extra={"component": "classifier", "operation": "classify", "error_type": e.error_type},
            )
            return fallback_result(raw_text)
        except Exception as e:
            logger.error(
                "Unexpected classification error, falling back to inbox",
                extra={
                    "component": "classifier",
                    "operation": "classify",
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return fallback_result(raw_text)

        return apply_confidence_gate(result)

    def _classify(self, raw_text: str, source: str) -> ClassificationResult:
        try:
            registry = self.registry_loader.load()
        except Exception as e:
            raise ClassificationFailed("registry_error", f"Could not load registry: {e}") from e

        system_prompt = build_system_prompt(registry)
        user_message = build_user_message(raw_text, source)

        try:
            blocks = self.completion.complete(system_prompt, user_message)
        except Exception as e:
            raise ClassificationFailed("llm_error", f"Completion call failed: {e}") from e

        text = first_text_block(blocks)
        if text is None:
            raise ClassificationFailed("no_text_block", "No text response from the language model")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClassificationFailed("invalid_json", f"Invalid JSON in model response: {e}") from e

        try:
            return parse_classification(data)
        except ValidationError as e:
            raise ClassificationFailed(
                "schema_violation", f"Model response failed validation: {e.error_count()} error(s)"
            ) from e
