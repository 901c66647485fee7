import logging

from .activity import STATUS_ERROR, STATUS_SUCCESS, ActivityRecorder
from .classifier import Classifier
from .destinations import Destinations
from .schemas import (
    ACTION_APPEND_TO_PROJECT,
    ACTION_NEW_IDEA,
    ACTION_SAVE_LINK,
    ClassificationResult,
    inbox_result,
)

logger = logging.getLogger(__name__)


"""
Capture pipeline: classify, route to one destination, record the run.

A run is started after the webhook has acknowledged the caller, so nothing
here can report back to it. There is no queue and no retry: a capture whose
destination write fails is recorded as an error in the activity log, and a
process crash mid-run loses that capture.
"""


PROCESSING_ERROR_TITLE = "Processing error"


def dispatch(
    destinations: Destinations, result: ClassificationResult, raw_text: str, source: str
) -> None:
    """
    Run exactly one destination handler for the result. Handler errors
    propagate.
    """
    if result.action == ACTION_SAVE_LINK:
        destinations.save_link(result, raw_text)
    elif result.action == ACTION_NEW_IDEA:
        destinations.new_idea(result)
    elif result.action == ACTION_APPEND_TO_PROJECT:
        destinations.append_to_project(result)
    else:
        destinations.inbox(result, raw_text, source)


class CapturePipeline:
    def __init__(
        self,
        classifier: Classifier,
        destinations: Destinations,
        recorder: ActivityRecorder,
    ) -> None:
        self.classifier = classifier
        self.destinations = destinations
        self.recorder = recorder

    def run(self, raw_text: str, source: str) -> None:
        """
        Process one capture end to end. Never raises; the outcome is only
        visible in the logs and the activity table.
        """
        try:
            result = self.classifier.classify(raw_text, source)
            dispatch(self.destinations, result, raw_text, source)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(
                f"Capture processing failed: {error_message}",
                extra={
                    "component": "pipeline",
                    "operation": "run",
                    "source": source,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            placeholder = inbox_result(title=PROCESSING_ERROR_TITLE, comment=raw_text or PROCESSING_ERROR_TITLE)
            self.recorder.record(raw_text, source, placeholder, STATUS_ERROR, error_message)
            return

        self.recorder.record(raw_text, source, result, STATUS_SUCCESS)
        logger.info(
            f'Processed: [{source}] {result.action} - "{result.title}"',
            extra={"component": "pipeline", "operation": "run", "source": source, "action": result.action},
        )
