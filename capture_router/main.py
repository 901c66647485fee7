import hmac
import logging
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from .activity import ACTIVITY_HEADER, ActivityRecorder
from .classifier import Classifier
from .config import ConfigurationError, config
from .db import SessionLocal, engine, init_db
from .destinations import Destinations
from .llm import build_completion_client
from .logging_config import configure_logging
from .pipeline import CapturePipeline
from .registry import RegistryLoader
from .schemas import WebhookBody
from .store import SqlDocumentStore, SqlTableStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Capture Router", version="0.1.0")
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def build_pipeline(table_store, document_store, completion) -> CapturePipeline:
    """
    Wire the pipeline from its capabilities. Every run shares these
    instances; none of them holds per-capture state.
    """
    registry_loader = RegistryLoader(table_store)
    return CapturePipeline(
        classifier=Classifier(registry_loader, completion),
        destinations=Destinations(table_store, document_store, registry_loader),
        recorder=ActivityRecorder(table_store),
    )


@app.on_event("startup")
def initialize() -> None:
    """
    Configure logging, ensure the store tables exist and build the
    pipeline once for the lifetime of the process.
    """
    configure_logging(json_logs=config.LOG_FORMAT == "json", log_level=config.LOG_LEVEL)
    init_db(engine)
    app.state.pipeline = build_pipeline(
        SqlTableStore(SessionLocal),
        SqlDocumentStore(SessionLocal),
        build_completion_client(),
    )
    logger.info("Capture router started", extra={"component": "main", "operation": "startup"})
    logger.info(f"Configuration: {config.to_dict()}")


def get_pipeline(request: Request) -> CapturePipeline:
    return request.app.state.pipeline


def _is_authorized(authorization: Optional[str]) -> bool:
    secret = config.optional("WEBHOOK_SECRET")
    if not secret:
        return True
    return hmac.compare_digest((authorization or "").encode("utf-8"), f"Bearer {secret}".encode("utf-8"))


@app.get("/health")
def health_check() -> dict:
    """
    Basic health endpoint used to verify that the service is running.
    """
    return {"status": "ok"}


@app.post("/webhook")
async def webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: CapturePipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    Accept a capture and acknowledge it immediately.

    Classification and routing run as a background task after the response
    has been sent, because callers such as IFTTT time out quickly. The
    response never reflects the routing outcome.
    """
    if not _is_authorized(request.headers.get("authorization")):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    try:
        raw_body = await request.json()
    except ValueError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request body",
                "details": [{"type": "json_invalid", "msg": str(e)}],
            },
        )

    try:
        payload = WebhookBody.model_validate(raw_body)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request body",
                "details": e.errors(include_url=False, include_context=False, include_input=False),
            },
        )

    logger.info(
        f"Capture accepted from {payload.source} ({len(payload.text)} chars)",
        extra={"component": "webhook", "operation": "accept", "source": payload.source},
    )
    if payload.timestamp:
        logger.debug(f"Client timestamp: {payload.timestamp}")

    background_tasks.add_task(pipeline.run, payload.text, payload.source)
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "accepted"})


@app.get("/activity-log", response_class=HTMLResponse)
def activity_log(
    request: Request,
    limit: int = config.ACTIVITY_PAGE_SIZE,
    pipeline: CapturePipeline = Depends(get_pipeline),
) -> HTMLResponse:
    """
    Read-only view of the most recent pipeline runs, newest first.
    """
    limit = max(1, min(limit, config.ACTIVITY_PAGE_MAX))
    try:
        rows = pipeline.recorder.recent(limit)
    except ConfigurationError as e:
        return HTMLResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=str(e))

    return templates.TemplateResponse(
        request,
        "activity_log.html",
        {"header": ACTIVITY_HEADER, "rows": rows, "limit": limit},
    )
