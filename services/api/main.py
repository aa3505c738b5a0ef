from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Iterator

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from site_copilot.config import Settings, load_settings
from site_copilot.errors import (
    CopilotError,
    GateError,
    GenerationError,
    NotFound,
    SchemaViolation,
    ToolPrecondition,
    Unauthorized,
)
from site_copilot.events import ReleaseEventPublisher
from site_copilot.firestore_store import FirestoreStore
from site_copilot.logging_config import set_trace_id, setup_logging
from site_copilot.orchestrator import TurnOrchestrator
from site_copilot.store import InMemoryStore
from site_copilot.vertex_ai_adapter import VertexAIAdapter

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[CopilotError], int] = {
    NotFound: 404,
    Unauthorized: 401,
    SchemaViolation: 400,
    GateError: 400,
    ToolPrecondition: 409,
    GenerationError: 500,
}


class TurnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    conversation_id: str | None = Field(default=None, alias="conversationId")
    site_id: str | None = Field(default=None, alias="siteId")
    scope: dict[str, Any] | None = None


def build_orchestrator(settings: Settings) -> TurnOrchestrator:
    """Wire the store, model adapter and release events from settings."""
    # Use Firestore outside dev, in-memory for dev
    store = InMemoryStore() if settings.is_dev else FirestoreStore(project_id=settings.project_id)
    client = (
        VertexAIAdapter(
            project_id=settings.project_id,
            location=settings.vertex_location,
            model_name=settings.vertex_model,
        )
        if settings.project_id
        else None
    )
    events = (
        ReleaseEventPublisher(settings.project_id, topic_id=settings.release_events_topic)
        if settings.project_id
        else None
    )
    return TurnOrchestrator(store, settings=settings, client=client, events=events)


def status_for(exc: CopilotError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


def _ndjson(first: dict[str, Any], records: Iterator[dict[str, Any]]) -> Iterator[str]:
    yield json.dumps(first, default=str) + "\n"
    for record in records:
        yield json.dumps(record, default=str) + "\n"


def create_app(orchestrator: TurnOrchestrator | None = None) -> FastAPI:
    app = FastAPI(title="Site Copilot API", version="0.1.0")
    app.state.orchestrator = orchestrator

    def copilot() -> TurnOrchestrator:
        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator(load_settings())
        return app.state.orchestrator

    @app.middleware("http")
    async def trace_requests(request: Request, call_next):
        header = request.headers.get("X-Cloud-Trace-Context", "")
        trace_id = header.split("/", 1)[0] or str(uuid.uuid4())
        set_trace_id(trace_id)
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(CopilotError)
    async def copilot_error(request: Request, exc: CopilotError) -> JSONResponse:
        status = status_for(exc)
        body: dict[str, Any] = {"error": exc.message}
        if isinstance(exc, SchemaViolation) and exc.violations:
            body["violations"] = exc.violations
        if status >= 500:
            logger.error("Request failed", extra={"path": request.url.path, "error": exc.message})
        else:
            logger.info("Request rejected", extra={"path": request.url.path, "status": status, "error": exc.message})
        return JSONResponse(body, status_code=status)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error", extra={"path": request.url.path}, exc_info=exc)
        return JSONResponse({"error": "Internal error"}, status_code=500)

    @app.post("/v1/turns")
    async def post_turn(
        request: TurnRequest,
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        result = await asyncio.to_thread(
            copilot().handle_turn,
            request.message,
            conversation_id=request.conversation_id,
            site_id=request.site_id,
            scope=request.scope,
            user_id=x_user_id,
        )
        return JSONResponse(result.envelope(), status_code=409 if result.error else 200)

    @app.post("/v1/turns:stream")
    async def stream_turn(
        request: TurnRequest,
        x_user_id: str | None = Header(default=None),
    ) -> StreamingResponse:
        records = copilot().stream_turn(
            request.message,
            conversation_id=request.conversation_id,
            site_id=request.site_id,
            scope=request.scope,
            user_id=x_user_id,
        )
        # Pull the first record here so lookup and ownership errors become HTTP errors
        first = await asyncio.to_thread(next, records)
        return StreamingResponse(_ndjson(first, records), media_type="application/x-ndjson")

    @app.get("/v1/conversations/{conversation_id}")
    async def get_conversation(
        conversation_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        orchestrator = copilot()
        state = orchestrator.load_conversation(conversation_id, user_id=x_user_id)
        messages = orchestrator.store.list_messages(conversation_id)
        return JSONResponse(
            {
                "conversation": state.model_dump(mode="json"),
                "messages": [message.model_dump(mode="json") for message in messages],
            }
        )

    @app.get("/v1/sites/{site_id}")
    async def get_site(site_id: str, x_user_id: str | None = Header(default=None)) -> JSONResponse:
        site = copilot().load_site(site_id, user_id=x_user_id)
        return JSONResponse(site.model_dump(mode="json"))

    @app.post("/v1/sites/{site_id}/sections/{section_instance_id}:undo")
    async def undo_section(
        site_id: str,
        section_instance_id: str,
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        body = await asyncio.to_thread(
            copilot().undo_section,
            site_id,
            section_instance_id,
            user_id=x_user_id,
        )
        return JSONResponse(body)

    @app.get("/health")
    async def healthcheck() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


settings = load_settings()
setup_logging(environment=settings.environment, project_id=settings.project_id)

app = create_app()
