import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Header, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatroom.config import settings
from chatroom.errors import ChatError, StorageError
from chatroom.logging_utils import setup_logging, RequestLoggingMiddleware, log_chat_data
from chatroom.metrics import record_chat_event, get_metrics, get_metrics_content_type
from chatroom.reaper import PresenceReaper
from chatroom.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageCreate,
    MessageResponse,
    ParticipantCreate,
    ParticipantResponse,
    StatusResponse,
)
from chatroom.service import ChatService
from chatroom.storage import MessageLog, PresenceStore, check_db_health, dispose_db, init_db


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

presence_store = PresenceStore()
message_log = MessageLog()
chat = ChatService(presence_store, message_log, broadcast=settings.BROADCAST_TARGET)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: create tables, start the presence reaper
    - Shutdown: stop the reaper, release pooled connections
    """
    init_db()
    reaper = PresenceReaper(
        presence_store,
        message_log,
        broadcast=settings.BROADCAST_TARGET,
        interval_seconds=settings.REAP_INTERVAL_SECONDS,
        expiry_window_seconds=settings.EXPIRY_WINDOW_SECONDS,
    )
    app.state.reaper = reaper
    if settings.REAPER_ENABLED:
        reaper.start()
    else:
        logger.info("Reaper disabled by configuration")
    yield
    await reaper.stop()
    dispose_db()


app = FastAPI(
    title="Chatroom API",
    description="Group chat with presence tracking and private messages",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


_EVENT_RESULTS = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_409_CONFLICT: "conflict",
    422: "invalid",
}


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Translate core errors into HTTP responses."""
    result = _EVENT_RESULTS.get(exc.status_code, "error")
    event = getattr(request.state, "chat_event", None)
    if event:
        record_chat_event(event, result)
    log_chat_data(request, result=result)

    if isinstance(exc, StorageError):
        logger.error(f"Storage failure on {request.method} {request.url.path}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def _begin(request: Request, event: str, participant: str | None = None) -> None:
    request.state.chat_event = event
    log_chat_data(request, participant=participant)


def _done(request: Request, event: str, message_id: str | None = None, result: str = "ok") -> None:
    record_chat_event(event, result)
    log_chat_data(request, message_id=message_id, result=result)


def _message_response(message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        from_name=message.from_name,
        to_name=message.to_name,
        text=message.text,
        kind=message.kind,
        time=message.time,
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable, the schema
    is applied and the reaper is running (when enabled). 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    reaper = getattr(request.app.state, "reaper", None)
    if settings.REAPER_ENABLED and (reaper is None or not reaper.running):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Presence reaper not running")

    return HealthResponse(status="ready")


# =============================================================================
# Participant Routes
# =============================================================================

@app.post(
    "/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Name already taken"},
        422: {"description": "Validation error"},
    },
)
async def join(request: Request, body: ParticipantCreate) -> ParticipantResponse:
    """
    Join the room. Announces the participant with a status message.
    """
    _begin(request, "join", body.name)
    participant = chat.join(body.name)
    _done(request, "join", result="created")
    return ParticipantResponse(name=participant.name, last_seen=participant.last_seen)


@app.get("/participants", response_model=list[ParticipantResponse])
async def list_participants() -> list[ParticipantResponse]:
    """Everyone currently present, in join order."""
    participants = chat.participants()
    logger.debug(f"GET /participants: {len(participants)} present")
    return [ParticipantResponse(name=p.name, last_seen=p.last_seen) for p in participants]


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"description": "Invalid body or unknown sender"}},
)
async def post_message(
    request: Request,
    body: MessageCreate,
    user: Annotated[str | None, Header(description="Sender name")] = None,
) -> MessageResponse:
    """
    Post a public or private message as the participant named in the User header.
    """
    _begin(request, "post", user)
    message = chat.post(user, body.to, body.text, body.kind)
    _done(request, "post", message_id=message.id, result="created")
    return _message_response(message)


@app.get("/messages", response_model=list[MessageResponse])
async def list_messages(
    user: Annotated[str | None, Header(description="Reader name")] = None,
    limit: Annotated[str | None, Query(description="Return only the last N visible messages")] = None,
) -> list[MessageResponse]:
    """
    Messages visible to the reader, oldest first.

    A limit that is not a positive integer is ignored.
    """
    messages = chat.read(user, limit)
    logger.info(f"GET /messages: returned {len(messages)} messages for {user!r} (limit={limit})")
    return [_message_response(m) for m in messages]


@app.put(
    "/messages/{message_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Not the author"},
        404: {"model": ErrorResponse, "description": "Message not found"},
        422: {"description": "Invalid body or unknown sender"},
    },
)
async def edit_message(
    request: Request,
    message_id: str,
    body: MessageCreate,
    user: Annotated[str | None, Header(description="Author name")] = None,
) -> MessageResponse:
    """Replace the recipient, text and kind of one of your messages."""
    _begin(request, "edit", user)
    log_chat_data(request, message_id=message_id)
    message = chat.edit(user, message_id, body.to, body.text, body.kind)
    _done(request, "edit", message_id=message_id)
    return _message_response(message)


@app.delete(
    "/messages/{message_id}",
    response_model=StatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not the author"},
        404: {"model": ErrorResponse, "description": "Message not found"},
    },
)
async def delete_message(
    request: Request,
    message_id: str,
    user: Annotated[str | None, Header(description="Author name")] = None,
) -> StatusResponse:
    """Delete one of your messages."""
    _begin(request, "delete", user)
    log_chat_data(request, message_id=message_id)
    chat.delete(user, message_id)
    _done(request, "delete", message_id=message_id)
    return StatusResponse(status="ok")


# =============================================================================
# Presence Route
# =============================================================================

@app.post(
    "/status",
    response_model=StatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown participant"}},
)
async def heartbeat(
    request: Request,
    user: Annotated[str | None, Header(description="Participant name")] = None,
) -> StatusResponse:
    """Keep the participant named in the User header present."""
    _begin(request, "heartbeat", user)
    chat.heartbeat(user)
    _done(request, "heartbeat")
    return StatusResponse(status="ok")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics: HTTP traffic, chat outcomes and
    reaper activity.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
