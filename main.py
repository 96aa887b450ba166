"""
FastAPI Server-Sent Events Chat Server
Posted messages are validated, escaped, kept in a bounded history and
pushed to every connected event stream
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import asyncio

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from sse_chat import (
    Broadcaster,
    ChatServerError,
    ConnectionRegistry,
    MessageDatabase,
    MessageHandler,
    MessageStore,
    ServerConfig,
    StreamSession,
    get_logger,
    log_security_event,
    log_system_event,
    parse_json_body,
    set_log_level,
)
from sse_chat.constants import (
    DB_KEEP_MESSAGES,
    DEFAULT_RECENT_LIMIT,
    MAX_HISTORY_MESSAGES,
    MAX_MESSAGE_LENGTH,
    MAX_USERNAME_LENGTH,
    SSE_HEADERS,
)
from sse_chat.models import format_timestamp, utc_now

logger = get_logger()

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

router = APIRouter()


def get_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_store(request: Request) -> MessageStore:
    return request.app.state.store


def get_message_handler(request: Request) -> MessageHandler:
    return request.app.state.message_handler


def get_database(request: Request) -> Optional[MessageDatabase]:
    return request.app.state.database


async def background_cleanup(database: MessageDatabase, interval_seconds: int):
    """Background task trimming durable storage to the newest messages"""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await database.cleanup_old_messages(DB_KEEP_MESSAGES)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Background cleanup error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    config: ServerConfig = app.state.config
    logger.info("SSE Chat Server starting up...")

    cleanup_task = None
    if config.persistence_enabled:
        database = MessageDatabase(config.database_path)
        await database.initialize()
        history = await database.get_recent_messages(MAX_HISTORY_MESSAGES)
        loaded = await app.state.store.load(history)
        log_system_event("history_loaded", f"{loaded} messages from {config.database_path}")

        app.state.database = database
        app.state.message_handler.database = database
        cleanup_task = asyncio.create_task(
            background_cleanup(database, config.cleanup_interval_seconds)
        )

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
    await app.state.registry.close_all()
    if app.state.database is not None:
        await app.state.database.close()
    logger.info("SSE Chat Server shutting down...")


@router.get("/", response_class=HTMLResponse)
async def root(request: Request):
    """Serve the chat interface"""
    return templates.TemplateResponse(
        request=request,
        name="chat.html",
        context={
            "max_username_length": MAX_USERNAME_LENGTH,
            "max_message_length": MAX_MESSAGE_LENGTH,
            "recent_limit": DEFAULT_RECENT_LIMIT,
        },
    )


class EventStreamResponse(StreamingResponse):
    """Event stream that closes its session however the response ends"""

    def __init__(self, session: StreamSession, is_disconnected=None):
        super().__init__(
            session.frames(is_disconnected),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
        self.session = session

    async def __call__(self, scope, receive, send):
        # covers clients that leave before frames() is first iterated
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.session.close()


@router.get("/events")
async def events(
    request: Request,
    config: ServerConfig = Depends(get_config),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Long-lived event stream; the first frame carries the new client id"""
    client_ip = request.client.host if request.client else "unknown"
    session = StreamSession(registry, ip_address=client_ip, buffer_size=config.stream_buffer_size)

    try:
        await session.open()
    except Exception as e:
        logger.error(f"Failed to establish SSE connection: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "Failed to establish SSE connection",
            },
        )

    return EventStreamResponse(session, request.is_disconnected)


@router.post("/messages", status_code=201)
async def post_message(request: Request, handler: MessageHandler = Depends(get_message_handler)):
    """Accept a chat message and broadcast it to every live stream"""
    payload = parse_json_body(await request.body())
    chat_message = await handler.handle_post(payload)

    logger.info(f"Message sent successfully - ID: {chat_message.id}")
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Message sent successfully",
            "data": chat_message.to_dict(),
        },
    )


@router.get("/messages/recent")
async def recent_messages(
    limit: int = Query(DEFAULT_RECENT_LIMIT),
    store: MessageStore = Depends(get_store),
):
    """Newest messages in acceptance order, limit clamped to 1..100"""
    limit = max(1, min(limit, MAX_HISTORY_MESSAGES))
    messages = await store.recent(limit)
    return {
        "success": True,
        "messages": [message.to_dict() for message in messages],
        "count": len(messages),
    }


@router.get("/health")
async def health_check(
    registry: ConnectionRegistry = Depends(get_registry),
    store: MessageStore = Depends(get_store),
    database: Optional[MessageDatabase] = Depends(get_database),
):
    """Health check endpoint"""
    if database is None:
        database_status = "disabled"
    elif await database.is_connected():
        database_status = "connected"
    else:
        database_status = "disconnected"

    healthy = database_status != "disconnected"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "timestamp": format_timestamp(utc_now()),
            "connections": registry.count(),
            "messages": len(store),
            "database": database_status,
        },
    )


@router.get("/stats")
async def get_stats(
    registry: ConnectionRegistry = Depends(get_registry),
    handler: MessageHandler = Depends(get_message_handler),
    database: Optional[MessageDatabase] = Depends(get_database),
):
    """Get server statistics"""
    stats = {
        "server": "SSE Chat Server",
        "timestamp": format_timestamp(utc_now()),
        "connections": registry.stats(),
        "messages": handler.get_message_stats(),
        "database": None,
    }
    if database is not None:
        try:
            stats["database"] = await database.get_stats()
        except Exception as e:
            logger.error(f"Database stats failed: {e}")
            stats["database"] = {"error": "unavailable"}
    return stats


async def chat_error_handler(request: Request, exc: ChatServerError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc.__cause__ or exc}")
    else:
        logger.warning(f"[API] {request.method} {request.url.path} - {exc.error}: {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        logger.warning(f"[404] Unknown route accessed: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested resource was not found",
                "path": request.url.path,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    logger.warning(f"[API] {request.method} {request.url.path} - invalid parameters: {details}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "Bad Request",
            "message": "Invalid request parameters",
            "details": details,
        },
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler; internal detail stays in the log"""
    logger.exception(f"Unhandled exception: {exc}")
    log_security_event("unhandled_exception", {
        "path": str(request.url.path),
        "error": type(exc).__name__
    })
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
        },
    )


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """
    Create the application with its own store, registry and handler

    Args:
        config: Server configuration, read from the environment when None

    Returns:
        Configured FastAPI app
    """
    config = config or ServerConfig.from_env()
    set_log_level(config.log_level)

    app = FastAPI(
        title="SSE Chat Server",
        description="Real-time chat over Server-Sent Events with bounded history",
        version="1.0.0",
        lifespan=lifespan,
    )

    store = MessageStore(MAX_HISTORY_MESSAGES)
    registry = ConnectionRegistry()
    app.state.config = config
    app.state.store = store
    app.state.registry = registry
    app.state.database = None
    app.state.message_handler = MessageHandler(store, Broadcaster(registry))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatServerError, chat_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(router)
    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

    return app


if __name__ == "__main__":
    server_config = ServerConfig.from_env()
    logger.info("Starting SSE Chat Server...")

    # single worker: the registry and history live in this process
    uvicorn.run(
        create_app(server_config),
        host=server_config.host,
        port=server_config.port,
        log_level=server_config.log_level.lower(),
        access_log=True,
        workers=1,
    )
