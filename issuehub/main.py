"""FastAPI application entry point."""

import asyncio
import json
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from . import __version__
from .config import settings
from .database import init_models
from .errors import AuthError, Forbidden, NotFoundError, ObjectStorageError, TooManyConnections
from .routers import (
    attachments_router,
    auth_router,
    comments_router,
    issues_router,
    labels_router,
    notifications_router,
    projects_router,
    workspaces_router,
)
from .services.redis_service import redis_relay
from .websocket import (
    EventName,
    authenticator,
    broadcast_router,
    check_room_access,
    extract_bearer,
    registry,
    route_incoming_message,
    user_room,
)
from .websocket.events import error_message, protocol_message

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

CLOSE_AUTH_FAILED = 4001
CLOSE_TOO_MANY_CONNECTIONS = 4029


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    if settings.db_create_all:
        logger.info("Creating database tables...")
        await init_models()

    logger.info("Connecting to Redis...")
    try:
        await redis_relay.connect()
        await broadcast_router.initialize_relay()
        logger.info("Redis pub/sub relay started")
    except Exception as e:
        if settings.redis_required:
            logger.error(f"Redis connection failed and REDIS_REQUIRED=true: {e}")
            raise RuntimeError(
                f"Redis is required for multi-worker deployment but connection failed: {e}"
            )
        logger.warning(f"Redis connection failed, running in single-worker mode: {e}")

    yield

    # Shutdown
    await registry.clear()
    logger.info("Disconnecting from Redis...")
    await redis_relay.close()
    logger.info("Redis disconnected")


app = FastAPI(
    title="IssueHub API",
    description="Issue tracker with real-time collaboration and notifications",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ObjectStorageError)
async def object_storage_handler(request: Request, exc: ObjectStorageError):
    logger.error(f"Object storage failure on {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "File storage unavailable"},
    )


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    logger.warning(f"Database pool exhausted on {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}: {type(exc).__name__}: {exc}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(workspaces_router)
app.include_router(projects_router)
app.include_router(labels_router)
app.include_router(issues_router)
app.include_router(comments_router)
app.include_router(attachments_router)
app.include_router(notifications_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    redis_health = await redis_relay.status()
    return {
        "status": "healthy",
        "version": __version__,
        "redis": redis_health,
        "websocket": {
            "connections": registry.total_connections,
            "rooms": registry.total_rooms,
        },
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = None):
    """
    WebSocket endpoint for real-time collaboration.

    The token may be passed as ``?token=``, as an ``Authorization: Bearer``
    header, or as the first frame ``{"type": "auth", "data": {"token": ...}}``
    within the handshake window. Failure closes the socket with 4001.

    After authentication the connection is placed in its own ``user:<id>``
    room and receives ``connected``. Other rooms are joined explicitly with
    ``join``; after a reconnect the client must join them again.

    Usage:
        ws://localhost:8000/ws?token=<jwt_token>
    """
    connection = await registry.open(websocket)
    connection_id = connection.connection_id
    ping_task = None

    try:
        await websocket.accept()

        handshake_token = token or extract_bearer(websocket.headers.get("authorization"))
        try:
            user_id = await authenticator.authenticate_handshake(websocket, handshake_token)
        except AuthError as e:
            logger.info(f"WebSocket handshake rejected: {e}")
            await websocket.close(code=CLOSE_AUTH_FAILED, reason=str(e))
            return

        try:
            await registry.bind_user(connection_id, user_id)
        except TooManyConnections as e:
            logger.warning(f"WebSocket connection rejected (limit): {e}")
            await websocket.close(code=CLOSE_TOO_MANY_CONNECTIONS, reason="Too many connections")
            return

        await registry.join(connection_id, user_room(user_id))
        await websocket.send_json(
            protocol_message(
                EventName.CONNECTED,
                {"user_id": str(user_id), "connection_id": connection_id},
            )
        )
        logger.info(
            f"WebSocket connection established: user={user_id}, id={connection_id}, "
            f"total={registry.total_connections}"
        )

        async def server_ping_task():
            """Send periodic pings so idle proxies keep the socket open."""
            try:
                while True:
                    await asyncio.sleep(settings.ws_ping_interval)
                    try:
                        await websocket.send_json(protocol_message(EventName.PING))
                    except Exception:
                        break
            except asyncio.CancelledError:
                pass

        ping_task = asyncio.create_task(server_ping_task())

        while True:
            try:
                raw_message = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_receive_timeout,
                )
            except asyncio.TimeoutError:
                # Nothing received: ping once before treating the socket as dead
                try:
                    await websocket.send_json(protocol_message(EventName.PING))
                    raw_message = await asyncio.wait_for(websocket.receive_text(), timeout=10)
                except (asyncio.TimeoutError, Exception):
                    logger.info(f"Connection timeout for user: {user_id}")
                    break

            if len(raw_message) > settings.ws_max_message_size:
                logger.warning(
                    f"Message too large from user {user_id}: "
                    f"{len(raw_message)} bytes (max: {settings.ws_max_message_size})"
                )
                await broadcast_router.send(
                    connection_id,
                    error_message(
                        "MESSAGE_TOO_LARGE",
                        f"Message exceeds maximum size of {settings.ws_max_message_size} bytes",
                    ),
                )
                continue

            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {user_id}")
                await broadcast_router.send(
                    connection_id, error_message("INVALID_JSON", "Invalid JSON format")
                )
                continue
            if not isinstance(data, dict):
                await broadcast_router.send(
                    connection_id, error_message("INVALID_JSON", "Expected a JSON object")
                )
                continue

            await route_incoming_message(connection, data, room_authorizer=check_room_access)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnect: id={connection_id}, user={connection.user_id}")
    except Exception as e:
        logger.error(f"WebSocket exception for connection {connection_id}: {e}")
    finally:
        if ping_task is not None:
            ping_task.cancel()
            try:
                await ping_task
            except asyncio.CancelledError:
                pass
        await registry.on_disconnect(connection_id)
