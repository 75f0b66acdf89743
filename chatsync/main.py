"""
FastAPI Application Entry Point.
Initializes the FastAPI app with middleware, CORS, error handlers and routes.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from chatsync import __version__
from chatsync.config import settings
from chatsync.core.exceptions import (
    ConversationMissing,
    InvalidSendState,
    MessageNotFound,
    NotAuthorized,
    RecordMissing,
    SendFailure,
    UploadFailure,
)
from chatsync.core.logging_config import configure_logging
from chatsync.core.record_store import record_store
from chatsync.core.websocket import connection_manager
from chatsync.schemas.message import DraftResponse
from chatsync.services.presence_service import presence_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    configure_logging()
    await record_store.connect()
    logger.info(f"chatsync started ({settings.environment}, store={settings.record_store_backend})")
    yield
    # Shutdown: best-effort offline assertion for everyone still connected
    await connection_manager.close_all()
    await presence_registry.stop_all()
    await record_store.disconnect()


# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)


# Initialize FastAPI application
app = FastAPI(
    title="chatsync",
    description="Two-party message synchronization and presence engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter state and error handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# CORS Middleware
# WebSocket CORS is handled by Socket.IO itself (via cors_allowed_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain error handlers
@app.exception_handler(InvalidSendState)
async def invalid_send_state_handler(request: Request, exc: InvalidSendState):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UploadFailure)
async def upload_failure_handler(request: Request, exc: UploadFailure):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "draft": DraftResponse.from_draft(exc.draft).model_dump()},
    )


@app.exception_handler(ConversationMissing)
async def conversation_missing_handler(request: Request, exc: ConversationMissing):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "draft": DraftResponse.from_draft(exc.draft).model_dump()},
    )


@app.exception_handler(SendFailure)
async def send_failure_handler(request: Request, exc: SendFailure):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "draft": DraftResponse.from_draft(exc.draft).model_dump()},
    )


@app.exception_handler(NotAuthorized)
async def not_authorized_handler(request: Request, exc: NotAuthorized):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(MessageNotFound)
async def message_not_found_handler(request: Request, exc: MessageNotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(RecordMissing)
async def record_missing_handler(request: Request, exc: RecordMissing):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# Health Check Endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "environment": settings.environment,
            "record_store": settings.record_store_backend,
            "blob_store": settings.blob_store_backend,
            "active_connections": len(connection_manager.connections),
        }
    )


# Include API routers
from chatsync.api.v1 import conversations, messages, users

app.include_router(
    messages.router,
    prefix="/api/v1/messages",
    tags=["Messages"]
)

app.include_router(
    conversations.router,
    prefix="/api/v1/conversations",
    tags=["Conversations"]
)

app.include_router(
    users.router,
    prefix="/api/v1/users",
    tags=["Users"]
)

# Save reference to FastAPI app (for testing)
fastapi_app = app

# Wrap FastAPI inside Socket.IO ASGIApp - this becomes the final ASGI app
app = connection_manager.get_asgi_app(fastapi_app)
