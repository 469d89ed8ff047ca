"""
FastAPI application entrypoint.

Registers routers, configures CORS, initializes telemetry, creates the
session registry on startup and releases every remote store on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docchat.core.config import get_settings
from docchat.core.errors import (
    CredentialError,
    DocChatError,
    OperationTimeoutError,
    SessionStateError,
    UnsupportedDocumentError,
)
from docchat.core.telemetry import setup_telemetry, shutdown_telemetry
from docchat.routers import chat, health, session
from docchat.services.samples import SampleLibrary
from docchat.services.session import SessionRegistry

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (CredentialError, status.HTTP_401_UNAUTHORIZED),
    (SessionStateError, status.HTTP_409_CONFLICT),
    (UnsupportedDocumentError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (OperationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """
    Application lifespan handler.
    Initializes the session registry on startup, deletes stores on shutdown.
    """
    settings = get_settings()

    # Configure logging
    logging.basicConfig(level=settings.log_level)

    # Initialize telemetry
    setup_telemetry(settings)

    # Store in app state for dependency injection
    application.state.sessions = SessionRegistry(settings)
    application.state.samples = SampleLibrary(
        timeout=settings.sample_fetch_timeout_seconds
    )

    logger.info("Document chat API started.")
    yield
    logger.info("Document chat API shutting down.")
    await application.state.sessions.close_all()
    shutdown_telemetry()


async def docchat_error_handler(request: Request, exc: DocChatError) -> JSONResponse:
    """Map the error taxonomy onto HTTP status codes."""
    status_code = status.HTTP_502_BAD_GATEWAY
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "error": "ValueError"},
    )


app = FastAPI(
    title="Document Chat API",
    description="Chat with uploaded documents through Gemini File Search.",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error mapping
app.add_exception_handler(DocChatError, docchat_error_handler)
app.add_exception_handler(ValueError, value_error_handler)

# Register routers
app.include_router(health.router)
app.include_router(session.router)
app.include_router(chat.router)
