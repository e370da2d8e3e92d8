# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from bridgeup.api.api import api_router
from bridgeup.api.ws import register_realtime_namespace
from bridgeup.core.config import settings
from bridgeup.core.exceptions import (
    RealtimeError,
    RequestValidationError,
    http_exception_handler,
    python_exception_handler,
    realtime_exception_handler,
    validation_exception_handler,
)
from bridgeup.core.logging import setup_logging
from bridgeup.core.shutdown import shutdown_manager
from bridgeup.core.socketio import create_socketio_app, get_sio
from bridgeup.db.base import Base
from bridgeup.db.session import SessionLocal, engine
from bridgeup.models import *  # noqa: F401,F403
from bridgeup.services.realtime import RealtimeServices, build_realtime_services

# Initialize logging at module level for use in lifespan
setup_logging()
_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Handles startup and shutdown events.
    """
    logger = _logger

    # ==================== STARTUP ====================
    if settings.DB_AUTO_CREATE:
        Base.metadata.create_all(bind=engine)
        logger.info("✓ Database tables ensured")

    logger.info("=" * 60)
    logger.info("Application startup completed successfully!")
    logger.info("=" * 60)

    # ==================== YIELD (app is running) ====================
    yield

    # ==================== SHUTDOWN ====================
    logger.info("Shutting down application...")
    await shutdown_manager.initiate_shutdown()

    realtime: RealtimeServices = app.state.realtime
    try:
        ended = await asyncio.wait_for(
            realtime.calls.shutdown(), timeout=settings.GRACEFUL_SHUTDOWN_TIMEOUT
        )
        logger.info(f"✓ Ended {ended} live call(s)")
    except asyncio.TimeoutError:
        logger.warning(
            f"Call teardown did not finish within {settings.GRACEFUL_SHUTDOWN_TIMEOUT}s"
        )

    logger.info("✓ Application shutdown completed")


def create_app(
    sio: Optional[socketio.AsyncServer] = None,
    realtime: Optional[RealtimeServices] = None,
) -> FastAPI:
    # Toggle API docs/OpenAPI via environment (settings.ENABLE_API_DOCS, default True)
    enable_docs = settings.ENABLE_API_DOCS
    openapi_url = f"{settings.API_PREFIX}/openapi.json" if enable_docs else None
    docs_url = f"{settings.API_PREFIX}/docs" if enable_docs else None
    redoc_url = f"{settings.API_PREFIX}/redoc" if enable_docs else None

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Realtime presence, messaging and call signaling API",
        version=settings.VERSION,
        openapi_url=openapi_url,
        docs_url=docs_url,
        redoc_url=redoc_url,
        lifespan=lifespan,
    )
    logger = _logger

    # Presence, calls and messaging shared by HTTP endpoints and Socket.IO
    sio = sio or get_sio()
    if realtime is None:
        realtime = build_realtime_services(sio, SessionLocal)
        register_realtime_namespace(sio, realtime)
    app.state.realtime = realtime
    app.state.sio = sio

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Skip logging for health check/probe requests (root path)
        if request.url.path == "/":
            return await call_next(request)

        # Use first 8 characters of UUID as request ID
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start_time = time.time()
        client_ip = request.client.host if request.client else "Unknown"

        logger.info(
            f"request : {request.method} {request.url.path} {request.query_params} {request_id} {client_ip}"
        )

        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            f"response: {request.method} {request.url.path} {request.query_params} {request_id} {client_ip} {response.status_code} {process_time:.2f}ms"
        )

        # Add request ID to response headers for client-side tracking
        response.headers["X-Request-ID"] = request_id
        return response

    # Setup CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register exception handlers
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RealtimeError, realtime_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, python_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # Root path
    @app.get("/")
    async def root():
        """
        Root path, returns API information
        """
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "api_prefix": settings.API_PREFIX,
            "socketio_path": settings.SOCKETIO_PATH,
        }

    return app


app = create_app()

# ASGI entrypoint: Socket.IO at SOCKETIO_PATH, everything else to FastAPI
asgi_app = create_socketio_app(app.state.sio, app)
