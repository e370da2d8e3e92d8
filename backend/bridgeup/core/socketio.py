# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Socket.IO server configuration and initialization.

This module provides the Socket.IO server instance, optionally backed by a
Redis adapter so room emission reaches clients connected to other workers.
"""

import logging
from typing import Any, Optional

import socketio

from bridgeup.core.config import settings

logger = logging.getLogger(__name__)


def create_socketio_server() -> socketio.AsyncServer:
    """
    Create and configure the Socket.IO server instance.

    Returns:
        socketio.AsyncServer: Configured Socket.IO server
    """
    mgr = None
    if settings.SOCKETIO_REDIS_ENABLED:
        try:
            mgr = socketio.AsyncRedisManager(settings.REDIS_URL)
            logger.info(
                f"Socket.IO Redis manager initialized with {settings.REDIS_URL}"
            )
        except Exception as e:
            logger.warning(
                f"Failed to create Redis manager: {e}, falling back to in-memory"
            )
            mgr = None

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.cors_origin_list or "*",
        ping_interval=settings.SOCKETIO_PING_INTERVAL,
        ping_timeout=settings.SOCKETIO_PING_TIMEOUT,
        max_http_buffer_size=settings.SOCKETIO_MAX_HTTP_BUFFER_SIZE,
        logger=False,  # Use our own logger
        engineio_logger=False,
        client_manager=mgr,
    )

    return sio


def create_socketio_app(
    sio: socketio.AsyncServer, other_asgi_app: Optional[Any] = None
) -> socketio.ASGIApp:
    """
    Create ASGI app for Socket.IO.

    Args:
        sio: The Socket.IO server instance
        other_asgi_app: ASGI app that receives every non Socket.IO request

    Returns:
        socketio.ASGIApp: ASGI application wrapping both
    """
    return socketio.ASGIApp(
        sio,
        other_asgi_app=other_asgi_app,
        socketio_path=settings.SOCKETIO_PATH,
    )


# Global Socket.IO server instance (lazy initialized)
_sio_instance: socketio.AsyncServer | None = None


def get_sio() -> socketio.AsyncServer:
    """
    Get or create the global Socket.IO server instance.

    Returns:
        socketio.AsyncServer: The Socket.IO server instance
    """
    global _sio_instance
    if _sio_instance is None:
        _sio_instance = create_socketio_server()
    return _sio_instance
