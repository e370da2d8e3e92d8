# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Socket.IO emitter used by every realtime service.

There is exactly one addressing scheme: each user has a broadcast group
(room) named ``user:<user_id>`` that all of that user's connections join.
Services never address raw socket ids except for the joining connection's
own onlineUsers snapshot.
"""

import logging
from typing import Any, Optional

from bridgeup.core.config import settings

logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
    """Broadcast group holding all connections of a user."""
    return f"user:{user_id}"


class RealtimeEmitter:
    """Thin wrapper around the Socket.IO server for one namespace."""

    def __init__(self, sio, namespace: Optional[str] = None):
        self._sio = sio
        self._namespace = namespace or settings.SOCKETIO_NAMESPACE

    @property
    def namespace(self) -> str:
        return self._namespace

    async def join_user_room(self, sid: str, user_id: str) -> None:
        await self._sio.enter_room(sid, user_room(user_id), namespace=self._namespace)

    async def leave_user_room(self, sid: str, user_id: str) -> None:
        await self._sio.leave_room(sid, user_room(user_id), namespace=self._namespace)

    async def emit_to_user(self, user_id: str, event: str, data: Any) -> None:
        """Emit to every connection of ``user_id``."""
        await self._sio.emit(
            event, data, room=user_room(user_id), namespace=self._namespace
        )
        logger.debug(f"[Emitter] {event} -> {user_room(user_id)}")

    async def emit_to_connection(self, sid: str, event: str, data: Any) -> None:
        await self._sio.emit(event, data, to=sid, namespace=self._namespace)

    async def broadcast(
        self, event: str, data: Any, skip_sid: Optional[str] = None
    ) -> None:
        """Emit to every connected client of the namespace."""
        await self._sio.emit(
            event, data, namespace=self._namespace, skip_sid=skip_sid
        )
        logger.debug(f"[Emitter] broadcast {event}")
