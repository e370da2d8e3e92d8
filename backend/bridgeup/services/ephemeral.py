# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Typing indicator and notification relay.

Fire-and-forget: signals go to the receiver's user room if the receiver is
online and are silently dropped otherwise. Nothing is queued or persisted.

Typing contract: the receiver treats an indicator as stopped once ``ttl``
seconds pass without a repeat ``isTyping=true``. The server does not track
that timeout, it only forwards signals and drops repeats that arrive faster
than the throttle window.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from bridgeup.core.config import settings
from bridgeup.schemas.realtime import ServerEvents, UserTypingEvent
from bridgeup.services.emitter import RealtimeEmitter
from bridgeup.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class EphemeralRelay:
    def __init__(
        self,
        presence: PresenceRegistry,
        emitter: RealtimeEmitter,
        ttl_seconds: Optional[int] = None,
        throttle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._presence = presence
        self._emitter = emitter
        self._ttl = (
            settings.TYPING_INDICATOR_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._throttle = (
            settings.TYPING_THROTTLE_SECONDS
            if throttle_seconds is None
            else throttle_seconds
        )
        self._clock = clock
        # (sender, receiver) -> monotonic time of the last relayed isTyping=true
        self._typing_since: Dict[Tuple[str, str], float] = {}

    async def notify_typing(
        self,
        sender_id: str,
        receiver_id: str,
        is_typing: bool,
        sender_name: Optional[str] = None,
    ) -> bool:
        """
        Relay a typing signal as ``userTyping``.

        Returns:
            True if the signal was emitted
        """
        key = (sender_id, receiver_id)
        if not self._presence.is_online(receiver_id):
            self._typing_since.pop(key, None)
            return False

        now = self._clock()
        if is_typing:
            last = self._typing_since.get(key)
            if last is not None and now - last < self._throttle:
                return False
            self._typing_since[key] = now
        else:
            self._typing_since.pop(key, None)

        event = UserTypingEvent(
            sender_id=sender_id,
            sender_name=sender_name,
            is_typing=is_typing,
            ttl=self._ttl,
        )
        return await self._emit(receiver_id, ServerEvents.USER_TYPING, event.to_event())

    async def deliver_notification(self, recipient_id: str, notification: Any) -> bool:
        """Push a ``notification`` event to a user if online."""
        if not self._presence.is_online(recipient_id):
            logger.debug(f"[Relay] notification for offline user={recipient_id} dropped")
            return False
        return await self._emit(recipient_id, ServerEvents.NOTIFICATION, notification)

    def forget_user(self, user_id: str) -> None:
        """Drop throttle state involving a user that went offline."""
        for key in [k for k in self._typing_since if user_id in k]:
            del self._typing_since[key]

    async def _emit(self, user_id: str, event: str, data: Any) -> bool:
        try:
            await self._emitter.emit_to_user(user_id, event, data)
        except Exception as e:
            logger.warning(f"[Relay] {event} to user={user_id} failed: {e}")
            return False
        return True
