# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Connection lifecycle manager.

Binds transport connections to user ids on ``join`` and drives the cleanup
cascade when they go away. It is the only writer of the presence registry.

Presence changes are broadcast only on real transitions: a user's first
connection (offline -> online) and last connection (online -> offline).
Extra tabs of an already online user only receive the current snapshot.

When the last connection of a user goes away, that user's live call is
forced to ``ended`` so the remote peer never keeps a dead call open.
"""

import logging
from typing import Dict, Optional

from bridgeup.core.locks import KeyedLocks
from bridgeup.schemas.realtime import ServerEvents, UserStatusChangeEvent
from bridgeup.services.call_signaling import END_DISCONNECT, CallSignalingService
from bridgeup.services.emitter import RealtimeEmitter
from bridgeup.services.ephemeral import EphemeralRelay
from bridgeup.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class ConnectionLifecycleManager:
    def __init__(
        self,
        presence: PresenceRegistry,
        emitter: RealtimeEmitter,
        calls: CallSignalingService,
        relay: Optional[EphemeralRelay] = None,
    ):
        self._presence = presence
        self._emitter = emitter
        self._calls = calls
        self._relay = relay
        self._bindings: Dict[str, str] = {}
        self._locks = KeyedLocks()

    def user_of(self, sid: str) -> Optional[str]:
        """User bound to a connection by a previous join."""
        return self._bindings.get(sid)

    async def join(self, sid: str, user_id: str) -> bool:
        """
        Bind a connection to a user.

        Re-joining with a different user id first releases the old binding.

        Returns:
            True if the user just came online
        """
        previous = self._bindings.get(sid)
        if previous is not None and previous != user_id:
            logger.info(f"[Presence] sid={sid} switches user {previous} -> {user_id}")
            await self.leave(sid)

        # Bound before waiting so a disconnect during the wait is not lost
        self._bindings[sid] = user_id
        async with self._locks.hold(user_id):
            if self._bindings.get(sid) != user_id:
                logger.info(f"[Presence] sid={sid} left before join as {user_id} completed")
                return False
            came_online = self._presence.register_connection(user_id, sid)
            await self._emitter.join_user_room(sid, user_id)

            if came_online:
                logger.info(f"[Presence] user={user_id} online (sid={sid})")
                await self._broadcast_online_users()
                await self._broadcast_status(user_id, True, skip_sid=sid)
            else:
                logger.debug(
                    f"[Presence] user={user_id} added sid={sid}, "
                    f"{len(self._presence.connections_of(user_id))} connection(s)"
                )
                await self._send_snapshot(sid)
        return came_online

    async def leave(self, sid: str, reason: str = END_DISCONNECT) -> bool:
        """
        Release a connection after disconnect or an explicit offline signal.

        Unknown connections (never joined) are ignored.

        Returns:
            True if the user just went offline
        """
        user_id = self._bindings.pop(sid, None)
        if user_id is None:
            return False

        async with self._locks.hold(user_id):
            went_offline = self._presence.unregister_connection(user_id, sid)
            try:
                await self._emitter.leave_user_room(sid, user_id)
            except Exception as e:
                # The transport may already have dropped the socket's rooms
                logger.debug(f"[Presence] leave room for sid={sid} failed: {e}")

            if not went_offline:
                return False

            logger.info(f"[Presence] user={user_id} offline (sid={sid}, {reason})")
            if self._relay is not None:
                self._relay.forget_user(user_id)
            await self._broadcast_online_users()
            await self._broadcast_status(user_id, False)
            await self._calls.end_calls_for_user(user_id, reason=reason)
        return True

    async def _send_snapshot(self, sid: str) -> None:
        try:
            await self._emitter.emit_to_connection(
                sid, ServerEvents.ONLINE_USERS, self._online_list()
            )
        except Exception as e:
            logger.warning(f"[Presence] snapshot to sid={sid} failed: {e}")

    async def _broadcast_online_users(self) -> None:
        try:
            await self._emitter.broadcast(ServerEvents.ONLINE_USERS, self._online_list())
        except Exception as e:
            logger.warning(f"[Presence] onlineUsers broadcast failed: {e}")

    async def _broadcast_status(
        self, user_id: str, is_online: bool, skip_sid: Optional[str] = None
    ) -> None:
        event = UserStatusChangeEvent(user_id=user_id, is_online=is_online)
        try:
            await self._emitter.broadcast(
                ServerEvents.USER_STATUS_CHANGE, event.to_event(), skip_sid=skip_sid
            )
        except Exception as e:
            logger.warning(f"[Presence] userStatusChange broadcast failed: {e}")

    def _online_list(self):
        return sorted(self._presence.online_user_ids())
