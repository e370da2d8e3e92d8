# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Realtime namespace for Socket.IO.

Handles presence (join/user-online/user-offline/disconnect), typing and
notification relay, socket-side read receipts, and WebRTC call signaling.
Handlers never raise to the transport: errors are acknowledged as
``{"error": ...}`` and logged.
"""

import logging
import uuid
from typing import Dict, Optional

import socketio

from bridgeup.api.ws.context_decorators import (
    auto_payload_validation,
    require_joined_user,
)
from bridgeup.api.ws.events import (
    AnswerCallPayload,
    CallAck,
    CallControlPayload,
    CallUserPayload,
    ClientEvents,
    GenericAck,
    IceCandidatePayload,
    JoinAck,
    JoinPayload,
    MarkAsReadPayload,
    MarkReadAck,
    NotificationPayload,
    TypingPayload,
    VideoChatMessagePayload,
)
from bridgeup.core.config import settings
from bridgeup.core.exceptions import RealtimeError
from bridgeup.core.security import decode_user_id
from bridgeup.core.shutdown import shutdown_manager
from bridgeup.services.call_state import CallSession, CallState
from bridgeup.services.realtime import RealtimeServices

logger = logging.getLogger(__name__)

USER_OFFLINE_REASON = "offline"


def _error_ack(e: RealtimeError) -> dict:
    return {"error": e.code}


def _call_ack(session: CallSession) -> dict:
    return CallAck(
        success=session.state != CallState.FAILED,
        call_id=session.call_id,
        state=session.state.value,
        reason=session.end_reason if session.state.is_terminal else None,
    ).model_dump(by_alias=True, exclude_none=True)


class RealtimeNamespace(socketio.AsyncNamespace):
    """
    Socket.IO namespace for presence, messaging side-channels and calls.

    The ``join`` payload is trusted: it carries the user id of an already
    authenticated HTTP session. With SOCKETIO_REQUIRE_AUTH the handshake
    token subject must match it.
    """

    def __init__(self, services: RealtimeServices, namespace: Optional[str] = None):
        super().__init__(namespace or settings.SOCKETIO_NAMESPACE)
        self.services = services

        # Map hyphenated / camelCase event names to handler methods
        self._event_handlers: Dict[str, str] = {
            ClientEvents.USER_ONLINE: "on_user_online",
            ClientEvents.USER_OFFLINE: "on_user_offline",
            ClientEvents.MARK_AS_READ: "on_mark_as_read",
            ClientEvents.NEW_NOTIFICATION: "on_new_notification",
            ClientEvents.CALL_USER: "on_call_user",
            ClientEvents.ANSWER_CALL: "on_answer_call",
            ClientEvents.REJECT_CALL: "on_reject_call",
            ClientEvents.CANCEL_CALL: "on_cancel_call",
            ClientEvents.END_CALL: "on_end_call",
            ClientEvents.ICE_CANDIDATE: "on_ice_candidate",
            ClientEvents.VIDEO_CHAT_MESSAGE: "on_video_chat_message",
        }

    async def trigger_event(self, event: str, sid: str, *args):
        """
        Override trigger_event to handle event names that are not identifiers.

        Args:
            event: Event name (e.g., 'call-user')
            sid: Socket ID
            *args: Event arguments

        Returns:
            Result from the event handler
        """
        if event in self._event_handlers:
            handler = getattr(self, self._event_handlers[event], None)
            if handler:
                logger.debug(f"[WS] routing '{event}' sid={sid}")
                return await handler(sid, *args)

        return await super().trigger_event(event, sid, *args)

    # ============================================================
    # Connection lifecycle
    # ============================================================

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None):
        """
        Accept a transport connection.

        Nothing is registered until the client sends ``join``.

        Raises:
            ConnectionRefusedError: shutting down, or auth required and invalid
        """
        request_id = str(uuid.uuid4())[:8]

        if shutdown_manager.is_shutting_down:
            logger.warning(f"[WS] Rejecting connection during shutdown sid={sid}")
            raise ConnectionRefusedError("Server is shutting down")

        auth_user_id = None
        token = auth.get("token") if isinstance(auth, dict) else None
        if token:
            auth_user_id = decode_user_id(token)
        if settings.SOCKETIO_REQUIRE_AUTH and auth_user_id is None:
            logger.warning(f"[WS] Missing or invalid token sid={sid}")
            raise ConnectionRefusedError("Invalid or missing authentication token")

        await self.save_session(
            sid, {"request_id": request_id, "auth_user_id": auth_user_id}
        )
        logger.info(f"[WS] Connected sid={sid} request_id={request_id}")

    async def on_disconnect(self, sid: str, reason=None):
        """Release the connection and run the offline cascade if it was the last one."""
        try:
            user_id = self.services.lifecycle.user_of(sid)
            logger.info(f"[WS] Disconnected sid={sid} user={user_id} reason={reason}")
            await self.services.lifecycle.leave(sid)
        except Exception as e:
            logger.error(f"[WS] Error in disconnect handler sid={sid}: {e}", exc_info=True)

    # ============================================================
    # Presence events
    # ============================================================

    @auto_payload_validation(JoinPayload)
    async def on_join(self, sid: str, data: JoinPayload) -> dict:
        return await self._join(sid, data.user_id)

    @auto_payload_validation(JoinPayload)
    async def on_user_online(self, sid: str, data: JoinPayload) -> dict:
        return await self._join(sid, data.user_id)

    @auto_payload_validation(JoinPayload)
    @require_joined_user
    async def on_user_offline(self, sid: str, data: JoinPayload, user_id: str) -> dict:
        if data.user_id != user_id:
            logger.warning(
                f"[WS] user-offline for {data.user_id} from sid={sid} bound to {user_id}"
            )
            return {"error": "forbidden"}
        await self.services.lifecycle.leave(sid, reason=USER_OFFLINE_REASON)
        return GenericAck().model_dump(exclude_none=True)

    async def _join(self, sid: str, user_id: str) -> dict:
        if settings.SOCKETIO_REQUIRE_AUTH:
            session = await self.get_session(sid)
            if session.get("auth_user_id") != user_id:
                logger.warning(f"[WS] join as {user_id} refused for sid={sid}")
                return {"error": "forbidden"}

        await self.services.lifecycle.join(sid, user_id)
        online = sorted(self.services.presence.online_user_ids())
        return JoinAck(online_users=online).model_dump(by_alias=True, exclude_none=True)

    # ============================================================
    # Messaging side-channels
    # ============================================================

    @auto_payload_validation(TypingPayload)
    @require_joined_user
    async def on_typing(self, sid: str, data: TypingPayload, user_id: str) -> dict:
        delivered = await self.services.relay.notify_typing(
            user_id, data.receiver_id, data.is_typing, data.sender_name
        )
        return {"success": True, "delivered": delivered}

    @auto_payload_validation(MarkAsReadPayload)
    @require_joined_user
    async def on_mark_as_read(
        self, sid: str, data: MarkAsReadPayload, user_id: str
    ) -> dict:
        try:
            count = await self.services.messages.mark_read(
                data.connection_id, user_id, data.message_ids
            )
        except RealtimeError as e:
            logger.warning(
                f"[Messages] markAsRead failed sid={sid} user={user_id} "
                f"connection={data.connection_id}: {e.detail}"
            )
            return _error_ack(e)
        return MarkReadAck(modified_count=count).model_dump(
            by_alias=True, exclude_none=True
        )

    @auto_payload_validation(NotificationPayload)
    @require_joined_user
    async def on_new_notification(
        self, sid: str, data: NotificationPayload, user_id: str
    ) -> dict:
        delivered = await self.services.relay.deliver_notification(
            data.recipient_id, data.notification
        )
        return {"success": True, "delivered": delivered}

    # ============================================================
    # Call signaling
    # ============================================================

    @auto_payload_validation(CallUserPayload)
    @require_joined_user
    async def on_call_user(self, sid: str, data: CallUserPayload, user_id: str) -> dict:
        if data.from_user and data.from_user != user_id:
            logger.warning(
                f"[Calls] call-user 'from'={data.from_user} ignored, sid={sid} "
                f"is bound to {user_id}"
            )
        session = await self.services.calls.call_user(
            user_id, data.to, data.call_id, offer=data.offer, from_name=data.from_name
        )
        return _call_ack(session)

    @auto_payload_validation(AnswerCallPayload)
    @require_joined_user
    async def on_answer_call(
        self, sid: str, data: AnswerCallPayload, user_id: str
    ) -> dict:
        return await self._call_action(
            self.services.calls.answer, data.call_id, user_id, data.answer
        )

    @auto_payload_validation(CallControlPayload)
    @require_joined_user
    async def on_reject_call(
        self, sid: str, data: CallControlPayload, user_id: str
    ) -> dict:
        return await self._call_action(self.services.calls.reject, data.call_id, user_id)

    @auto_payload_validation(CallControlPayload)
    @require_joined_user
    async def on_cancel_call(
        self, sid: str, data: CallControlPayload, user_id: str
    ) -> dict:
        return await self._call_action(self.services.calls.cancel, data.call_id, user_id)

    @auto_payload_validation(CallControlPayload)
    @require_joined_user
    async def on_end_call(self, sid: str, data: CallControlPayload, user_id: str) -> dict:
        return await self._call_action(self.services.calls.end, data.call_id, user_id)

    @auto_payload_validation(IceCandidatePayload)
    @require_joined_user
    async def on_ice_candidate(
        self, sid: str, data: IceCandidatePayload, user_id: str
    ) -> dict:
        try:
            await self.services.calls.relay_ice_candidate(
                data.call_id, user_id, data.candidate
            )
        except RealtimeError as e:
            logger.info(f"[Calls] ice-candidate for call_id={data.call_id} dropped: {e.detail}")
            return _error_ack(e)
        return GenericAck().model_dump(exclude_none=True)

    @auto_payload_validation(VideoChatMessagePayload)
    @require_joined_user
    async def on_video_chat_message(
        self, sid: str, data: VideoChatMessagePayload, user_id: str
    ) -> dict:
        try:
            await self.services.calls.relay_chat_message(
                data.call_id, user_id, data.message
            )
        except RealtimeError as e:
            logger.info(
                f"[Calls] video-chat-message for call_id={data.call_id} dropped: {e.detail}"
            )
            return _error_ack(e)
        return GenericAck().model_dump(exclude_none=True)

    async def _call_action(self, action, call_id: str, user_id: str, *args) -> dict:
        try:
            session = await action(call_id, user_id, *args)
        except RealtimeError as e:
            logger.info(
                f"[Calls] {action.__name__} on call_id={call_id} by user={user_id} "
                f"dropped: {e.detail}"
            )
            return _error_ack(e)
        return _call_ack(session)


def register_realtime_namespace(
    sio: socketio.AsyncServer, services: RealtimeServices
) -> RealtimeNamespace:
    """
    Register the realtime namespace with the Socket.IO server.

    Args:
        sio: Socket.IO server instance
        services: Shared realtime services

    Returns:
        The registered namespace
    """
    namespace = RealtimeNamespace(services, settings.SOCKETIO_NAMESPACE)
    sio.register_namespace(namespace)
    logger.info(f"Realtime namespace registered at {namespace.namespace}")
    return namespace
