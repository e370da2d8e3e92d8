# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Call signaling service.

Brokers WebRTC call setup between two users without touching the media.
Offer, answer, ICE candidates and in-call chat messages are opaque payloads
relayed to the other participant of the call identified by ``callId``.

Concurrency:
- Creating a call holds the user locks of both participants, so the busy
  check and the insert are one step per user pair.
- Every transition and relay for a call holds that call's lock, so racing
  events (answer vs cancel) resolve to exactly one winner. The loser is a
  no-op against the already-transitioned session.
- A user is in at most one live (ringing/answered/active) call. A second
  call to a busy user fails immediately and never touches the existing one.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from bridgeup.core.config import settings
from bridgeup.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
)
from bridgeup.core.locks import KeyedLocks
from bridgeup.models.call_record import CallRecord
from bridgeup.schemas.realtime import (
    CallAnsweredEvent,
    CallStateEvent,
    IceCandidateEvent,
    IncomingCallEvent,
    ServerEvents,
    VideoChatMessageEvent,
)
from bridgeup.services.call_state import (
    CallAction,
    CallRole,
    CallSession,
    CallState,
)
from bridgeup.services.emitter import RealtimeEmitter
from bridgeup.services.presence import PresenceRegistry
from bridgeup.services.storage.base import CallHistoryStore

logger = logging.getLogger(__name__)

# Failure reasons reported in call-failed
FAIL_BUSY = "busy"
FAIL_CALLER_BUSY = "caller_busy"
FAIL_GLARE = "glare"
FAIL_INVALID = "invalid"

END_DISCONNECT = "disconnect"
END_SERVER_SHUTDOWN = "server_shutdown"

# Terminal sessions kept around so late events are no-ops instead of errors
RECENT_CALLS_LIMIT = 256

_NOTICE_EVENTS = {
    CallState.REJECTED: ServerEvents.CALL_REJECTED,
    CallState.CANCELLED: ServerEvents.CALL_CANCELLED,
    CallState.ENDED: ServerEvents.CALL_ENDED,
    CallState.MISSED: ServerEvents.CALL_MISSED,
    CallState.FAILED: ServerEvents.CALL_FAILED,
}


class CallSignalingService:
    """Owns the live call table and drives the call state machine."""

    def __init__(
        self,
        presence: PresenceRegistry,
        emitter: RealtimeEmitter,
        history: Optional[CallHistoryStore] = None,
        ring_timeout: Optional[float] = None,
        history_enabled: Optional[bool] = None,
    ):
        self._presence = presence
        self._emitter = emitter
        self._history = history
        self._ring_timeout = (
            settings.CALL_RING_TIMEOUT_SECONDS if ring_timeout is None else ring_timeout
        )
        self._history_enabled = (
            settings.CALL_HISTORY_ENABLED if history_enabled is None else history_enabled
        )

        self._calls: Dict[str, CallSession] = {}
        self._live_by_user: Dict[str, str] = {}
        self._recent: "OrderedDict[str, CallSession]" = OrderedDict()
        self._ring_timers: Dict[str, asyncio.Task] = {}
        self._user_locks = KeyedLocks()
        self._call_locks = KeyedLocks()

    # ============================================================
    # Queries
    # ============================================================

    @property
    def live_call_count(self) -> int:
        return len(self._calls)

    def active_call_of(self, user_id: str) -> Optional[CallSession]:
        """The user's ringing/answered/active call, if any."""
        call_id = self._live_by_user.get(user_id)
        return self._calls.get(call_id) if call_id else None

    def get_call(self, call_id: str, user_id: str) -> CallSession:
        """
        A live or recently finished call visible to ``user_id``.

        Raises:
            NotFoundError: unknown call, or the user is not a participant
        """
        session = self._lookup(call_id)
        if session is None or not session.involves(user_id):
            raise NotFoundError("Call not found")
        return session

    async def history(self, user_id: str, limit: int) -> List[CallRecord]:
        if self._history is None:
            return []
        return await asyncio.to_thread(self._history.list_for_user, user_id, limit)

    async def archived_call(self, call_id: str, user_id: str) -> CallRecord:
        """
        A call that is no longer held in memory, read back from history.

        Raises:
            NotFoundError: never archived, or the user is not a participant
        """
        record = None
        if self._history is not None:
            record = await asyncio.to_thread(self._history.get_call, call_id)
        if record is None or user_id not in (record.caller_id, record.callee_id):
            raise NotFoundError("Call not found")
        return record

    def availability(self, caller_id: str, callee_id: str) -> Optional[str]:
        """Failure reason a call attempt would get right now, or None."""
        if caller_id == callee_id:
            return FAIL_INVALID
        if self.active_call_of(caller_id) is not None:
            return FAIL_CALLER_BUSY
        if self.active_call_of(callee_id) is not None:
            return FAIL_BUSY
        return None

    def _lookup(self, call_id: str) -> Optional[CallSession]:
        return self._calls.get(call_id) or self._recent.get(call_id)

    # ============================================================
    # Call setup
    # ============================================================

    async def call_user(
        self,
        caller_id: str,
        callee_id: str,
        call_id: str,
        offer: Any = None,
        from_name: Optional[str] = None,
    ) -> CallSession:
        """
        Start ringing ``callee_id``.

        Busy participants do not raise: the new attempt is returned in state
        ``failed`` and the caller receives ``call-failed`` with the reason.
        """
        existing = self._lookup(call_id)
        if existing is not None:
            # Retransmitted call-user; never let it disturb the known session
            logger.warning(f"[Calls] duplicate call_user for call_id={call_id} ignored")
            return existing

        if caller_id == callee_id:
            session = CallSession(call_id=call_id, caller_id=caller_id, callee_id=callee_id)
            session.apply(CallAction.FAIL, CallRole.SERVER, FAIL_INVALID)
            logger.warning(
                f"[Calls] rejected invalid call_user call_id={call_id} "
                f"caller={caller_id} callee={callee_id}"
            )
            await self._notify_state(caller_id, session, from_user=callee_id)
            return session

        superseded: Optional[CallSession] = None
        async with self._user_locks.hold_many([caller_id, callee_id]):
            session = CallSession(call_id=call_id, caller_id=caller_id, callee_id=callee_id)
            caller_call = self.active_call_of(caller_id)
            callee_call = self.active_call_of(callee_id)

            reason = None
            if caller_call is not None:
                if self._is_glare(caller_call, caller_id, callee_id):
                    reason = FAIL_GLARE
                    superseded = caller_call
                else:
                    reason = FAIL_CALLER_BUSY
            elif callee_call is not None:
                reason = FAIL_BUSY

            if reason is None:
                self._calls[call_id] = session
                self._live_by_user[caller_id] = call_id
                self._live_by_user[callee_id] = call_id
                logger.info(
                    f"[Calls] ringing call_id={call_id} caller={caller_id} "
                    f"callee={callee_id}"
                )
                incoming = IncomingCallEvent(
                    call_id=call_id,
                    from_user=caller_id,
                    from_name=from_name,
                    offer=offer,
                )
                self._start_ring_timer(call_id)
                await self._send(callee_id, ServerEvents.INCOMING_CALL, incoming.to_event())
                return session

            session.apply(CallAction.FAIL, CallRole.SERVER, reason)
            self._remember(session)
            logger.info(
                f"[Calls] call_id={call_id} failed ({reason}) caller={caller_id} "
                f"callee={callee_id}"
            )
            await self._notify_state(caller_id, session, from_user=callee_id)

        if superseded is not None:
            # Both users called each other at once; neither attempt wins
            await self._transition(
                superseded.call_id, None, CallAction.FAIL, reason=FAIL_GLARE
            )
        await self._archive(session)
        return session

    @staticmethod
    def _is_glare(existing: CallSession, caller_id: str, callee_id: str) -> bool:
        return (
            existing.state == CallState.RINGING
            and existing.caller_id == callee_id
            and existing.callee_id == caller_id
        )

    # ============================================================
    # Transitions
    # ============================================================

    async def answer(self, call_id: str, user_id: str, answer: Any = None) -> CallSession:
        session, _ = await self._transition(
            call_id, user_id, CallAction.ANSWER, payload=answer
        )
        return session

    async def reject(self, call_id: str, user_id: str) -> CallSession:
        session, _ = await self._transition(call_id, user_id, CallAction.REJECT)
        return session

    async def cancel(self, call_id: str, user_id: str) -> CallSession:
        session, _ = await self._transition(call_id, user_id, CallAction.CANCEL)
        return session

    async def end(self, call_id: str, user_id: str) -> CallSession:
        """
        Hang up a call.

        While ringing, hanging up cancels the call for the caller and rejects
        it for the callee. Ending an already finished call is a no-op.
        """
        session, _ = await self._transition(call_id, user_id, CallAction.END)
        return session

    async def end_calls_for_user(
        self, user_id: str, reason: str = END_DISCONNECT
    ) -> Optional[CallSession]:
        """
        Force the user's live call to ``ended`` and notify the other party.

        Called when the user's last connection goes away.
        """
        call_id = self._live_by_user.get(user_id)
        if call_id is None:
            return None
        session, changed = await self._transition(
            call_id, None, CallAction.DISCONNECT, reason=reason, departed=user_id
        )
        if changed:
            logger.info(
                f"[Calls] call_id={call_id} ended after user={user_id} went offline"
            )
        return session

    async def _transition(
        self,
        call_id: str,
        user_id: Optional[str],
        action: CallAction,
        reason: Optional[str] = None,
        payload: Any = None,
        departed: Optional[str] = None,
    ) -> Tuple[CallSession, bool]:
        """
        Apply ``action`` to a call and emit the resulting notices.

        ``user_id`` is None for server-initiated actions.

        Returns:
            (session, changed); changed is False when the action lost a race
            or is not allowed in the current state.
        """
        async with self._call_locks.hold(call_id):
            session = self._lookup(call_id)
            if session is None:
                raise NotFoundError("Call not found")

            if user_id is None:
                role = CallRole.SERVER
            else:
                role = session.role_of(user_id)
                if role is None:
                    logger.warning(
                        f"[Calls] user={user_id} is not a participant of call_id={call_id}"
                    )
                    raise ForbiddenError("Not a participant of this call")

            if action == CallAction.END and session.state == CallState.RINGING:
                action = (
                    CallAction.CANCEL if role == CallRole.CALLER else CallAction.REJECT
                )

            previous = session.state
            if not session.apply(action, role, reason):
                logger.info(
                    f"[Calls] ignored {action.value} on call_id={call_id} "
                    f"in state={previous.value} from={user_id or 'server'}"
                )
                return session, False

            logger.info(
                f"[Calls] call_id={call_id} {previous.value} -> {session.state.value} "
                f"by={user_id or 'server'}"
            )

            if session.state.is_terminal:
                self._retire(session)

            await self._emit_transition(session, action, user_id, payload, departed)

        if session.state.is_terminal:
            await self._archive(session)
        return session, True

    async def _emit_transition(
        self,
        session: CallSession,
        action: CallAction,
        user_id: Optional[str],
        payload: Any,
        departed: Optional[str],
    ) -> None:
        if action == CallAction.ANSWER:
            answered = CallAnsweredEvent(
                call_id=session.call_id, from_user=user_id, answer=payload
            )
            await self._send(
                session.caller_id, ServerEvents.CALL_ANSWERED, answered.to_event()
            )
            return

        if user_id is not None:
            # Participant-initiated: only the other side needs to hear about it
            await self._notify_state(session.peer_of(user_id), session, from_user=user_id)
            return

        if departed is not None:
            await self._notify_state(
                session.peer_of(departed), session, from_user=departed
            )
            return

        # Server-initiated (timeout, glare, shutdown): tell both sides
        await self._notify_state(session.caller_id, session, from_user=session.callee_id)
        await self._notify_state(session.callee_id, session, from_user=session.caller_id)

    def _retire(self, session: CallSession) -> None:
        self._calls.pop(session.call_id, None)
        for user_id in (session.caller_id, session.callee_id):
            if self._live_by_user.get(user_id) == session.call_id:
                del self._live_by_user[user_id]
        self._remember(session)
        self._cancel_ring_timer(session.call_id)

    def _remember(self, session: CallSession) -> None:
        self._recent[session.call_id] = session
        self._recent.move_to_end(session.call_id)
        while len(self._recent) > RECENT_CALLS_LIMIT:
            self._recent.popitem(last=False)

    # ============================================================
    # Relays
    # ============================================================

    async def relay_ice_candidate(
        self, call_id: str, user_id: str, candidate: Any
    ) -> None:
        event = IceCandidateEvent(call_id=call_id, from_user=user_id, candidate=candidate)
        await self._relay(call_id, user_id, ServerEvents.ICE_CANDIDATE, event.to_event())

    async def relay_chat_message(self, call_id: str, user_id: str, message: Any) -> None:
        event = VideoChatMessageEvent(call_id=call_id, from_user=user_id, message=message)
        await self._relay(
            call_id, user_id, ServerEvents.VIDEO_CHAT_MESSAGE, event.to_event()
        )

    async def _relay(self, call_id: str, user_id: str, event: str, data: dict) -> None:
        """
        Forward a payload to the other participant of a live call.

        Raises:
            NotFoundError: the call is unknown or already finished
            ForbiddenError: the sender is not a participant
        """
        async with self._call_locks.hold(call_id):
            session = self._calls.get(call_id)
            if session is None or not session.is_live:
                raise NotFoundError("Call not found")
            if not session.involves(user_id):
                raise ForbiddenError("Not a participant of this call")
            await self._send(session.peer_of(user_id), event, data)

    # ============================================================
    # Ring timeout
    # ============================================================

    def _start_ring_timer(self, call_id: str) -> None:
        if not self._ring_timeout or self._ring_timeout <= 0:
            return
        self._ring_timers[call_id] = asyncio.create_task(self._ring_timer(call_id))

    def _cancel_ring_timer(self, call_id: str) -> None:
        task = self._ring_timers.pop(call_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _ring_timer(self, call_id: str) -> None:
        try:
            await asyncio.sleep(self._ring_timeout)
        except asyncio.CancelledError:
            return
        self._ring_timers.pop(call_id, None)
        session = self._calls.get(call_id)
        if session is None or session.state != CallState.RINGING:
            return
        try:
            await self._transition(call_id, None, CallAction.TIMEOUT)
            logger.info(f"[Calls] call_id={call_id} missed after {self._ring_timeout}s")
        except NotFoundError:
            pass

    # ============================================================
    # Shutdown
    # ============================================================

    async def shutdown(self) -> int:
        """End every live call with reason server_shutdown."""
        call_ids = list(self._calls)
        ended = 0
        for call_id in call_ids:
            try:
                _, changed = await self._transition(
                    call_id, None, CallAction.DISCONNECT, reason=END_SERVER_SHUTDOWN
                )
            except NotFoundError:
                continue
            if changed:
                ended += 1
        for call_id in list(self._ring_timers):
            self._cancel_ring_timer(call_id)
        if ended:
            logger.info(f"[Calls] ended {ended} live call(s) on shutdown")
        return ended

    # ============================================================
    # Emission helpers
    # ============================================================

    async def _notify_state(
        self, user_id: str, session: CallSession, from_user: Optional[str]
    ) -> None:
        event = _NOTICE_EVENTS[session.state]
        notice = CallStateEvent(
            call_id=session.call_id,
            from_user=from_user,
            reason=session.end_reason,
        )
        await self._send(user_id, event, notice.to_event())

    async def _send(self, user_id: str, event: str, data: dict) -> None:
        if not self._presence.is_online(user_id):
            logger.debug(f"[Calls] {event} dropped, user={user_id} unreachable")
            return
        try:
            await self._emitter.emit_to_user(user_id, event, data)
        except Exception as e:
            logger.warning(f"[Calls] emit {event} to user={user_id} failed: {e}")

    async def _archive(self, session: CallSession) -> None:
        if not self._history_enabled or self._history is None:
            return
        if session.end_reason == FAIL_INVALID:
            return
        try:
            await asyncio.to_thread(self._history.record_call, session)
        except PersistenceError as e:
            logger.warning(f"[Calls] call_id={session.call_id} not archived: {e}")
