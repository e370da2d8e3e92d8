# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the call signaling service.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from bridgeup.core.exceptions import ForbiddenError, NotFoundError, PersistenceError
from bridgeup.schemas.realtime import ServerEvents
from bridgeup.services.call_signaling import (
    END_DISCONNECT,
    END_SERVER_SHUTDOWN,
    FAIL_BUSY,
    FAIL_CALLER_BUSY,
    FAIL_GLARE,
    FAIL_INVALID,
    CallSignalingService,
)
from bridgeup.services.call_state import CallState


@pytest.fixture
def online(bind_user):
    """alice, bob and carol each online on one connection."""
    for user_id in ("alice", "bob", "carol"):
        bind_user(user_id, f"sid-{user_id}")


@pytest.fixture
def calls(services, online):
    return services.calls


class TestCallSetup:
    @pytest.mark.asyncio
    async def test_call_rings_callee(self, calls, fake_sio):
        session = await calls.call_user(
            "alice", "bob", "c1", offer={"sdp": "o"}, from_name="Alice"
        )

        assert session.state == CallState.RINGING
        assert fake_sio.events_for("sid-bob", ServerEvents.INCOMING_CALL) == [
            {"callId": "c1", "from": "alice", "fromName": "Alice", "offer": {"sdp": "o"}}
        ]
        assert fake_sio.events_for("sid-alice") == []
        assert calls.active_call_of("alice") is session
        assert calls.active_call_of("bob") is session

    @pytest.mark.asyncio
    async def test_callee_busy(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        second = await calls.call_user("carol", "bob", "c2")

        assert second.state == CallState.FAILED
        assert second.end_reason == FAIL_BUSY
        assert fake_sio.events_for("sid-carol", ServerEvents.CALL_FAILED) == [
            {"callId": "c2", "from": "bob", "reason": FAIL_BUSY}
        ]
        assert len(fake_sio.events_for("sid-bob", ServerEvents.INCOMING_CALL)) == 1
        assert calls.active_call_of("bob").call_id == "c1"

    @pytest.mark.asyncio
    async def test_caller_busy(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")
        await calls.answer("c1", "bob")

        second = await calls.call_user("alice", "carol", "c2")

        assert second.end_reason == FAIL_CALLER_BUSY
        assert fake_sio.events_for("sid-carol") == []
        assert calls.active_call_of("alice").state == CallState.ACTIVE

    @pytest.mark.asyncio
    async def test_glare_fails_both_attempts(self, calls, fake_sio):
        first = await calls.call_user("alice", "bob", "c1")
        second = await calls.call_user("bob", "alice", "c2")

        assert first.state == CallState.FAILED
        assert first.end_reason == FAIL_GLARE
        assert second.state == CallState.FAILED
        assert second.end_reason == FAIL_GLARE
        assert calls.live_call_count == 0
        assert calls.active_call_of("alice") is None

        alice_failed = fake_sio.events_for("sid-alice", ServerEvents.CALL_FAILED)
        bob_failed = fake_sio.events_for("sid-bob", ServerEvents.CALL_FAILED)
        assert [e["callId"] for e in alice_failed] == ["c1"]
        assert sorted(e["callId"] for e in bob_failed) == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_self_call_is_invalid(self, calls, fake_sio, history_store):
        session = await calls.call_user("alice", "alice", "c1")

        assert session.state == CallState.FAILED
        assert session.end_reason == FAIL_INVALID
        assert calls.live_call_count == 0
        assert history_store.get_call("c1") is None

    @pytest.mark.asyncio
    async def test_duplicate_call_id_returns_existing(self, calls, fake_sio):
        first = await calls.call_user("alice", "bob", "c1")

        again = await calls.call_user("carol", "bob", "c1")

        assert again is first
        assert len(fake_sio.events_for("sid-bob", ServerEvents.INCOMING_CALL)) == 1
        assert fake_sio.events_for("sid-carol") == []

    @pytest.mark.asyncio
    async def test_offline_callee_still_rings(self, services, bind_user, fake_sio):
        bind_user("alice", "sid-alice")

        session = await services.calls.call_user("alice", "dave", "c1")

        assert session.state == CallState.RINGING
        assert fake_sio.emits == []


class TestTransitions:
    @pytest.mark.asyncio
    async def test_answer_relays_to_caller(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        session = await calls.answer("c1", "bob", {"sdp": "a"})

        assert session.state == CallState.ACTIVE
        assert session.answered_at is not None
        assert fake_sio.events_for("sid-alice", ServerEvents.CALL_ANSWERED) == [
            {"callId": "c1", "from": "bob", "answer": {"sdp": "a"}}
        ]

    @pytest.mark.asyncio
    async def test_caller_cannot_answer(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        session = await calls.answer("c1", "alice")

        assert session.state == CallState.RINGING
        assert fake_sio.events_for("sid-alice") == []

    @pytest.mark.asyncio
    async def test_reject_notifies_caller(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        session = await calls.reject("c1", "bob")

        assert session.state == CallState.REJECTED
        assert fake_sio.events_for("sid-alice", ServerEvents.CALL_REJECTED) == [
            {"callId": "c1", "from": "bob", "reason": "rejected"}
        ]
        assert calls.active_call_of("alice") is None

    @pytest.mark.asyncio
    async def test_cancel_notifies_callee(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        await calls.cancel("c1", "alice")

        (notice,) = fake_sio.events_for("sid-bob", ServerEvents.CALL_CANCELLED)
        assert notice["from"] == "alice"

    @pytest.mark.asyncio
    async def test_answer_and_cancel_race_has_one_winner(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        answered, cancelled = await asyncio.gather(
            calls.answer("c1", "bob"), calls.cancel("c1", "alice")
        )

        assert answered is cancelled
        answered_notices = fake_sio.events_for("sid-alice", ServerEvents.CALL_ANSWERED)
        cancel_notices = fake_sio.events_for("sid-bob", ServerEvents.CALL_CANCELLED)
        if answered.state == CallState.ACTIVE:
            assert len(answered_notices) == 1 and cancel_notices == []
        else:
            assert answered.state == CallState.CANCELLED
            assert answered_notices == [] and len(cancel_notices) == 1

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")
        await calls.answer("c1", "bob")

        first = await calls.end("c1", "alice")
        second = await calls.end("c1", "bob")

        assert first.state == second.state == CallState.ENDED
        assert len(fake_sio.events_for("sid-bob", ServerEvents.CALL_ENDED)) == 1
        assert fake_sio.events_for("sid-alice", ServerEvents.CALL_ENDED) == []

    @pytest.mark.asyncio
    async def test_unknown_call_is_not_found(self, calls):
        with pytest.raises(NotFoundError):
            await calls.answer("nope", "bob")

    @pytest.mark.asyncio
    async def test_outsider_is_forbidden(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        with pytest.raises(ForbiddenError):
            await calls.cancel("c1", "carol")
        assert calls.get_call("c1", "alice").state == CallState.RINGING

    @pytest.mark.asyncio
    async def test_get_call_hides_foreign_calls(self, calls):
        await calls.call_user("alice", "bob", "c1")

        assert calls.get_call("c1", "bob").caller_id == "alice"
        with pytest.raises(NotFoundError):
            calls.get_call("c1", "carol")


    @pytest.mark.asyncio
    async def test_hang_up_while_ringing_cancels(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        session = await calls.end("c1", "alice")

        assert session.state == CallState.CANCELLED
        assert fake_sio.events_for("sid-bob", ServerEvents.CALL_CANCELLED) == [
            {"callId": "c1", "from": "alice", "reason": "cancelled"}
        ]
        retry = await calls.call_user("alice", "carol", "c2")
        assert retry.state == CallState.RINGING

    @pytest.mark.asyncio
    async def test_hang_up_while_ringing_as_callee_rejects(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        session = await calls.end("c1", "bob")

        assert session.state == CallState.REJECTED
        assert len(fake_sio.events_for("sid-alice", ServerEvents.CALL_REJECTED)) == 1
        assert calls.active_call_of("bob") is None

    @pytest.mark.asyncio
    async def test_availability(self, calls):
        await calls.call_user("alice", "bob", "c1")

        assert calls.availability("carol", "bob") == FAIL_BUSY
        assert calls.availability("alice", "carol") == FAIL_CALLER_BUSY
        assert calls.availability("carol", "carol") == FAIL_INVALID
        assert calls.availability("carol", "dave") is None


class TestRelays:
    @pytest.mark.asyncio
    async def test_ice_candidate_goes_to_peer_only(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        await calls.relay_ice_candidate("c1", "alice", {"candidate": "x"})

        assert fake_sio.events_for("sid-bob", ServerEvents.ICE_CANDIDATE) == [
            {"callId": "c1", "from": "alice", "candidate": {"candidate": "x"}}
        ]
        assert fake_sio.events_for("sid-alice") == []
        assert fake_sio.events_for("sid-carol") == []

    @pytest.mark.asyncio
    async def test_chat_message_during_call(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")
        await calls.answer("c1", "bob")

        await calls.relay_chat_message("c1", "bob", {"text": "hi"})

        (relayed,) = fake_sio.events_for("sid-alice", ServerEvents.VIDEO_CHAT_MESSAGE)
        assert relayed["message"] == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_relay_for_finished_call_is_dropped(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")
        await calls.reject("c1", "bob")

        with pytest.raises(NotFoundError):
            await calls.relay_ice_candidate("c1", "alice", {"candidate": "late"})
        assert fake_sio.events_for("sid-bob", ServerEvents.ICE_CANDIDATE) == []

    @pytest.mark.asyncio
    async def test_relay_from_outsider(self, calls):
        await calls.call_user("alice", "bob", "c1")

        with pytest.raises(ForbiddenError):
            await calls.relay_chat_message("c1", "carol", "spam")


class TestTeardown:
    @pytest.mark.asyncio
    async def test_disconnect_notifies_peer_once(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")
        await calls.answer("c1", "bob")

        session = await calls.end_calls_for_user("alice")
        await calls.end_calls_for_user("alice")

        assert session.state == CallState.ENDED
        assert session.end_reason == END_DISCONNECT
        assert fake_sio.events_for("sid-bob", ServerEvents.CALL_ENDED) == [
            {"callId": "c1", "from": "alice", "reason": END_DISCONNECT}
        ]
        assert calls.active_call_of("bob") is None

    @pytest.mark.asyncio
    async def test_disconnect_without_call(self, calls):
        assert await calls.end_calls_for_user("carol") is None

    @pytest.mark.asyncio
    async def test_shutdown_ends_every_call(self, calls, fake_sio):
        await calls.call_user("alice", "bob", "c1")

        assert await calls.shutdown() == 1

        for sid in ("sid-alice", "sid-bob"):
            (notice,) = fake_sio.events_for(sid, ServerEvents.CALL_ENDED)
            assert notice["reason"] == END_SERVER_SHUTDOWN
        assert calls.live_call_count == 0


class TestRingTimeout:
    @pytest.fixture
    def timed_calls(self, services, online):
        return CallSignalingService(
            services.presence, services.emitter, ring_timeout=0.05
        )

    @pytest.mark.asyncio
    async def test_unanswered_call_is_missed(self, timed_calls, fake_sio):
        await timed_calls.call_user("alice", "bob", "c1")

        await asyncio.sleep(0.2)

        assert timed_calls.get_call("c1", "alice").state == CallState.MISSED
        assert timed_calls.active_call_of("bob") is None
        assert len(fake_sio.events_for("sid-alice", ServerEvents.CALL_MISSED)) == 1
        assert len(fake_sio.events_for("sid-bob", ServerEvents.CALL_MISSED)) == 1

    @pytest.mark.asyncio
    async def test_cancel_during_ring_emit_stops_timer(
        self, timed_calls, services, fake_sio
    ):
        original_emit = services.emitter.emit_to_user

        async def emit_then_cancel(user_id, event, data):
            await original_emit(user_id, event, data)
            if event == ServerEvents.INCOMING_CALL:
                await timed_calls.cancel(data["callId"], "alice")

        with patch.object(services.emitter, "emit_to_user", side_effect=emit_then_cancel):
            session = await timed_calls.call_user("alice", "bob", "c1")

        assert session.state == CallState.CANCELLED
        assert timed_calls._ring_timers == {}
        await asyncio.sleep(0.2)
        assert fake_sio.events_for("sid-alice", ServerEvents.CALL_MISSED) == []

    @pytest.mark.asyncio
    async def test_answered_call_is_not_missed(self, timed_calls, fake_sio):
        await timed_calls.call_user("alice", "bob", "c1")
        await timed_calls.answer("c1", "bob")

        await asyncio.sleep(0.2)

        assert timed_calls.get_call("c1", "bob").state == CallState.ACTIVE
        assert fake_sio.events_for("sid-alice", ServerEvents.CALL_MISSED) == []


class TestHistory:
    @pytest.mark.asyncio
    async def test_finished_calls_are_archived(self, calls):
        await calls.call_user("alice", "bob", "c1")
        await calls.answer("c1", "bob")
        await calls.end("c1", "bob")
        await calls.call_user("carol", "alice", "c2")
        await calls.reject("c2", "alice")

        records = await calls.history("alice", 10)

        assert {r.call_id: r.final_state for r in records} == {
            "c1": "ended",
            "c2": "rejected",
        }
        assert await calls.history("bob", 10) != []

    @pytest.mark.asyncio
    async def test_archive_failure_does_not_break_call(self, services, online, fake_sio):
        history = MagicMock()
        history.record_call.side_effect = PersistenceError("Failed to archive call")
        calls = CallSignalingService(
            services.presence, services.emitter, history, ring_timeout=0
        )
        await calls.call_user("alice", "bob", "c1")

        session = await calls.reject("c1", "bob")

        assert session.state == CallState.REJECTED
        history.record_call.assert_called_once_with(session)
        assert len(fake_sio.events_for("sid-alice", ServerEvents.CALL_REJECTED)) == 1

    @pytest.mark.asyncio
    async def test_history_disabled(self, services, online):
        history = MagicMock()
        calls = CallSignalingService(
            services.presence,
            services.emitter,
            history,
            ring_timeout=0,
            history_enabled=False,
        )
        await calls.call_user("alice", "bob", "c1")
        await calls.cancel("c1", "alice")

        history.record_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_archived_call_outlives_recent_table(self, calls):
        await calls.call_user("alice", "bob", "c1")
        await calls.reject("c1", "bob")
        calls._recent.clear()

        with pytest.raises(NotFoundError):
            calls.get_call("c1", "alice")
        record = await calls.archived_call("c1", "alice")

        assert record.final_state == "rejected"
        with pytest.raises(NotFoundError):
            await calls.archived_call("c1", "carol")
        with pytest.raises(NotFoundError):
            await calls.archived_call("missing", "alice")
