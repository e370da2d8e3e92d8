# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Call session state machine.

A CallSession lives in memory from the caller's ``call-user`` until it
reaches a terminal state. The transition table below is the only place
that decides whether an event may move a call forward; anything not listed
is a no-op against the current state.

    ringing  --answer-->   answered --(same step)--> active
    ringing  --reject-->   rejected
    ringing  --cancel-->   cancelled
    ringing  --timeout-->  missed
    active   --end-->      ended
    ringing/answered/active --disconnect--> ended
    (new call to a busy user)               failed
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class CallState(str, Enum):
    """Call session state."""

    RINGING = "ringing"
    ANSWERED = "answered"
    ACTIVE = "active"
    ENDED = "ended"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"
    MISSED = "missed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


LIVE_STATES: FrozenSet[CallState] = frozenset(
    {CallState.RINGING, CallState.ANSWERED, CallState.ACTIVE}
)
TERMINAL_STATES: FrozenSet[CallState] = frozenset(
    {
        CallState.ENDED,
        CallState.REJECTED,
        CallState.CANCELLED,
        CallState.FAILED,
        CallState.MISSED,
    }
)


class CallAction(str, Enum):
    """Signaling events that drive transitions."""

    ANSWER = "answer"
    REJECT = "reject"
    CANCEL = "cancel"
    END = "end"
    DISCONNECT = "disconnect"
    TIMEOUT = "timeout"
    FAIL = "fail"


class CallRole(str, Enum):
    """Which participant may send an action."""

    CALLER = "caller"
    CALLEE = "callee"
    EITHER = "either"
    SERVER = "server"


# (from_state, action) -> (to_state, allowed initiator)
TRANSITIONS: Dict[Tuple[CallState, CallAction], Tuple[CallState, CallRole]] = {
    (CallState.RINGING, CallAction.ANSWER): (CallState.ANSWERED, CallRole.CALLEE),
    (CallState.RINGING, CallAction.REJECT): (CallState.REJECTED, CallRole.CALLEE),
    (CallState.RINGING, CallAction.CANCEL): (CallState.CANCELLED, CallRole.CALLER),
    (CallState.RINGING, CallAction.TIMEOUT): (CallState.MISSED, CallRole.SERVER),
    (CallState.RINGING, CallAction.FAIL): (CallState.FAILED, CallRole.SERVER),
    (CallState.ANSWERED, CallAction.END): (CallState.ENDED, CallRole.EITHER),
    (CallState.ACTIVE, CallAction.END): (CallState.ENDED, CallRole.EITHER),
    (CallState.RINGING, CallAction.DISCONNECT): (CallState.ENDED, CallRole.SERVER),
    (CallState.ANSWERED, CallAction.DISCONNECT): (CallState.ENDED, CallRole.SERVER),
    (CallState.ACTIVE, CallAction.DISCONNECT): (CallState.ENDED, CallRole.SERVER),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CallSession:
    """One call attempt between two users."""

    call_id: str
    caller_id: str
    callee_id: str
    state: CallState = CallState.RINGING
    started_at: datetime = field(default_factory=utcnow)
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def duration_seconds(self) -> float:
        """Connected time; zero for calls that were never answered."""
        if self.answered_at is None:
            return 0.0
        end = self.ended_at or utcnow()
        return max((end - self.answered_at).total_seconds(), 0.0)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.callee_id)

    def role_of(self, user_id: str) -> Optional[CallRole]:
        if user_id == self.caller_id:
            return CallRole.CALLER
        if user_id == self.callee_id:
            return CallRole.CALLEE
        return None

    def peer_of(self, user_id: str) -> str:
        return self.callee_id if user_id == self.caller_id else self.caller_id

    def can_apply(self, action: CallAction, initiator: CallRole) -> bool:
        """Whether ``initiator`` may apply ``action`` in the current state."""
        rule = TRANSITIONS.get((self.state, action))
        if rule is None:
            return False
        _, allowed = rule
        if allowed == CallRole.EITHER:
            return initiator in (CallRole.CALLER, CallRole.CALLEE)
        return allowed == initiator

    def apply(
        self, action: CallAction, initiator: CallRole, reason: Optional[str] = None
    ) -> bool:
        """
        Move the session forward.

        Returns False (and leaves the session untouched) when the transition
        is not allowed, which is how the loser of a race is discarded.
        """
        if not self.can_apply(action, initiator):
            return False
        target, _ = TRANSITIONS[(self.state, action)]
        now = utcnow()
        self.state = target
        if target == CallState.ANSWERED:
            self.answered_at = now
            # answered is a pass-through state once the answer is relayed
            self.state = CallState.ACTIVE
        if target.is_terminal:
            self.ended_at = now
            self.end_reason = reason or target.value
        return True
