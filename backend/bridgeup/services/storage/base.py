# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Persistence interfaces consumed by the realtime services.

The realtime core never talks to a database directly. It depends on these
abstract stores, so pairing/message/call-history storage can be swapped
without touching signaling or delivery logic. Implementations are
synchronous; services call them through ``asyncio.to_thread``.

Implementations raise PersistenceError for storage failures.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from bridgeup.models.call_record import CallRecord
from bridgeup.models.message import Message
from bridgeup.services.call_state import CallSession


class PairingStore(ABC):
    """Answers who is allowed to message/call whom."""

    @abstractmethod
    def is_accepted_connection(
        self, user_a: str, user_b: str, connection_id: str
    ) -> bool:
        """True if ``connection_id`` is an accepted pairing between the two users."""

    @abstractmethod
    def get_accepted_counterpart(
        self, connection_id: str, user_id: str
    ) -> Optional[str]:
        """
        The other participant of an accepted pairing.

        Returns None when the pairing does not exist, is not accepted, or
        ``user_id`` is not part of it.
        """


class MessageStore(ABC):
    """Durable message log with read-state."""

    @abstractmethod
    def persist_message(
        self, sender_id: str, receiver_id: str, connection_id: str, content: str
    ) -> Message:
        """Append a message and return it with id and createdAt populated."""

    @abstractmethod
    def list_for_connection(self, connection_id: str) -> List[Message]:
        """All messages of a pairing, oldest first."""

    @abstractmethod
    def mark_read(
        self,
        connection_id: str,
        reader_id: str,
        message_ids: Optional[Sequence[int]] = None,
    ) -> List[Tuple[int, str]]:
        """
        Flip unread messages addressed to ``reader_id`` to read.

        Only messages that were unread before the call are touched, so a
        second call with the same arguments flips nothing.

        Returns:
            (message_id, sender_id) for every message that actually changed
        """

    @abstractmethod
    def count_unread(self, user_id: str) -> int:
        """Unread messages addressed to ``user_id`` across all pairings."""

    @abstractmethod
    def count_unread_in_connection(self, connection_id: str, user_id: str) -> int:
        """Unread messages addressed to ``user_id`` inside one pairing."""

    @abstractmethod
    def last_message(self, connection_id: str) -> Optional[Message]:
        """Newest message of a pairing."""


class CallHistoryStore(ABC):
    """Archive of finished calls."""

    @abstractmethod
    def record_call(self, session: CallSession) -> None:
        """Persist a call that reached a terminal state."""

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int) -> List[CallRecord]:
        """Most recent calls where ``user_id`` was caller or callee."""

    @abstractmethod
    def get_call(self, call_id: str) -> Optional[CallRecord]:
        """An archived call by id."""
