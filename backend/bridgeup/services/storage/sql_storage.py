# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
SQLAlchemy store implementations.

Each operation opens its own short session from the configured factory,
commits and closes it, so stores are safe to call from worker threads.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bridgeup.core.exceptions import PersistenceError
from bridgeup.db.session import SessionLocal, session_scope
from bridgeup.models.call_record import CallRecord
from bridgeup.models.message import Message
from bridgeup.models.pairing import ConnectionRequest, PairingStatus
from bridgeup.services.call_state import CallSession
from bridgeup.services.storage.base import (
    CallHistoryStore,
    MessageStore,
    PairingStore,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Strip tzinfo so values round-trip through DATETIME columns."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SQLPairingStore(PairingStore):
    """Pairings from the ``connection_requests`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def _accepted(self, db: Session, connection_id: str) -> Optional[ConnectionRequest]:
        return (
            db.query(ConnectionRequest)
            .filter(
                ConnectionRequest.id == connection_id,
                ConnectionRequest.status == PairingStatus.ACCEPTED.value,
            )
            .first()
        )

    def is_accepted_connection(
        self, user_a: str, user_b: str, connection_id: str
    ) -> bool:
        try:
            with session_scope(self._session_factory) as db:
                pairing = self._accepted(db, connection_id)
                if pairing is None or user_a == user_b:
                    return False
                return pairing.involves(user_a) and pairing.involves(user_b)
        except SQLAlchemyError as e:
            logger.error(f"[Storage] pairing lookup failed for {connection_id}: {e}")
            raise PersistenceError("Failed to load pairing") from e

    def get_accepted_counterpart(
        self, connection_id: str, user_id: str
    ) -> Optional[str]:
        try:
            with session_scope(self._session_factory) as db:
                pairing = self._accepted(db, connection_id)
                if pairing is None or not pairing.involves(user_id):
                    return None
                return pairing.counterpart_of(user_id)
        except SQLAlchemyError as e:
            logger.error(f"[Storage] pairing lookup failed for {connection_id}: {e}")
            raise PersistenceError("Failed to load pairing") from e


class SQLMessageStore(MessageStore):
    """Messages from the ``messages`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def persist_message(
        self, sender_id: str, receiver_id: str, connection_id: str, content: str
    ) -> Message:
        try:
            with session_scope(self._session_factory) as db:
                message = Message(
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    connection_id=connection_id,
                    content=content,
                    is_read=False,
                )
                db.add(message)
                db.flush()
                db.refresh(message)
                return message
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to persist message: {e}")
            raise PersistenceError("Failed to save message") from e

    def list_for_connection(self, connection_id: str) -> List[Message]:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(Message)
                    .filter(Message.connection_id == connection_id)
                    .order_by(Message.created_at.asc(), Message.id.asc())
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to list messages for {connection_id}: {e}")
            raise PersistenceError("Failed to load messages") from e

    def mark_read(
        self,
        connection_id: str,
        reader_id: str,
        message_ids: Optional[Sequence[int]] = None,
    ) -> List[Tuple[int, str]]:
        try:
            with session_scope(self._session_factory) as db:
                query = db.query(Message.id, Message.sender_id).filter(
                    Message.connection_id == connection_id,
                    Message.receiver_id == reader_id,
                    Message.is_read.is_(False),
                )
                if message_ids:
                    query = query.filter(Message.id.in_(list(message_ids)))
                candidates = [(row.id, row.sender_id) for row in query.all()]
                if not candidates:
                    return []

                # Re-check is_read in the UPDATE so rows flipped meanwhile are skipped
                updated = (
                    db.query(Message)
                    .filter(
                        Message.id.in_([message_id for message_id, _ in candidates]),
                        Message.is_read.is_(False),
                    )
                    .update(
                        {Message.is_read: True, Message.read_at: func.now()},
                        synchronize_session=False,
                    )
                )
                if updated != len(candidates):
                    logger.warning(
                        f"[Storage] mark_read on {connection_id} expected "
                        f"{len(candidates)} rows, updated {updated}"
                    )
                return candidates
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to mark messages read on {connection_id}: {e}")
            raise PersistenceError("Failed to update read state") from e

    def count_unread(self, user_id: str) -> int:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(func.count(Message.id))
                    .filter(Message.receiver_id == user_id, Message.is_read.is_(False))
                    .scalar()
                    or 0
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to count unread for {user_id}: {e}")
            raise PersistenceError("Failed to count unread messages") from e

    def count_unread_in_connection(self, connection_id: str, user_id: str) -> int:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(func.count(Message.id))
                    .filter(
                        Message.connection_id == connection_id,
                        Message.receiver_id == user_id,
                        Message.is_read.is_(False),
                    )
                    .scalar()
                    or 0
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to count unread on {connection_id}: {e}")
            raise PersistenceError("Failed to count unread messages") from e

    def last_message(self, connection_id: str) -> Optional[Message]:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(Message)
                    .filter(Message.connection_id == connection_id)
                    .order_by(Message.created_at.desc(), Message.id.desc())
                    .first()
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to load last message of {connection_id}: {e}")
            raise PersistenceError("Failed to load messages") from e


class SQLCallHistoryStore(CallHistoryStore):
    """Archived calls in the ``call_records`` table."""

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def record_call(self, session: CallSession) -> None:
        try:
            with session_scope(self._session_factory) as db:
                db.add(
                    CallRecord(
                        call_id=session.call_id,
                        caller_id=session.caller_id,
                        callee_id=session.callee_id,
                        final_state=session.state.value,
                        end_reason=session.end_reason,
                        started_at=_naive_utc(session.started_at),
                        answered_at=_naive_utc(session.answered_at),
                        ended_at=_naive_utc(session.ended_at),
                        duration_seconds=session.duration_seconds,
                    )
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to archive call {session.call_id}: {e}")
            raise PersistenceError("Failed to archive call") from e

    def list_for_user(self, user_id: str, limit: int) -> List[CallRecord]:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(CallRecord)
                    .filter(
                        or_(
                            CallRecord.caller_id == user_id,
                            CallRecord.callee_id == user_id,
                        )
                    )
                    .order_by(CallRecord.started_at.desc(), CallRecord.id.desc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to load call history for {user_id}: {e}")
            raise PersistenceError("Failed to load call history") from e

    def get_call(self, call_id: str) -> Optional[CallRecord]:
        try:
            with session_scope(self._session_factory) as db:
                return (
                    db.query(CallRecord).filter(CallRecord.call_id == call_id).first()
                )
        except SQLAlchemyError as e:
            logger.error(f"[Storage] failed to load call {call_id}: {e}")
            raise PersistenceError("Failed to load call") from e
