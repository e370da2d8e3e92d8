# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Message delivery service.

Messages are durable first and live second: a message is persisted before
any push, and a persistence failure fails the send without emitting
anything. Live delivery to the receiver's user room is best-effort.

Send and mark-read for one pairing run under the same per-pairing lock, so
a sender's successive messages are persisted and pushed in order, and a
read receipt can never overtake the newMessage push it refers to.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from bridgeup.core.exceptions import ForbiddenError
from bridgeup.core.locks import KeyedLocks
from bridgeup.schemas.message import ConversationSummary, MessageResponse
from bridgeup.schemas.realtime import MessageReadEvent, ServerEvents
from bridgeup.services.emitter import RealtimeEmitter
from bridgeup.services.presence import PresenceRegistry
from bridgeup.services.storage.base import MessageStore, PairingStore

logger = logging.getLogger(__name__)


class MessageDeliveryService:
    """Persists messages between paired users and pushes them live."""

    def __init__(
        self,
        pairings: PairingStore,
        messages: MessageStore,
        presence: PresenceRegistry,
        emitter: RealtimeEmitter,
    ):
        self._pairings = pairings
        self._messages = messages
        self._presence = presence
        self._emitter = emitter
        self._locks = KeyedLocks()

    async def _require_counterpart(self, connection_id: str, user_id: str) -> str:
        counterpart = await asyncio.to_thread(
            self._pairings.get_accepted_counterpart, connection_id, user_id
        )
        if counterpart is None:
            raise ForbiddenError("Not authorized to access this conversation")
        return counterpart

    async def send(
        self, sender_id: str, receiver_id: str, connection_id: str, content: str
    ) -> MessageResponse:
        """
        Persist a message and push it to the receiver if online.

        Raises:
            ForbiddenError: no accepted pairing between sender and receiver
            PersistenceError: the message could not be stored
        """
        allowed = await asyncio.to_thread(
            self._pairings.is_accepted_connection,
            sender_id,
            receiver_id,
            connection_id,
        )
        if not allowed:
            logger.warning(
                f"[Messages] send refused: sender={sender_id} receiver={receiver_id} "
                f"connection={connection_id}"
            )
            raise ForbiddenError("You can only message your connections")

        async with self._locks.hold(connection_id):
            message = await asyncio.to_thread(
                self._messages.persist_message,
                sender_id,
                receiver_id,
                connection_id,
                content,
            )
            response = MessageResponse.from_model(message)
            logger.info(
                f"[Messages] stored message={response.id} connection={connection_id} "
                f"sender={sender_id}"
            )
            await self._push(receiver_id, ServerEvents.NEW_MESSAGE, response.to_event())
        return response

    async def list_for_connection(
        self, connection_id: str, requester_id: str
    ) -> List[MessageResponse]:
        """Messages of a pairing, oldest first."""
        await self._require_counterpart(connection_id, requester_id)
        messages = await asyncio.to_thread(
            self._messages.list_for_connection, connection_id
        )
        return [MessageResponse.from_model(message) for message in messages]

    async def mark_read(
        self,
        connection_id: str,
        reader_id: str,
        message_ids: Optional[Sequence[int]] = None,
    ) -> int:
        """
        Mark messages addressed to ``reader_id`` as read.

        Each author of a flipped message receives one ``messageRead`` receipt
        with the ids that actually changed. Nothing is emitted when nothing
        changed, so repeating the call is silent.

        Returns:
            Number of messages flipped
        """
        await self._require_counterpart(connection_id, reader_id)

        async with self._locks.hold(connection_id):
            flipped = await asyncio.to_thread(
                self._messages.mark_read, connection_id, reader_id, message_ids
            )
            if not flipped:
                return 0

            by_sender: Dict[str, List[int]] = defaultdict(list)
            for message_id, sender_id in flipped:
                by_sender[sender_id].append(message_id)

            for sender_id, ids in by_sender.items():
                receipt = MessageReadEvent(
                    connection_id=connection_id,
                    message_ids=sorted(ids),
                    read_by=reader_id,
                )
                await self._push(
                    sender_id, ServerEvents.MESSAGE_READ, receipt.to_event()
                )

        logger.info(
            f"[Messages] {len(flipped)} message(s) read on connection={connection_id} "
            f"by={reader_id}"
        )
        return len(flipped)

    async def unread_count(self, user_id: str) -> int:
        return await asyncio.to_thread(self._messages.count_unread, user_id)

    async def conversation_summary(
        self, connection_id: str, user_id: str
    ) -> ConversationSummary:
        await self._require_counterpart(connection_id, user_id)
        last = await asyncio.to_thread(self._messages.last_message, connection_id)
        unread = await asyncio.to_thread(
            self._messages.count_unread_in_connection, connection_id, user_id
        )
        return ConversationSummary(
            connection_id=connection_id,
            last_message=MessageResponse.from_model(last) if last else None,
            unread_count=unread,
        )

    async def _push(self, user_id: str, event: str, data: dict) -> None:
        # Offline receivers read the message from history later
        if not self._presence.is_online(user_id):
            logger.debug(f"[Messages] {event} not pushed, user={user_id} offline")
            return
        try:
            await self._emitter.emit_to_user(user_id, event, data)
        except Exception as e:
            logger.warning(f"[Messages] live push {event} to user={user_id} failed: {e}")
