# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Wiring for the realtime services.

One RealtimeServices instance is built per application and shared by the
Socket.IO namespace and the HTTP endpoints, so both surfaces see the same
presence registry and call table.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from bridgeup.db.session import SessionLocal
from bridgeup.services.call_signaling import CallSignalingService
from bridgeup.services.emitter import RealtimeEmitter
from bridgeup.services.ephemeral import EphemeralRelay
from bridgeup.services.lifecycle import ConnectionLifecycleManager
from bridgeup.services.messaging import MessageDeliveryService
from bridgeup.services.presence import PresenceRegistry
from bridgeup.services.storage import (
    CallHistoryStore,
    MessageStore,
    PairingStore,
    SQLCallHistoryStore,
    SQLMessageStore,
    SQLPairingStore,
)


@dataclass
class RealtimeServices:
    presence: PresenceRegistry
    emitter: RealtimeEmitter
    messages: MessageDeliveryService
    calls: CallSignalingService
    relay: EphemeralRelay
    lifecycle: ConnectionLifecycleManager


def build_realtime_services(
    sio,
    session_factory: Callable[[], Session] = SessionLocal,
    namespace: Optional[str] = None,
    pairing_store: Optional[PairingStore] = None,
    message_store: Optional[MessageStore] = None,
    history_store: Optional[CallHistoryStore] = None,
    ring_timeout: Optional[float] = None,
) -> RealtimeServices:
    """Build the service graph on top of a Socket.IO server."""
    presence = PresenceRegistry()
    emitter = RealtimeEmitter(sio, namespace)
    pairings = pairing_store or SQLPairingStore(session_factory)
    messages = message_store or SQLMessageStore(session_factory)
    history = history_store or SQLCallHistoryStore(session_factory)

    calls = CallSignalingService(presence, emitter, history, ring_timeout=ring_timeout)
    relay = EphemeralRelay(presence, emitter)
    return RealtimeServices(
        presence=presence,
        emitter=emitter,
        messages=MessageDeliveryService(pairings, messages, presence, emitter),
        calls=calls,
        relay=relay,
        lifecycle=ConnectionLifecycleManager(presence, emitter, calls, relay),
    )
