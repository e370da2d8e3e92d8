# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bridgeup.core.security import create_access_token
from bridgeup.db.base import Base

# Import all models to ensure they are registered with Base
from bridgeup.models import *  # noqa: F401,F403
from bridgeup.models.pairing import ConnectionRequest, PairingStatus
from bridgeup.services.emitter import user_room
from bridgeup.services.realtime import RealtimeServices, build_realtime_services
from bridgeup.services.storage import (
    SQLCallHistoryStore,
    SQLMessageStore,
    SQLPairingStore,
)


class FakeSocketServer:
    """
    Records what the realtime services do with a Socket.IO server.

    Room membership is tracked so that room emits fan out to the member
    sids, and every delivered event is stored per sid.
    """

    def __init__(self):
        self.connected: Set[str] = set()
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.received: Dict[str, List[Tuple[str, Any]]] = defaultdict(list)
        self.emits: List[Dict[str, Any]] = []
        self.namespaces = []

    def connect(self, sid: str) -> None:
        self.connected.add(sid)

    def disconnect(self, sid: str) -> None:
        self.connected.discard(sid)
        for members in self.rooms.values():
            members.discard(sid)

    def register_namespace(self, namespace) -> None:
        self.namespaces.append(namespace)

    async def enter_room(self, sid: str, room: str, namespace: Optional[str] = None):
        self.connected.add(sid)
        self.rooms[room].add(sid)

    async def leave_room(self, sid: str, room: str, namespace: Optional[str] = None):
        self.rooms[room].discard(sid)

    async def emit(
        self,
        event: str,
        data: Any = None,
        to: Optional[str] = None,
        room: Optional[str] = None,
        skip_sid: Optional[str] = None,
        namespace: Optional[str] = None,
        **kwargs,
    ):
        target = to or room
        self.emits.append(
            {"event": event, "data": data, "target": target, "skip_sid": skip_sid}
        )
        if target is None:
            recipients = set(self.connected)
        elif target in self.rooms:
            recipients = set(self.rooms[target])
        else:
            recipients = {target} if target in self.connected else set()
        recipients.discard(skip_sid)
        for sid in recipients:
            self.received[sid].append((event, data))

    def events_for(self, sid: str, event: Optional[str] = None) -> List[Any]:
        """Payloads delivered to ``sid``, optionally filtered by event name."""
        return [
            data for name, data in self.received[sid] if event is None or name == event
        ]

    def event_names_for(self, sid: str) -> List[str]:
        return [name for name, _ in self.received[sid]]


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    """
    File-backed SQLite engine shared by the whole test session.

    Stores run in worker threads, so the database must be reachable from
    any thread.
    """
    db_path = tmp_path_factory.mktemp("db") / "bridgeup_test.db"
    engine = create_engine(
        f"sqlite:///{db_path}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="session")
def test_session_factory(test_engine):
    return sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
    )


@pytest.fixture(scope="function")
def session_factory(test_engine, test_session_factory):
    """Session factory with every table emptied after the test."""
    yield test_session_factory
    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def pairing_store(session_factory):
    return SQLPairingStore(session_factory)


@pytest.fixture
def message_store(session_factory):
    return SQLMessageStore(session_factory)


@pytest.fixture
def history_store(session_factory):
    return SQLCallHistoryStore(session_factory)


@pytest.fixture
def make_pairing(session_factory):
    """Insert a pairing and return its id."""

    def _make(
        junior_id: str, senior_id: str, status: PairingStatus = PairingStatus.ACCEPTED
    ) -> str:
        db = session_factory()
        try:
            pairing = ConnectionRequest(
                junior_id=junior_id, senior_id=senior_id, status=status.value
            )
            db.add(pairing)
            db.commit()
            return pairing.id
        finally:
            db.close()

    return _make


@pytest.fixture
def fake_sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def services(fake_sio, session_factory) -> RealtimeServices:
    """Realtime services over the fake server, ring timeout disabled."""
    return build_realtime_services(
        fake_sio, session_factory, namespace="/", ring_timeout=0
    )


@pytest.fixture
def bind_user(services, fake_sio):
    """Mark a user online on a sid without going through join broadcasts."""

    def _bind(user_id: str, sid: str) -> None:
        fake_sio.connect(sid)
        fake_sio.rooms[user_room(user_id)].add(sid)
        services.presence.register_connection(user_id, sid)

    return _bind


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> Dict[str, str]:
        token = create_access_token(data={"sub": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def test_client(fake_sio, services, test_session_factory) -> TestClient:
    """HTTP client over an app wired to the test services."""
    from bridgeup.api.dependencies import get_db
    from bridgeup.main import create_app

    app = create_app(sio=fake_sio, realtime=services)

    def override_get_db():
        db = test_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)
