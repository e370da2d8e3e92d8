# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from bridgeup.db.session import SessionLocal
from bridgeup.services.realtime import RealtimeServices


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Creates a new session for each request and automatically closes it after the request ends
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_realtime(request: Request) -> RealtimeServices:
    """Realtime services shared with the Socket.IO namespace."""
    return request.app.state.realtime
