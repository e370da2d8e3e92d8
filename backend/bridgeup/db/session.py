# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from bridgeup.core.config import settings

# Database connection URL (using sync driver)
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str) -> Engine:
    """Create a sync engine with driver specific connect args."""
    if url.startswith("sqlite"):
        # Store calls run in worker threads via asyncio.to_thread
        return create_engine(url, connect_args={"check_same_thread": False})
    if url.startswith("mysql"):
        return create_engine(
            url, pool_pre_ping=True, connect_args={"charset": "utf8mb4"}
        )
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(SQLALCHEMY_DATABASE_URL)

# Sync session factory
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)


@contextmanager
def session_scope(
    factory: Callable[[], Session] = SessionLocal,
) -> Generator[Session, None, None]:
    """Context manager for database session with auto-commit and auto-close."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
