# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Archived video calls.

Live call state is kept in memory by the signaling service; a row is
written here once a call reaches a terminal state.
"""

from sqlalchemy import Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from bridgeup.db.base import Base


class CallRecord(Base):
    __tablename__ = "call_records"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String(128), nullable=False, unique=True)
    caller_id = Column(String(64), nullable=False, index=True)
    callee_id = Column(String(64), nullable=False, index=True)
    final_state = Column(String(20), nullable=False)
    end_reason = Column(String(50))
    started_at = Column(DateTime, nullable=False)
    answered_at = Column(DateTime)
    ended_at = Column(DateTime)
    duration_seconds = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        {
            "sqlite_autoincrement": True,
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )
