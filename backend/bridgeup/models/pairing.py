# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Mentor/mentee pairing model.

A pairing ("connection request") is created by a junior user towards a
senior user. Only accepted pairings allow messaging and calls.
"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlalchemy.sql import func

from bridgeup.db.base import Base


class PairingStatus(str, PyEnum):
    """Status of a pairing"""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def _new_id() -> str:
    return uuid.uuid4().hex


class ConnectionRequest(Base):
    """Pairing between a junior (mentee) and a senior (mentor) user."""

    __tablename__ = "connection_requests"

    id = Column(String(36), primary_key=True, default=_new_id)
    junior_id = Column(String(64), nullable=False, index=True)
    senior_id = Column(String(64), nullable=False, index=True)
    message = Column(String(300), nullable=False, default="")
    status = Column(
        String(20), nullable=False, default=PairingStatus.PENDING.value
    )  # VARCHAR instead of ENUM
    response_message = Column(String(200))
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(
        DateTime, nullable=False, default=func.now(), onupdate=func.now()
    )

    # One request per junior/senior pair
    __table_args__ = (
        UniqueConstraint("junior_id", "senior_id", name="uniq_junior_senior"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    def involves(self, user_id: str) -> bool:
        return user_id in (self.junior_id, self.senior_id)

    def counterpart_of(self, user_id: str) -> str:
        return self.senior_id if self.junior_id == user_id else self.junior_id
