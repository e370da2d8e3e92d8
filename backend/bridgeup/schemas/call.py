# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Video call schemas for request/response validation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from bridgeup.services.call_state import CallSession, CallState


class CallSessionResponse(BaseModel):
    """Live or archived call."""

    call_id: str = Field(..., alias="callId")
    caller_id: str = Field(..., alias="callerId")
    callee_id: str = Field(..., alias="calleeId")
    state: CallState
    started_at: datetime = Field(..., alias="startedAt")
    answered_at: Optional[datetime] = Field(None, alias="answeredAt")
    ended_at: Optional[datetime] = Field(None, alias="endedAt")
    end_reason: Optional[str] = Field(None, alias="endReason")
    duration_seconds: float = Field(0.0, alias="durationSeconds")

    class Config:
        populate_by_name = True

    @classmethod
    def from_session(cls, session: CallSession) -> "CallSessionResponse":
        return cls(
            call_id=session.call_id,
            caller_id=session.caller_id,
            callee_id=session.callee_id,
            state=session.state,
            started_at=session.started_at,
            answered_at=session.answered_at,
            ended_at=session.ended_at,
            end_reason=session.end_reason,
            duration_seconds=session.duration_seconds,
        )

    @classmethod
    def from_record(cls, record) -> "CallSessionResponse":
        return cls(
            call_id=record.call_id,
            caller_id=record.caller_id,
            callee_id=record.callee_id,
            state=CallState(record.final_state),
            started_at=record.started_at,
            answered_at=record.answered_at,
            ended_at=record.ended_at,
            end_reason=record.end_reason,
            duration_seconds=record.duration_seconds or 0.0,
        )


class CallStatusResponse(BaseModel):
    success: bool = True
    call: CallSessionResponse


class ActiveCallResponse(BaseModel):
    success: bool = True
    call: Optional[CallSessionResponse] = None


class CallHistoryResponse(BaseModel):
    success: bool = True
    call_history: List[CallSessionResponse] = Field(..., alias="callHistory")

    class Config:
        populate_by_name = True


class EndCallResponse(BaseModel):
    success: bool = True
    message: str
    state: Optional[CallState] = None


class InitiateCallRequest(BaseModel):
    recipient_id: str = Field(..., alias="recipientId", min_length=1)

    class Config:
        populate_by_name = True


class InitiateCallResponse(BaseModel):
    """Server-minted callId to send with ``call-user``."""

    success: bool = True
    call_id: str = Field(..., alias="callId")
    caller_id: str = Field(..., alias="callerId")
    recipient_id: str = Field(..., alias="recipientId")

    class Config:
        populate_by_name = True
