# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Video call endpoints.

Signaling itself runs over Socket.IO; these endpoints expose call state,
history and a fallback to end a call from a plain HTTP client.
"""

import time

from fastapi import APIRouter, Depends, HTTPException, Query, status

from bridgeup.api.dependencies import get_realtime
from bridgeup.core import security
from bridgeup.core.config import settings
from bridgeup.core.exceptions import NotFoundError
from bridgeup.schemas.call import (
    ActiveCallResponse,
    CallHistoryResponse,
    CallSessionResponse,
    CallStatusResponse,
    EndCallResponse,
    InitiateCallRequest,
    InitiateCallResponse,
)
from bridgeup.services.call_signaling import FAIL_BUSY, FAIL_CALLER_BUSY
from bridgeup.services.realtime import RealtimeServices

router = APIRouter()

_UNAVAILABLE_DETAIL = {
    FAIL_BUSY: "User is currently on another call",
    FAIL_CALLER_BUSY: "You are already on another call",
}


@router.post("/initiate", response_model=InitiateCallResponse)
async def initiate_call(
    request: InitiateCallRequest,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """
    Check that both sides are free and mint a callId for ``call-user``.

    Nothing is reserved: the call starts ringing only when the client
    sends ``call-user`` with the returned id.
    """
    reason = realtime.calls.availability(current_user_id, request.recipient_id)
    if reason is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_UNAVAILABLE_DETAIL.get(reason, "Cannot call yourself"),
        )
    call_id = f"call_{int(time.time() * 1000)}_{current_user_id}_{request.recipient_id}"
    return InitiateCallResponse(
        call_id=call_id,
        caller_id=current_user_id,
        recipient_id=request.recipient_id,
    )


@router.get("/status/{call_id}", response_model=CallStatusResponse)
async def call_status(
    call_id: str,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """Live or recently finished call, falling back to the archive."""
    try:
        session = realtime.calls.get_call(call_id, current_user_id)
    except NotFoundError:
        record = await realtime.calls.archived_call(call_id, current_user_id)
        return CallStatusResponse(call=CallSessionResponse.from_record(record))
    return CallStatusResponse(call=CallSessionResponse.from_session(session))


@router.get("/active", response_model=ActiveCallResponse)
async def active_call(
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    session = realtime.calls.active_call_of(current_user_id)
    return ActiveCallResponse(
        call=CallSessionResponse.from_session(session) if session else None
    )


@router.get("/history", response_model=CallHistoryResponse)
async def call_history(
    limit: int = Query(settings.CALL_HISTORY_DEFAULT_LIMIT, ge=1, le=200),
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    records = await realtime.calls.history(current_user_id, limit)
    return CallHistoryResponse(
        call_history=[CallSessionResponse.from_record(record) for record in records]
    )


@router.post("/end/{call_id}", response_model=EndCallResponse)
async def end_call(
    call_id: str,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """End a call as if the requester sent ``end-call``."""
    realtime.calls.get_call(call_id, current_user_id)
    session = await realtime.calls.end(call_id, current_user_id)
    return EndCallResponse(message="Call ended", state=session.state)
