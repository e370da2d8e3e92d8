# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Message endpoints.

Sending happens over HTTP; the realtime layer only pushes the resulting
``newMessage`` to the receiver. Marking read here has the same effect as
the socket ``markAsRead`` event.
"""

from fastapi import APIRouter, Depends, status

from bridgeup.api.dependencies import get_realtime
from bridgeup.core import security
from bridgeup.schemas.message import (
    ConversationSummary,
    MarkReadRequest,
    MarkReadResponse,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from bridgeup.services.realtime import RealtimeServices

router = APIRouter()


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: SendMessageRequest,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """Persist a message to a paired user and push it live."""
    return await realtime.messages.send(
        current_user_id, request.receiver_id, request.connection_id, request.content
    )


@router.get("/connection/{connection_id}", response_model=MessageListResponse)
async def list_messages(
    connection_id: str,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """Full history of a pairing, oldest first."""
    messages = await realtime.messages.list_for_connection(
        connection_id, current_user_id
    )
    return MessageListResponse(messages=messages, count=len(messages))


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    count = await realtime.messages.unread_count(current_user_id)
    return UnreadCountResponse(count=count, unread_count=count)


@router.get("/summary/{connection_id}", response_model=ConversationSummary)
async def conversation_summary(
    connection_id: str,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    """Last message and unread count, for rendering a connection list."""
    return await realtime.messages.conversation_summary(connection_id, current_user_id)


@router.post("/mark-read", response_model=MarkReadResponse)
async def mark_read(
    request: MarkReadRequest,
    current_user_id: str = Depends(security.get_current_user_id),
    realtime: RealtimeServices = Depends(get_realtime),
):
    modified = await realtime.messages.mark_read(
        request.connection_id, current_user_id, request.message_ids
    )
    return MarkReadResponse(modified_count=modified)
