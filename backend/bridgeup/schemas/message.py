# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Message schemas for request/response validation.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from bridgeup.core.config import settings


class SendMessageRequest(BaseModel):
    """Request body for sending a message."""

    receiver_id: str = Field(..., alias="receiverId", min_length=1)
    connection_id: str = Field(..., alias="connectionId", min_length=1)
    content: str = Field(..., min_length=1, max_length=settings.MESSAGE_MAX_LENGTH)

    class Config:
        populate_by_name = True


class MessageResponse(BaseModel):
    """A persisted message."""

    id: int
    sender_id: str = Field(..., alias="senderId")
    receiver_id: str = Field(..., alias="receiverId")
    connection_id: str = Field(..., alias="connectionId")
    content: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    is_read: bool = Field(False, alias="isRead")
    read_at: Optional[datetime] = Field(None, alias="readAt")

    class Config:
        populate_by_name = True

    @classmethod
    def from_model(cls, message) -> "MessageResponse":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            connection_id=message.connection_id,
            content=message.content,
            created_at=message.created_at,
            is_read=bool(message.is_read),
            read_at=message.read_at,
        )

    def to_event(self) -> dict:
        """Serialize for a Socket.IO emit."""
        return self.model_dump(by_alias=True, mode="json")


class MessageListResponse(BaseModel):
    success: bool = True
    messages: List[MessageResponse]
    count: int


class UnreadCountResponse(BaseModel):
    success: bool = True
    count: int
    unread_count: int = Field(..., alias="unreadCount")

    class Config:
        populate_by_name = True


class ConversationSummary(BaseModel):
    """Last message and unread count for one pairing."""

    success: bool = True
    connection_id: str = Field(..., alias="connectionId")
    last_message: Optional[MessageResponse] = Field(None, alias="lastMessage")
    unread_count: int = Field(0, alias="unreadCount")

    class Config:
        populate_by_name = True


class MarkReadRequest(BaseModel):
    """Mark messages of a pairing as read; all unread ones when ids are omitted."""

    connection_id: str = Field(..., alias="connectionId", min_length=1)
    message_ids: Optional[List[int]] = Field(None, alias="messageIds")

    class Config:
        populate_by_name = True


class MarkReadResponse(BaseModel):
    success: bool = True
    message: str = "Messages marked as read"
    modified_count: int = Field(..., alias="modifiedCount")

    class Config:
        populate_by_name = True
