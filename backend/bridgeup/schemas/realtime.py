# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Server-to-client realtime event schemas.

Each event name has exactly one payload model. Call events always carry the
``callId`` so a client can drop signaling that belongs to a call it no
longer tracks.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ServerEvents:
    """Events pushed by the server."""

    ONLINE_USERS = "onlineUsers"
    USER_STATUS_CHANGE = "userStatusChange"
    NEW_MESSAGE = "newMessage"
    MESSAGE_READ = "messageRead"
    USER_TYPING = "userTyping"
    NOTIFICATION = "notification"
    INCOMING_CALL = "incoming-call"
    CALL_ANSWERED = "call-answered"
    CALL_REJECTED = "call-rejected"
    CALL_CANCELLED = "call-cancelled"
    CALL_ENDED = "call-ended"
    CALL_FAILED = "call-failed"
    CALL_MISSED = "call-missed"
    ICE_CANDIDATE = "ice-candidate"
    VIDEO_CHAT_MESSAGE = "video-chat-message"


class _WireModel(BaseModel):
    class Config:
        populate_by_name = True

    def to_event(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class UserStatusChangeEvent(_WireModel):
    user_id: str = Field(..., alias="userId")
    is_online: bool = Field(..., alias="isOnline")


class MessageReadEvent(_WireModel):
    """Read receipt sent to the author of the flipped messages."""

    connection_id: str = Field(..., alias="connectionId")
    message_ids: List[int] = Field(..., alias="messageIds")
    read_by: str = Field(..., alias="readBy")


class UserTypingEvent(_WireModel):
    """
    Typing indicator.

    The receiver treats the indicator as stopped once ``ttl`` seconds pass
    without a repeat signal.
    """

    sender_id: str = Field(..., alias="senderId")
    sender_name: Optional[str] = Field(None, alias="senderName")
    is_typing: bool = Field(..., alias="isTyping")
    ttl: int


class IncomingCallEvent(_WireModel):
    call_id: str = Field(..., alias="callId")
    from_user: str = Field(..., alias="from")
    from_name: Optional[str] = Field(None, alias="fromName")
    offer: Any = None


class CallAnsweredEvent(_WireModel):
    call_id: str = Field(..., alias="callId")
    from_user: str = Field(..., alias="from")
    answer: Any = None


class CallStateEvent(_WireModel):
    """Payload for rejected/cancelled/ended/missed/failed notices."""

    call_id: str = Field(..., alias="callId")
    from_user: Optional[str] = Field(None, alias="from")
    reason: Optional[str] = None


class IceCandidateEvent(_WireModel):
    call_id: str = Field(..., alias="callId")
    from_user: str = Field(..., alias="from")
    candidate: Any = None


class VideoChatMessageEvent(_WireModel):
    call_id: str = Field(..., alias="callId")
    from_user: str = Field(..., alias="from")
    message: Any = None
