# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Socket.IO client event names and payload schemas.

Server-to-client events live in bridgeup.schemas.realtime, since services
emit them too.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from bridgeup.schemas.realtime import ServerEvents  # noqa: F401


class ClientEvents:
    """Events sent by clients."""

    JOIN = "join"
    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"
    TYPING = "typing"
    MARK_AS_READ = "markAsRead"
    NEW_NOTIFICATION = "newNotification"
    CALL_USER = "call-user"
    ANSWER_CALL = "answer-call"
    REJECT_CALL = "reject-call"
    CANCEL_CALL = "cancel-call"
    END_CALL = "end-call"
    ICE_CANDIDATE = "ice-candidate"
    VIDEO_CHAT_MESSAGE = "video-chat-message"


class _ClientPayload(BaseModel):
    class Config:
        populate_by_name = True


# ============================================================
# Presence
# ============================================================


class JoinPayload(_ClientPayload):
    """join / user-online / user-offline; clients send the bare user id."""

    user_id: str = Field(..., alias="userId", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, (str, int)):
            return {"userId": str(data)}
        return data


# ============================================================
# Messaging and relay
# ============================================================


class TypingPayload(_ClientPayload):
    receiver_id: str = Field(..., alias="receiverId", min_length=1)
    is_typing: bool = Field(..., alias="isTyping")
    sender_name: Optional[str] = Field(None, alias="senderName")


class MarkAsReadPayload(_ClientPayload):
    connection_id: str = Field(..., alias="connectionId", min_length=1)
    message_ids: Optional[List[int]] = Field(None, alias="messageIds")


class NotificationPayload(_ClientPayload):
    recipient_id: str = Field(..., alias="recipientId", min_length=1)
    notification: Any = None


# ============================================================
# Call signaling
# ============================================================


class CallUserPayload(_ClientPayload):
    to: str = Field(..., min_length=1)
    call_id: str = Field(..., alias="callId", min_length=1)
    from_user: Optional[str] = Field(None, alias="from")
    from_name: Optional[str] = Field(None, alias="fromName")
    offer: Any = None


class AnswerCallPayload(_ClientPayload):
    call_id: str = Field(..., alias="callId", min_length=1)
    to: Optional[str] = None
    answer: Any = None


class CallControlPayload(_ClientPayload):
    """reject-call / cancel-call / end-call"""

    call_id: str = Field(..., alias="callId", min_length=1)
    to: Optional[str] = None


class IceCandidatePayload(_ClientPayload):
    call_id: str = Field(..., alias="callId", min_length=1)
    to: Optional[str] = None
    candidate: Any = None


class VideoChatMessagePayload(_ClientPayload):
    call_id: str = Field(..., alias="callId", min_length=1)
    to: Optional[str] = None
    message: Any = None


# ============================================================
# Acknowledgements
# ============================================================


class GenericAck(BaseModel):
    success: bool = True
    error: Optional[str] = None


class JoinAck(GenericAck):
    online_users: List[str] = Field(default_factory=list, alias="onlineUsers")

    class Config:
        populate_by_name = True


class CallAck(GenericAck):
    call_id: Optional[str] = Field(None, alias="callId")
    state: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        populate_by_name = True


class MarkReadAck(GenericAck):
    modified_count: int = Field(0, alias="modifiedCount")

    class Config:
        populate_by_name = True
