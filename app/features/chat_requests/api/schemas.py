"""
Chat request API request/response models.
Used by the chat router for input validation and output formatting.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.features.chat_requests.domain.models import ChatMessage, ChatRequest, QuotaStatus


class SubmitChatRequestRequest(BaseModel):
    """Student asks a trainer for a conversation."""

    trainer_id: str = Field(..., min_length=1, description="Trainer to contact")
    # Length limit is MESSAGE_MAX_LENGTH, checked by the service
    text: str = Field(..., min_length=1, description="Why the student wants to talk")


class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ChatRequestResponse(BaseModel):
    """Response model for a chat request."""

    id: str = Field(..., description="Request ID")
    from_user_id: str = Field(..., description="Student who sent the request")
    to_user_id: str = Field(..., description="Trainer the request is addressed to")
    sender_name: str = Field(..., description="Sender display name")
    text: str = Field(..., description="Request text")
    state: Literal["pending", "approved", "rejected", "active", "ended"]
    read_only: bool = Field(..., description="Whether the conversation accepts no new messages")
    created_at: datetime

    @classmethod
    def from_domain(cls, request: ChatRequest) -> "ChatRequestResponse":
        return cls(
            id=request.id,
            from_user_id=request.from_user_id,
            to_user_id=request.to_user_id,
            sender_name=request.sender_name,
            text=request.text,
            state=request.state,
            read_only=request.is_read_only,
            created_at=request.created_at,
        )


class ChatRequestListResponse(BaseModel):
    requests: list[ChatRequestResponse]
    total_count: int


class ChatMessageResponse(BaseModel):
    id: str
    request_id: str
    sender_id: str
    receiver_id: str | None = None
    text: str
    created_at: datetime

    @classmethod
    def from_domain(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            request_id=message.request_id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            text=message.text,
            created_at=message.created_at,
        )


class MessageFeedResponse(BaseModel):
    request_id: str
    state: str
    read_only: bool
    messages: list[ChatMessageResponse]


class SendMessageResponse(BaseModel):
    message: ChatMessageResponse
    messages: list[ChatMessageResponse] | None = Field(
        None, description="Refreshed feed; null when the refresh failed"
    )


class QuotaStatusResponse(BaseModel):
    """Daily request quota badge."""

    can_send: bool
    today_count: int
    last_state: str | None = None
    resets_at: datetime | None = None

    @classmethod
    def from_domain(cls, quota: QuotaStatus) -> "QuotaStatusResponse":
        return cls(
            can_send=quota.can_send,
            today_count=quota.today_count,
            last_state=quota.last_state,
            resets_at=quota.resets_at,
        )
