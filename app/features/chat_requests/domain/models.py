"""
Domain models for the chat request feature.

Every chat object is multiplexed onto the shared ``academy_notifications``
table, so the only physical shape is ``EventRecord``. The other dataclasses
are derived views produced by the codec; nothing outside the codec should
read raw record fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

RequestState = Literal["pending", "approved", "rejected", "active", "ended"]
UserRole = Literal["student", "trainer", "admin"]

REQUEST_STATES: frozenset[str] = frozenset({"pending", "approved", "rejected", "active", "ended"})
OUTSTANDING_STATES: frozenset[str] = frozenset({"pending", "approved", "active"})
TERMINAL_STATES: frozenset[str] = frozenset({"rejected", "ended"})

# Record kinds interpreted by this feature. The table also carries
# attendance, maintenance and other notification kinds we never touch.
KIND_CHAT_REQUEST = "chat_request"
KIND_CHAT_APPROVED = "chat_approved"
KIND_CHAT_REJECTED = "chat_rejected"
KIND_CHAT_MESSAGE = "chat_message"
KIND_LIVE_CHAT = "live_chat"
KIND_MESSAGE_NOTICE = "chat_message_notification"

MESSAGE_KINDS: frozenset[str] = frozenset({KIND_CHAT_MESSAGE, KIND_LIVE_CHAT})
NOTICE_KINDS: frozenset[str] = frozenset(
    {KIND_CHAT_APPROVED, KIND_CHAT_REJECTED, KIND_MESSAGE_NOTICE}
)


@dataclass(slots=True)
class EventRecord:
    """One row of the generic event store. ``id``/``created_at`` are store-assigned."""

    kind: str
    title: str
    body: str
    sender_ref: str | None
    receiver_ref: str | None
    status: str | None
    id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class ChatRequestSubmission:
    sender_id: str
    sender_name: str
    trainer_id: str
    text: str


@dataclass(slots=True)
class ChatRequest:
    """A student's request to talk to a trainer."""

    id: str
    from_user_id: str
    to_user_id: str
    sender_name: str
    text: str
    state: RequestState
    created_at: datetime

    @property
    def is_outstanding(self) -> bool:
        return self.state in OUTSTANDING_STATES

    @property
    def is_read_only(self) -> bool:
        return self.state != "active"

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.from_user_id, self.to_user_id)

    def counterpart_of(self, user_id: str) -> str:
        return self.to_user_id if user_id == self.from_user_id else self.from_user_id


@dataclass(slots=True)
class ChatMessage:
    id: str
    request_id: str
    sender_id: str
    receiver_id: str | None
    text: str
    kind: str
    created_at: datetime


@dataclass(slots=True)
class Notice:
    """Approval/rejection/new-message notice addressed to one user."""

    id: str
    kind: str
    recipient_id: str
    actor_id: str | None
    title: str
    text: str
    created_at: datetime


@dataclass(slots=True, frozen=True)
class DecodeSkip:
    """Marker for records that do not decode into a chat object. Never raised."""

    record_id: str | None
    kind: str | None
    reason: str


Decoded = ChatRequest | ChatMessage | Notice | DecodeSkip


@dataclass(slots=True)
class QuotaStatus:
    can_send: bool
    today_count: int
    last_state: str | None = None
    resets_at: datetime | None = None


@dataclass(slots=True)
class SendResult:
    message: ChatMessage
    # None when the post-send refresh failed; the write itself succeeded
    feed: list[ChatMessage] | None = field(default=None)
