"""
Domain subpackage for the chat request feature.
"""

from .errors import (
    ChatAccessError,
    ChatServiceError,
    ConflictError,
    InvalidStateError,
    QuotaExceededError,
    RequestNotFoundError,
    StoreUnavailableError,
)
from .models import (
    KIND_CHAT_APPROVED,
    KIND_CHAT_MESSAGE,
    KIND_CHAT_REJECTED,
    KIND_CHAT_REQUEST,
    KIND_LIVE_CHAT,
    KIND_MESSAGE_NOTICE,
    MESSAGE_KINDS,
    NOTICE_KINDS,
    OUTSTANDING_STATES,
    REQUEST_STATES,
    TERMINAL_STATES,
    ChatMessage,
    ChatRequest,
    ChatRequestSubmission,
    Decoded,
    DecodeSkip,
    EventRecord,
    Notice,
    QuotaStatus,
    RequestState,
    SendResult,
    UserRole,
)

__all__ = [
    "KIND_CHAT_APPROVED",
    "KIND_CHAT_MESSAGE",
    "KIND_CHAT_REJECTED",
    "KIND_CHAT_REQUEST",
    "KIND_LIVE_CHAT",
    "KIND_MESSAGE_NOTICE",
    "MESSAGE_KINDS",
    "NOTICE_KINDS",
    "OUTSTANDING_STATES",
    "REQUEST_STATES",
    "TERMINAL_STATES",
    "ChatAccessError",
    "ChatMessage",
    "ChatRequest",
    "ChatRequestSubmission",
    "ChatServiceError",
    "ConflictError",
    "Decoded",
    "DecodeSkip",
    "EventRecord",
    "InvalidStateError",
    "Notice",
    "QuotaExceededError",
    "QuotaStatus",
    "RequestNotFoundError",
    "RequestState",
    "SendResult",
    "StoreUnavailableError",
    "UserRole",
]
