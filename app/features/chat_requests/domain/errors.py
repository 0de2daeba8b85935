"""
Typed failures of the chat request feature.

Routes map these to HTTP responses; the poll scheduler treats
StoreUnavailableError as "keep last known state and retry next tick".
"""

from app.features.chat_requests.domain.models import QuotaStatus


class ChatServiceError(Exception):
    """Base exception for chat request operations."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class QuotaExceededError(ChatServiceError):
    """Sender already has a same-day non-rejected request (or one still outstanding)."""

    def __init__(self, message: str, quota: QuotaStatus, reason: str = "daily_limit"):
        super().__init__(message)
        self.quota = quota
        self.reason = reason


class ConflictError(ChatServiceError):
    """Lifecycle transition not valid for the request's current state."""

    def __init__(self, message: str, request_id: str, current_state: str | None, action: str):
        super().__init__(message)
        self.request_id = request_id
        self.current_state = current_state
        self.action = action


class InvalidStateError(ChatServiceError):
    """Message sent into a conversation that is not active."""

    def __init__(self, message: str, request_id: str, current_state: str):
        super().__init__(message)
        self.request_id = request_id
        self.current_state = current_state


class StoreUnavailableError(ChatServiceError):
    """The event store call failed or returned something unusable."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class RequestNotFoundError(ChatServiceError):
    def __init__(self, request_id: str):
        super().__init__(f"Chat request {request_id} not found", recoverable=False)
        self.request_id = request_id


class ChatAccessError(ChatServiceError):
    """Caller is not the party allowed to perform this action on the request."""

    def __init__(self, message: str, request_id: str, user_id: str):
        super().__init__(message, recoverable=False)
        self.request_id = request_id
        self.user_id = user_id
