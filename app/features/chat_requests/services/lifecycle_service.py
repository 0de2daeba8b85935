"""
Chat request lifecycle.

State machine per request:

    pending  -> approved   (receiver approves; chat_approved notice to sender)
    pending  -> rejected   (receiver rejects; chat_rejected notice to sender)
    approved -> active     (either party opens the conversation)
    active   -> ended      (either party ends it)

Transitions update the request record's status in place; the originating
chat_request row is never deleted. Writes are guarded by the status we read,
so a concurrent transition surfaces as ConflictError instead of being
overwritten.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from app.config import settings
from app.features.chat_requests.domain.errors import (
    ChatAccessError,
    ConflictError,
    QuotaExceededError,
    RequestNotFoundError,
    StoreUnavailableError,
)
from app.features.chat_requests.domain.models import (
    KIND_CHAT_APPROVED,
    KIND_CHAT_REJECTED,
    KIND_CHAT_REQUEST,
    ChatRequest,
    ChatRequestSubmission,
    QuotaStatus,
)
from app.features.chat_requests.repository.event_store import EventStore
from app.features.chat_requests.services import codec
from app.features.chat_requests.services.notification_service import NotificationDeliveryService
from app.features.chat_requests.services.quota_guard import QuotaGuard
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# action -> (required current state, next state)
TRANSITIONS: dict[str, tuple[str, str]] = {
    "approve": ("pending", "approved"),
    "reject": ("pending", "rejected"),
    "open": ("approved", "active"),
    "end": ("active", "ended"),
}

RECEIVER_ACTIONS = frozenset({"approve", "reject"})

NOTICE_TEXT = {
    KIND_CHAT_APPROVED: (
        "Chat request approved",
        "Your chat request was approved. You can now start the conversation with the trainer.",
    ),
    KIND_CHAT_REJECTED: (
        "Chat request rejected",
        "Your chat request was rejected. You can send a new request.",
    ),
}


def next_state(request_id: str, current: str, action: str) -> str:
    """Return the state ``action`` leads to, or raise ConflictError."""
    if action not in TRANSITIONS:
        raise ValueError(f"Unknown lifecycle action: {action}")

    required, target = TRANSITIONS[action]
    if current != required:
        raise ConflictError(
            f"Cannot {action} a request that is {current}",
            request_id=request_id,
            current_state=current,
            action=action,
        )
    return target


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChatRequestService:
    """Creates chat requests and moves them through their lifecycle."""

    def __init__(
        self,
        store: EventStore,
        notifier: NotificationDeliveryService | None = None,
        quota_guard: QuotaGuard | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.quota_guard = quota_guard or QuotaGuard()
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str) -> ChatRequest:
        records = await self.store.query(kinds=[KIND_CHAT_REQUEST], record_id=request_id, limit=1)
        request = codec.decode(records[0]) if records else None
        if not isinstance(request, ChatRequest):
            raise RequestNotFoundError(request_id)
        return request

    async def list_requests(self, user_id: str, role: str) -> list[ChatRequest]:
        """
        Requests visible to a user, newest first.

        Students see what they sent, trainers what was addressed to them,
        admins everything.
        """
        if role == "admin":
            records = await self.store.query(kinds=[KIND_CHAT_REQUEST], newest_first=True)
        elif role == "trainer":
            records = await self.store.query(
                kinds=[KIND_CHAT_REQUEST], receiver=user_id, newest_first=True
            )
        else:
            records = await self.store.query(
                kinds=[KIND_CHAT_REQUEST], sender=user_id, newest_first=True
            )

        requests = [decoded for decoded in map(codec.decode, records) if isinstance(decoded, ChatRequest)]
        requests.sort(key=lambda request: (request.created_at, request.id), reverse=True)
        return requests

    async def quota_status(self, sender_id: str) -> QuotaStatus:
        records = await self.store.query(kinds=[KIND_CHAT_REQUEST], sender=sender_id)
        return self.quota_guard.evaluate(sender_id, self.clock(), records)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def submit_request(
        self, sender_id: str, trainer_id: str, text: str, sender_name: str | None = None
    ) -> ChatRequest:
        """
        Create a pending chat request from a student to a trainer.

        Raises:
            ValueError: Blank or oversized text, or a request to oneself
            QuotaExceededError: Today's slot is used or a request is still outstanding
            StoreUnavailableError: The store read or write failed
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Request text must not be empty")
        if len(text) > settings.MESSAGE_MAX_LENGTH:
            raise ValueError(f"Request text exceeds {settings.MESSAGE_MAX_LENGTH} characters")
        if sender_id == trainer_id:
            raise ValueError("Cannot send a chat request to yourself")

        records = await self.store.query(kinds=[KIND_CHAT_REQUEST], sender=sender_id)
        quota = self.quota_guard.evaluate(sender_id, self.clock(), records)

        if not quota.can_send:
            logger.info(
                "Chat request quota exceeded",
                sender_id=sender_id,
                today_count=quota.today_count,
                last_state=quota.last_state,
            )
            raise QuotaExceededError(
                "A chat request was already sent today. Wait until tomorrow or for a rejection.",
                quota=quota,
            )

        outstanding = [
            request
            for request in map(codec.decode, records)
            if isinstance(request, ChatRequest)
            and request.from_user_id == sender_id
            and request.is_outstanding
        ]
        if outstanding:
            logger.info(
                "Chat request blocked by outstanding request",
                sender_id=sender_id,
                outstanding_id=outstanding[0].id,
                outstanding_state=outstanding[0].state,
            )
            raise QuotaExceededError(
                "An earlier chat request is still open. End it or wait for a response first.",
                quota=QuotaStatus(
                    can_send=False,
                    today_count=quota.today_count,
                    last_state=outstanding[0].state,
                ),
                reason="outstanding_request",
            )

        submission = ChatRequestSubmission(
            sender_id=sender_id,
            sender_name=sender_name or sender_id,
            trainer_id=trainer_id,
            text=text,
        )
        stored = await self.store.insert(codec.encode_request(submission))
        request = codec.decode(stored)
        if not isinstance(request, ChatRequest):
            raise StoreUnavailableError("Store returned an unreadable chat request", operation="insert")

        logger.info(
            "Chat request submitted",
            request_id=request.id,
            sender_id=sender_id,
            trainer_id=trainer_id,
        )

        if self.notifier:
            self.notifier.dispatch(
                user_id=trainer_id,
                title=f"Chat request from {submission.sender_name}",
                message=codec.message_preview(text),
                kind=KIND_CHAT_REQUEST,
            )

        return request

    async def approve(self, request_id: str, actor_id: str) -> ChatRequest:
        request = await self._transition(request_id, actor_id, "approve")
        await self._emit_notice(request, KIND_CHAT_APPROVED, actor_id)
        return request

    async def reject(self, request_id: str, actor_id: str) -> ChatRequest:
        request = await self._transition(request_id, actor_id, "reject")
        await self._emit_notice(request, KIND_CHAT_REJECTED, actor_id)
        return request

    async def open_conversation(self, request_id: str, actor_id: str) -> ChatRequest:
        """
        Open the conversation view. Moves approved -> active; re-opening an
        active or ended conversation returns it unchanged (ended is read-only).
        """
        request = await self.get_request(request_id)
        self._check_actor(request, actor_id, "open")
        if request.state in ("active", "ended"):
            return request
        return await self._transition(request_id, actor_id, "open", current=request)

    async def end_conversation(self, request_id: str, actor_id: str) -> ChatRequest:
        return await self._transition(request_id, actor_id, "end")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_actor(self, request: ChatRequest, actor_id: str, action: str) -> None:
        if action in RECEIVER_ACTIONS:
            allowed = actor_id == request.to_user_id
        else:
            allowed = request.is_participant(actor_id)

        if not allowed:
            raise ChatAccessError(
                f"User may not {action} this chat request", request_id=request.id, user_id=actor_id
            )

    async def _transition(
        self, request_id: str, actor_id: str, action: str, current: ChatRequest | None = None
    ) -> ChatRequest:
        request = current or await self.get_request(request_id)
        self._check_actor(request, actor_id, action)
        target = next_state(request_id, request.state, action)

        updated = await self.store.update(
            request_id,
            {"status": target},
            expected_statuses=codec.stored_statuses(request.state),
        )

        if updated is None:
            # Someone else moved the request between our read and write
            latest = await self.get_request(request_id)
            logger.warning(
                "Chat request transition lost a race",
                request_id=request_id,
                action=action,
                expected_state=request.state,
                current_state=latest.state,
            )
            raise ConflictError(
                f"Cannot {action} a request that is {latest.state}",
                request_id=request_id,
                current_state=latest.state,
                action=action,
            )

        result = codec.decode(updated)
        if not isinstance(result, ChatRequest):
            raise StoreUnavailableError("Store returned an unreadable chat request", operation="update")

        logger.info(
            "Chat request transitioned",
            request_id=request_id,
            action=action,
            from_state=request.state,
            to_state=result.state,
            actor_id=actor_id,
        )
        return result

    async def _emit_notice(self, request: ChatRequest, kind: str, actor_id: str) -> None:
        """Record a notice for the sender and push it externally. Best-effort."""
        title, text = NOTICE_TEXT[kind]
        try:
            await self.store.insert(
                codec.encode_notice(kind, request.from_user_id, actor_id, title, text)
            )
        except Exception as e:
            logger.warning(
                "Failed to record chat notice",
                request_id=request.id,
                kind=kind,
                error=str(e),
                error_type=type(e).__name__,
            )

        if self.notifier:
            self.notifier.dispatch(user_id=request.from_user_id, title=title, message=text, kind=kind)
