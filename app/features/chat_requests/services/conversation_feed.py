"""
Conversation feed for one chat request.

The feed is re-read wholesale on every call (no incremental cursor): fetch
the participant's message records, keep those whose correlation token is
this request, order by the store's created_at.
"""

from app.config import settings
from app.features.chat_requests.domain.errors import (
    ChatAccessError,
    ChatServiceError,
    InvalidStateError,
    StoreUnavailableError,
)
from app.features.chat_requests.domain.models import (
    KIND_CHAT_MESSAGE,
    KIND_MESSAGE_NOTICE,
    MESSAGE_KINDS,
    ChatMessage,
    ChatRequest,
    SendResult,
)
from app.features.chat_requests.repository.event_store import EventStore
from app.features.chat_requests.services import codec
from app.features.chat_requests.services.lifecycle_service import ChatRequestService
from app.features.chat_requests.services.notification_service import NotificationDeliveryService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ConversationFeed:
    def __init__(
        self,
        store: EventStore,
        requests: ChatRequestService,
        notifier: NotificationDeliveryService | None = None,
    ):
        self.store = store
        self.requests = requests
        self.notifier = notifier

    async def list_messages(
        self, request_id: str, request: ChatRequest | None = None
    ) -> list[ChatMessage]:
        """Messages of one request in store timestamp order."""
        request = request or await self.requests.get_request(request_id)
        if request.state == "rejected":
            return []

        # Older rows kept the author's phone in receiver_ref, so the trainer's
        # side is only reachable through sender_ref
        student_side = await self.store.query(kinds=MESSAGE_KINDS, participant=request.from_user_id)
        trainer_side = await self.store.query(kinds=MESSAGE_KINDS, sender=request.to_user_id)
        records = {record.id: record for record in [*student_side, *trainer_side]}

        known = {request.id}
        messages = []
        skipped = 0
        for record in records.values():
            decoded = codec.decode(record, known_request_ids=known)
            if isinstance(decoded, ChatMessage) and request.is_participant(decoded.sender_id):
                messages.append(decoded)
            else:
                skipped += 1

        messages.sort(key=lambda message: (message.created_at, message.id))

        logger.debug(
            "Conversation feed loaded",
            request_id=request.id,
            message_count=len(messages),
            skipped=skipped,
        )
        return messages

    async def send_message(
        self, request_id: str, sender_id: str, text: str, sender_name: str | None = None
    ) -> SendResult:
        """
        Append a message to an active conversation.

        Raises:
            ValueError: Blank or oversized text
            ChatAccessError: Sender is not a participant
            InvalidStateError: The conversation is not active
            StoreUnavailableError: The write failed
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message text must not be empty")
        if len(text) > settings.MESSAGE_MAX_LENGTH:
            raise ValueError(f"Message text exceeds {settings.MESSAGE_MAX_LENGTH} characters")

        request = await self.requests.get_request(request_id)
        if not request.is_participant(sender_id):
            raise ChatAccessError(
                "User is not part of this conversation", request_id=request_id, user_id=sender_id
            )
        if request.state != "active":
            raise InvalidStateError(
                f"Cannot send messages while the conversation is {request.state}",
                request_id=request_id,
                current_state=request.state,
            )

        receiver_id = request.counterpart_of(sender_id)
        record = codec.encode_message(
            request.id,
            sender_id,
            receiver_id,
            text,
            sender_name=sender_name or "",
            kind=KIND_CHAT_MESSAGE,
        )
        stored = await self.store.insert(record)
        message = codec.decode(stored, known_request_ids={request.id})
        if not isinstance(message, ChatMessage):
            raise StoreUnavailableError("Store returned an unreadable message", operation="insert")

        logger.info(
            "Chat message sent",
            request_id=request.id,
            message_id=message.id,
            sender_id=sender_id,
        )

        await self._notify_counterpart(request, sender_id, receiver_id, text, sender_name)

        try:
            feed = await self.list_messages(request.id, request=request)
        except ChatServiceError as e:
            logger.warning("Feed refresh after send failed", request_id=request.id, error=str(e))
            feed = None

        return SendResult(message=message, feed=feed)

    async def _notify_counterpart(
        self,
        request: ChatRequest,
        sender_id: str,
        receiver_id: str,
        text: str,
        sender_name: str | None,
    ) -> None:
        """New-message badge for the other party. Failures never fail the send."""
        title = f"New message from {sender_name or sender_id}"
        try:
            await self.store.insert(
                codec.encode_notice(KIND_MESSAGE_NOTICE, receiver_id, sender_id, title, text)
            )
        except Exception as e:
            logger.warning(
                "Failed to record new-message notice",
                request_id=request.id,
                error=str(e),
                error_type=type(e).__name__,
            )

        if self.notifier:
            self.notifier.dispatch(
                user_id=receiver_id,
                title=title,
                message=codec.message_preview(text),
                kind=KIND_MESSAGE_NOTICE,
            )
