"""
Encoding codec between chat objects and generic event records.

This is the only module that knows how chat requests, messages and notices
are packed into ``academy_notifications`` rows:

- chat_request: body is the request text, title the sender's display name,
  sender_ref the student and receiver_ref the trainer.
- chat_message / live_chat: body carries the text plus the correlation token
  (the request id). New rows use a small JSON envelope; older rows used
  ``text|request_id`` and are still readable.
- notices: the recipient sits in sender_ref (the column notification badges
  are keyed on) and the actor in receiver_ref.

``decode`` is total: anything it cannot interpret becomes a DecodeSkip.
"""

import json
from collections.abc import Collection
from datetime import datetime

from app.features.chat_requests.domain.models import (
    KIND_CHAT_MESSAGE,
    KIND_CHAT_REQUEST,
    KIND_MESSAGE_NOTICE,
    MESSAGE_KINDS,
    NOTICE_KINDS,
    REQUEST_STATES,
    ChatMessage,
    ChatRequest,
    ChatRequestSubmission,
    Decoded,
    DecodeSkip,
    EventRecord,
    Notice,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

LEGACY_SEPARATOR = "|"
BODY_VERSION = 1
MESSAGE_STATUS_SENT = "sent"
NOTICE_PREVIEW_LENGTH = 50

# Older clients wrote the generic "sent" status on new requests
_STATUS_TO_STATE = {state: state for state in REQUEST_STATES}
_STATUS_TO_STATE["sent"] = "pending"


def stored_statuses(state: str) -> tuple[str, ...]:
    """Every raw status value that decodes to ``state``."""
    return tuple(sorted(status for status, mapped in _STATUS_TO_STATE.items() if mapped == state))


def pack_message_body(text: str, request_id: str) -> str:
    envelope = {"v": BODY_VERSION, "text": text, "request_id": request_id}
    return json.dumps(envelope, ensure_ascii=False, separators=(",", ":"))


def unpack_message_body(body: str | None) -> tuple[str, str] | None:
    """Return (text, correlation_token) or None when the body is malformed."""
    if not isinstance(body, str) or not body:
        return None

    if body.startswith("{"):
        try:
            envelope = json.loads(body)
        except ValueError:
            envelope = None
        if isinstance(envelope, dict) and envelope.get("v") == BODY_VERSION:
            text = envelope.get("text")
            token = envelope.get("request_id")
            if isinstance(text, str) and isinstance(token, str):
                return text, token
            return None

    # Legacy "text|token": ids never contain the separator, the text might
    text, separator, token = body.rpartition(LEGACY_SEPARATOR)
    if not separator:
        return None
    return text, token


def encode_request(submission: ChatRequestSubmission) -> EventRecord:
    return EventRecord(
        kind=KIND_CHAT_REQUEST,
        title=submission.sender_name,
        body=submission.text,
        sender_ref=submission.sender_id,
        receiver_ref=submission.trainer_id,
        status="pending",
    )


def encode_message(
    request_id: str,
    sender_id: str,
    receiver_id: str,
    text: str,
    sender_name: str = "",
    kind: str = KIND_CHAT_MESSAGE,
) -> EventRecord:
    if kind not in MESSAGE_KINDS:
        raise ValueError(f"Not a message kind: {kind}")

    return EventRecord(
        kind=kind,
        title=sender_name or sender_id,
        body=pack_message_body(text, request_id),
        sender_ref=sender_id,
        receiver_ref=receiver_id,
        status=MESSAGE_STATUS_SENT,
    )


def encode_notice(
    kind: str, recipient_id: str, actor_id: str | None, title: str, text: str
) -> EventRecord:
    if kind not in NOTICE_KINDS:
        raise ValueError(f"Not a notice kind: {kind}")

    if kind == KIND_MESSAGE_NOTICE:
        text = message_preview(text)

    return EventRecord(
        kind=kind,
        title=title,
        body=text,
        sender_ref=recipient_id,
        receiver_ref=actor_id,
        status=MESSAGE_STATUS_SENT,
    )


def message_preview(text: str) -> str:
    if len(text) > NOTICE_PREVIEW_LENGTH:
        return text[:NOTICE_PREVIEW_LENGTH] + "..."
    return text


def decode(record: EventRecord, known_request_ids: Collection[str] | None = None) -> Decoded:
    """
    Decode one event record into a chat object.

    Args:
        record: Raw store record of any kind
        known_request_ids: When given, message tokens outside this set are
            treated as orphaned and skipped

    Returns:
        ChatRequest, ChatMessage, Notice, or DecodeSkip. Never raises.
    """
    try:
        return _decode(record, known_request_ids)
    except Exception as e:
        logger.debug(
            "Discarding undecodable record",
            record_id=getattr(record, "id", None),
            error=str(e),
            error_type=type(e).__name__,
        )
        return DecodeSkip(getattr(record, "id", None), getattr(record, "kind", None), "decode_error")


def _decode(record: EventRecord, known_request_ids: Collection[str] | None) -> Decoded:
    kind = record.kind
    if not record.id or not isinstance(record.created_at, datetime):
        return DecodeSkip(record.id, kind, "missing_store_fields")

    if kind == KIND_CHAT_REQUEST:
        return _decode_request(record)
    if kind in MESSAGE_KINDS:
        return _decode_message(record, known_request_ids)
    if kind in NOTICE_KINDS:
        return _decode_notice(record)
    return DecodeSkip(record.id, kind, "unknown_kind")


def _decode_request(record: EventRecord) -> Decoded:
    state = _STATUS_TO_STATE.get(record.status or "")
    if state is None:
        return DecodeSkip(record.id, record.kind, "unknown_status")
    if not record.sender_ref or not record.receiver_ref:
        return DecodeSkip(record.id, record.kind, "missing_participant")
    if not (record.body or "").strip():
        return DecodeSkip(record.id, record.kind, "empty_text")

    return ChatRequest(
        id=record.id,
        from_user_id=record.sender_ref,
        to_user_id=record.receiver_ref,
        sender_name=record.title or "",
        text=record.body,
        state=state,
        created_at=record.created_at,
    )


def _decode_message(record: EventRecord, known_request_ids: Collection[str] | None) -> Decoded:
    unpacked = unpack_message_body(record.body)
    if unpacked is None:
        return DecodeSkip(record.id, record.kind, "missing_separator")

    text, token = unpacked
    if not text.strip():
        return DecodeSkip(record.id, record.kind, "empty_text")
    if not token:
        return DecodeSkip(record.id, record.kind, "missing_token")
    if known_request_ids is not None and token not in known_request_ids:
        return DecodeSkip(record.id, record.kind, "orphaned_token")
    if not record.sender_ref:
        return DecodeSkip(record.id, record.kind, "missing_participant")

    return ChatMessage(
        id=record.id,
        request_id=token,
        sender_id=record.sender_ref,
        receiver_id=record.receiver_ref,
        text=text,
        kind=record.kind,
        created_at=record.created_at,
    )


def _decode_notice(record: EventRecord) -> Decoded:
    if not record.sender_ref:
        return DecodeSkip(record.id, record.kind, "missing_participant")

    return Notice(
        id=record.id,
        kind=record.kind,
        recipient_id=record.sender_ref,
        actor_id=record.receiver_ref,
        title=record.title or "",
        text=record.body or "",
        created_at=record.created_at,
    )
