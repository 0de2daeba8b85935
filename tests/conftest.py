import uuid
from datetime import UTC, datetime, timedelta

import pytest

from app.auth.verify import auth_dependency
from app.features.chat_requests.domain.errors import StoreUnavailableError
from app.features.chat_requests.domain.models import EventRecord
from app.features.chat_requests.services.conversation_feed import ConversationFeed
from app.features.chat_requests.services.lifecycle_service import ChatRequestService
from app.features.chat_requests.services.quota_guard import QuotaGuard

STUDENT_ID = "student-1"
TRAINER_ID = "trainer-1"
OTHER_STUDENT_ID = "student-2"

# 2026-03-10 09:00 in Riyadh (UTC+3)
BASE_TIME = datetime(2026, 3, 10, 6, 0, tzinfo=UTC)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeEventStore:
    """In-memory stand-in for PostgresEventStore with the same filter semantics."""

    def __init__(self, start: datetime = BASE_TIME):
        self.records: list[EventRecord] = []
        self.now = start
        self.fail_inserts_of: set[str] = set()
        self.fail_queries = False

    def tick(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def seed(self, record: EventRecord) -> EventRecord:
        """Add a record as-is, e.g. legacy rows or foreign notification kinds."""
        if record.id is None:
            record.id = str(uuid.uuid4())
        if record.created_at is None:
            record.created_at = self.tick()
        self.records.append(record)
        return record

    async def insert(self, record: EventRecord) -> EventRecord:
        if record.kind in self.fail_inserts_of:
            raise StoreUnavailableError("insert failed", operation="insert")

        stored = EventRecord(
            kind=record.kind,
            title=record.title,
            body=record.body,
            sender_ref=record.sender_ref,
            receiver_ref=record.receiver_ref,
            status=record.status,
            id=str(uuid.uuid4()),
            created_at=self.tick(),
        )
        self.records.append(stored)
        return stored

    async def update(self, record_id, fields, expected_statuses=None):
        for record in self.records:
            if record.id != record_id:
                continue
            if expected_statuses is not None and record.status not in set(expected_statuses):
                return None
            for name, value in fields.items():
                setattr(record, name, value)
            return record
        return None

    async def query(
        self,
        *,
        kinds,
        record_id=None,
        participant=None,
        sender=None,
        receiver=None,
        newest_first=False,
        limit=None,
    ):
        if self.fail_queries:
            raise StoreUnavailableError("query failed", operation="query")

        kinds = set(kinds)
        matches = [
            record
            for record in self.records
            if record.kind in kinds
            and (record_id is None or record.id == record_id)
            and (participant is None or participant in (record.sender_ref, record.receiver_ref))
            and (sender is None or record.sender_ref == sender)
            and (receiver is None or record.receiver_ref == receiver)
        ]
        matches.sort(key=lambda record: (record.created_at, record.id), reverse=newest_first)
        if limit is not None:
            matches = matches[:limit]
        return matches

    def of_kind(self, kind: str) -> list[EventRecord]:
        return [record for record in self.records if record.kind == kind]


class FakeNotifier:
    def __init__(self):
        self.pushes: list[dict] = []

    def dispatch(self, *, user_id, title, message, kind):
        self.pushes.append({"user_id": user_id, "title": title, "message": message, "kind": kind})

    async def drain(self):
        return None


@pytest.fixture
def event_store():
    return FakeEventStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def chat_service(event_store, notifier):
    return ChatRequestService(
        event_store,
        notifier,
        quota_guard=QuotaGuard("Asia/Riyadh"),
        clock=lambda: event_store.now,
    )


@pytest.fixture
def conversation_feed(event_store, chat_service, notifier):
    return ConversationFeed(event_store, chat_service, notifier)
