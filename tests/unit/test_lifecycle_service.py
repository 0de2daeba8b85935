"""
Tests for chat request submission and lifecycle transitions.
"""

from datetime import timedelta

import pytest

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
    EventRecord,
)
from app.features.chat_requests.services.lifecycle_service import TRANSITIONS, next_state
from tests.conftest import OTHER_STUDENT_ID, STUDENT_ID, TRAINER_ID

ALL_STATES = ["pending", "approved", "rejected", "active", "ended"]


@pytest.mark.parametrize("action", sorted(TRANSITIONS))
@pytest.mark.parametrize("current", ALL_STATES)
def test_next_state_only_allows_listed_transitions(action, current):
    required, target = TRANSITIONS[action]
    if current == required:
        assert next_state("req-1", current, action) == target
    else:
        with pytest.raises(ConflictError) as exc_info:
            next_state("req-1", current, action)
        assert exc_info.value.current_state == current
        assert exc_info.value.action == action


def test_next_state_rejects_unknown_action():
    with pytest.raises(ValueError):
        next_state("req-1", "pending", "archive")


@pytest.mark.asyncio
async def test_submit_request_creates_pending_and_pushes_to_trainer(chat_service, event_store, notifier):
    request = await chat_service.submit_request(
        STUDENT_ID, TRAINER_ID, "  I need help with my serve  ", sender_name="Sara"
    )

    assert request.state == "pending"
    assert request.text == "I need help with my serve"
    assert request.sender_name == "Sara"
    assert len(event_store.of_kind(KIND_CHAT_REQUEST)) == 1
    assert notifier.pushes == [
        {
            "user_id": TRAINER_ID,
            "title": "Chat request from Sara",
            "message": "I need help with my serve",
            "kind": KIND_CHAT_REQUEST,
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   "])
async def test_submit_request_rejects_blank_text(chat_service, event_store, text):
    with pytest.raises(ValueError):
        await chat_service.submit_request(STUDENT_ID, TRAINER_ID, text)

    assert event_store.records == []


@pytest.mark.asyncio
async def test_submit_request_rejects_self_request(chat_service):
    with pytest.raises(ValueError):
        await chat_service.submit_request(TRAINER_ID, TRAINER_ID, "hello me")


@pytest.mark.asyncio
async def test_second_request_same_day_is_refused(chat_service, event_store):
    await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "first")

    with pytest.raises(QuotaExceededError) as exc_info:
        await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "second")

    assert exc_info.value.reason == "daily_limit"
    assert exc_info.value.quota.today_count == 1
    assert len(event_store.of_kind(KIND_CHAT_REQUEST)) == 1


@pytest.mark.asyncio
async def test_rejected_request_allows_resubmission(chat_service):
    first = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "first")
    await chat_service.reject(first.id, TRAINER_ID)

    second = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "second")

    assert second.id != first.id
    assert second.state == "pending"
    assert (await chat_service.quota_status(STUDENT_ID)).can_send is False


@pytest.mark.asyncio
async def test_outstanding_request_from_earlier_day_blocks(chat_service, event_store):
    first = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "first")
    await chat_service.approve(first.id, TRAINER_ID)
    event_store.tick(timedelta(days=2).total_seconds())

    with pytest.raises(QuotaExceededError) as exc_info:
        await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "again")

    assert exc_info.value.reason == "outstanding_request"
    assert exc_info.value.quota.last_state == "approved"


@pytest.mark.asyncio
async def test_ended_request_from_earlier_day_does_not_block(chat_service, event_store):
    first = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "first")
    await chat_service.approve(first.id, TRAINER_ID)
    await chat_service.open_conversation(first.id, STUDENT_ID)
    await chat_service.end_conversation(first.id, TRAINER_ID)
    event_store.tick(timedelta(days=1).total_seconds())

    second = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "again")

    assert second.state == "pending"


@pytest.mark.asyncio
async def test_approve_emits_notice_for_sender(chat_service, event_store, notifier):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")

    approved = await chat_service.approve(request.id, TRAINER_ID)

    assert approved.state == "approved"
    assert approved.id == request.id
    notices = event_store.of_kind(KIND_CHAT_APPROVED)
    assert len(notices) == 1
    assert notices[0].sender_ref == STUDENT_ID
    assert notices[0].receiver_ref == TRAINER_ID
    assert notifier.pushes[-1]["user_id"] == STUDENT_ID
    assert notifier.pushes[-1]["kind"] == KIND_CHAT_APPROVED


@pytest.mark.asyncio
async def test_reject_emits_notice_and_keeps_request_row(chat_service, event_store):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")

    rejected = await chat_service.reject(request.id, TRAINER_ID)

    assert rejected.state == "rejected"
    assert len(event_store.of_kind(KIND_CHAT_REJECTED)) == 1
    assert (await chat_service.get_request(request.id)).state == "rejected"


@pytest.mark.asyncio
async def test_only_receiver_may_approve(chat_service):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")

    with pytest.raises(ChatAccessError):
        await chat_service.approve(request.id, STUDENT_ID)
    with pytest.raises(ChatAccessError):
        await chat_service.reject(request.id, OTHER_STUDENT_ID)


@pytest.mark.asyncio
async def test_double_approve_is_a_conflict(chat_service, event_store):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    await chat_service.approve(request.id, TRAINER_ID)

    with pytest.raises(ConflictError) as exc_info:
        await chat_service.reject(request.id, TRAINER_ID)

    assert exc_info.value.current_state == "approved"
    assert len(event_store.of_kind(KIND_CHAT_REJECTED)) == 0


@pytest.mark.asyncio
async def test_lost_race_surfaces_as_conflict(chat_service, event_store):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    original_update = event_store.update

    async def racing_update(record_id, fields, expected_statuses=None):
        # Another tab rejects between our read and write
        await original_update(record_id, {"status": "rejected"})
        return await original_update(record_id, fields, expected_statuses)

    event_store.update = racing_update

    with pytest.raises(ConflictError) as exc_info:
        await chat_service.approve(request.id, TRAINER_ID)

    assert exc_info.value.current_state == "rejected"
    assert event_store.of_kind(KIND_CHAT_APPROVED) == []


@pytest.mark.asyncio
async def test_open_conversation_activates_and_is_repeatable(chat_service):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    await chat_service.approve(request.id, TRAINER_ID)

    opened = await chat_service.open_conversation(request.id, STUDENT_ID)
    reopened = await chat_service.open_conversation(request.id, TRAINER_ID)

    assert opened.state == "active"
    assert reopened.state == "active"


@pytest.mark.asyncio
async def test_open_pending_request_is_a_conflict(chat_service):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")

    with pytest.raises(ConflictError):
        await chat_service.open_conversation(request.id, STUDENT_ID)


@pytest.mark.asyncio
async def test_ended_conversation_stays_ended(chat_service):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    await chat_service.approve(request.id, TRAINER_ID)
    await chat_service.open_conversation(request.id, STUDENT_ID)
    await chat_service.end_conversation(request.id, STUDENT_ID)

    reopened = await chat_service.open_conversation(request.id, TRAINER_ID)

    assert reopened.state == "ended"
    with pytest.raises(ConflictError):
        await chat_service.end_conversation(request.id, TRAINER_ID)


@pytest.mark.asyncio
async def test_non_participant_cannot_end(chat_service):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    await chat_service.approve(request.id, TRAINER_ID)
    await chat_service.open_conversation(request.id, STUDENT_ID)

    with pytest.raises(ChatAccessError):
        await chat_service.end_conversation(request.id, OTHER_STUDENT_ID)


@pytest.mark.asyncio
async def test_notice_write_failure_does_not_undo_transition(chat_service, event_store):
    request = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
    event_store.fail_inserts_of.add(KIND_CHAT_APPROVED)

    approved = await chat_service.approve(request.id, TRAINER_ID)

    assert approved.state == "approved"
    assert (await chat_service.get_request(request.id)).state == "approved"


@pytest.mark.asyncio
async def test_unknown_request_is_not_found(chat_service):
    with pytest.raises(RequestNotFoundError):
        await chat_service.get_request("missing")


@pytest.mark.asyncio
async def test_list_requests_by_role(chat_service, event_store):
    mine = await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "mine")
    other = await chat_service.submit_request(OTHER_STUDENT_ID, TRAINER_ID, "other")
    event_store.seed(
        EventRecord(
            kind=KIND_CHAT_REQUEST,
            title="Broken",
            body="",
            sender_ref=STUDENT_ID,
            receiver_ref=TRAINER_ID,
            status="pending",
        )
    )

    student_view = await chat_service.list_requests(STUDENT_ID, "student")
    trainer_view = await chat_service.list_requests(TRAINER_ID, "trainer")
    admin_view = await chat_service.list_requests("admin-1", "admin")

    assert [request.id for request in student_view] == [mine.id]
    assert [request.id for request in trainer_view] == [other.id, mine.id]
    assert [request.id for request in admin_view] == [other.id, mine.id]


@pytest.mark.asyncio
async def test_store_outage_propagates(chat_service, event_store):
    event_store.fail_queries = True

    with pytest.raises(StoreUnavailableError):
        await chat_service.submit_request(STUDENT_ID, TRAINER_ID, "hello")
