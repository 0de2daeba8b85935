"""
Chat request routes.

Thin HTTP layer over ChatRequestService and ConversationFeed. Quota and
conflict failures come back as specific 429/409 responses the UI renders
inline; store outages come back as 503 with Retry-After so the client's
next poll acts as the retry.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import Caller, get_caller
from app.config import settings
from app.features.chat_requests.api.schemas import (
    ChatMessageResponse,
    ChatRequestListResponse,
    ChatRequestResponse,
    MessageFeedResponse,
    QuotaStatusResponse,
    SendMessageRequest,
    SendMessageResponse,
    SubmitChatRequestRequest,
)
from app.features.chat_requests.dependencies import (
    get_chat_request_service,
    get_conversation_feed,
)
from app.features.chat_requests.domain.errors import (
    ChatAccessError,
    ChatServiceError,
    ConflictError,
    InvalidStateError,
    QuotaExceededError,
    RequestNotFoundError,
    StoreUnavailableError,
)
from app.features.chat_requests.services.conversation_feed import ConversationFeed
from app.features.chat_requests.services.lifecycle_service import ChatRequestService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def _to_http_exception(error: Exception) -> HTTPException:
    """Map feature errors to specific HTTP responses."""
    if isinstance(error, QuotaExceededError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "quota_exceeded",
                "reason": error.reason,
                "message": str(error),
                "today_count": error.quota.today_count,
                "resets_at": error.quota.resets_at.isoformat() if error.quota.resets_at else None,
            },
        )
    if isinstance(error, ConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "conflict",
                "message": str(error),
                "action": error.action,
                "current_state": error.current_state,
            },
        )
    if isinstance(error, InvalidStateError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "invalid_state",
                "message": str(error),
                "current_state": error.current_state,
            },
        )
    if isinstance(error, RequestNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ChatAccessError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, StoreUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "store_unavailable", "message": "Temporarily unavailable, retry shortly"},
            headers={"Retry-After": str(max(1, round(settings.REQUEST_LIST_POLL_SECONDS)))},
        )
    if isinstance(error, ValueError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))

    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Chat operation failed"
    )


@router.get("/requests", response_model=ChatRequestListResponse)
async def list_chat_requests(
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    """Requests visible to the caller, newest first."""
    try:
        requests = await service.list_requests(caller.user_id, caller.role)
    except ChatServiceError as e:
        logger.error("Error listing chat requests", user_id=caller.user_id, error=str(e))
        raise _to_http_exception(e) from e

    return ChatRequestListResponse(
        requests=[ChatRequestResponse.from_domain(request) for request in requests],
        total_count=len(requests),
    )


@router.get("/quota", response_model=QuotaStatusResponse)
async def get_quota_status(
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        quota = await service.quota_status(caller.user_id)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return QuotaStatusResponse.from_domain(quota)


@router.post(
    "/requests", response_model=ChatRequestResponse, status_code=status.HTTP_201_CREATED
)
async def submit_chat_request(
    payload: SubmitChatRequestRequest,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    """Student sends a chat request to a trainer."""
    try:
        request = await service.submit_request(
            caller.user_id, payload.trainer_id, payload.text, sender_name=caller.display_name
        )
    except (ChatServiceError, ValueError) as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.get("/requests/{request_id}", response_model=ChatRequestResponse)
async def get_chat_request(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        request = await service.get_request(request_id)
        if caller.role != "admin" and not request.is_participant(caller.user_id):
            raise ChatAccessError(
                "User may not view this chat request", request_id=request_id, user_id=caller.user_id
            )
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.post("/requests/{request_id}/approve", response_model=ChatRequestResponse)
async def approve_chat_request(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        request = await service.approve(request_id, caller.user_id)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.post("/requests/{request_id}/reject", response_model=ChatRequestResponse)
async def reject_chat_request(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        request = await service.reject(request_id, caller.user_id)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.post("/requests/{request_id}/open", response_model=ChatRequestResponse)
async def open_conversation(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        request = await service.open_conversation(request_id, caller.user_id)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.post("/requests/{request_id}/end", response_model=ChatRequestResponse)
async def end_conversation(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
):
    try:
        request = await service.end_conversation(request_id, caller.user_id)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e
    return ChatRequestResponse.from_domain(request)


@router.get("/requests/{request_id}/messages", response_model=MessageFeedResponse)
async def list_conversation_messages(
    request_id: str,
    caller: Caller = Depends(get_caller),
    service: ChatRequestService = Depends(get_chat_request_service),
    feed: ConversationFeed = Depends(get_conversation_feed),
):
    try:
        request = await service.get_request(request_id)
        if caller.role != "admin" and not request.is_participant(caller.user_id):
            raise ChatAccessError(
                "User is not part of this conversation", request_id=request_id, user_id=caller.user_id
            )
        messages = await feed.list_messages(request_id, request=request)
    except ChatServiceError as e:
        raise _to_http_exception(e) from e

    return MessageFeedResponse(
        request_id=request.id,
        state=request.state,
        read_only=request.is_read_only,
        messages=[ChatMessageResponse.from_domain(message) for message in messages],
    )


@router.post(
    "/requests/{request_id}/messages",
    response_model=SendMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_conversation_message(
    request_id: str,
    payload: SendMessageRequest,
    caller: Caller = Depends(get_caller),
    feed: ConversationFeed = Depends(get_conversation_feed),
):
    try:
        result = await feed.send_message(
            request_id, caller.user_id, payload.text, sender_name=caller.display_name
        )
    except (ChatServiceError, ValueError) as e:
        raise _to_http_exception(e) from e

    return SendMessageResponse(
        message=ChatMessageResponse.from_domain(result.message),
        messages=(
            [ChatMessageResponse.from_domain(message) for message in result.feed]
            if result.feed is not None
            else None
        ),
    )
