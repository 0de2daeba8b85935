import json

import httpx
import pytest

from app.features.chat_requests.services.notification_service import NotificationDeliveryService

WEBHOOK = "https://example.supabase.co/functions/v1/send-notification"


@pytest.mark.asyncio
async def test_push_posts_summary_to_webhook(monkeypatch):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(
        "app.features.chat_requests.services.notification_service.settings.SUPABASE_SERVICE_ROLE_KEY",
        "service-key",
    )
    service = NotificationDeliveryService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))

    ok = await service.push(user_id="trainer-1", title="Chat request", message="hi", kind="chat_request")

    assert ok is True
    assert captured["url"] == WEBHOOK
    assert captured["body"] == {
        "user_id": "trainer-1",
        "title": "Chat request",
        "message": "hi",
        "type": "chat_request",
    }
    assert captured["auth"] == "Bearer service-key"


@pytest.mark.asyncio
async def test_push_returns_false_on_rejection():
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    service = NotificationDeliveryService(webhook_url=WEBHOOK, transport=transport)

    assert await service.push(user_id="u", title="t", message="m", kind="chat_approved") is False


@pytest.mark.asyncio
async def test_push_swallows_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = NotificationDeliveryService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))

    assert await service.push(user_id="u", title="t", message="m", kind="chat_approved") is False


@pytest.mark.asyncio
async def test_push_without_webhook_only_logs():
    service = NotificationDeliveryService(webhook_url="")

    assert await service.push(user_id="u", title="t", message="m", kind="chat_rejected") is False


@pytest.mark.asyncio
async def test_dispatch_runs_in_background_and_drains():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content)["user_id"])
        return httpx.Response(202)

    service = NotificationDeliveryService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))

    service.dispatch(user_id="a", title="t", message="m", kind="chat_message_notification")
    service.dispatch(user_id="b", title="t", message="m", kind="chat_message_notification")
    await service.drain()

    assert sorted(calls) == ["a", "b"]
