"""
Wiring of the chat request services.

Routes resolve services through the getters below so tests can swap them
with ``app.dependency_overrides``.
"""

from app.features.chat_requests.repository.event_store import PostgresEventStore
from app.features.chat_requests.services.conversation_feed import ConversationFeed
from app.features.chat_requests.services.lifecycle_service import ChatRequestService
from app.features.chat_requests.services.notification_service import NotificationDeliveryService

event_store = PostgresEventStore()
notification_service = NotificationDeliveryService()
chat_request_service = ChatRequestService(event_store, notification_service)
conversation_feed = ConversationFeed(event_store, chat_request_service, notification_service)


def get_chat_request_service() -> ChatRequestService:
    return chat_request_service


def get_conversation_feed() -> ConversationFeed:
    return conversation_feed
