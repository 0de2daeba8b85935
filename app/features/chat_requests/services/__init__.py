"""
Service layer for the chat request feature.
"""

from .conversation_feed import ConversationFeed
from .lifecycle_service import ChatRequestService, next_state
from .notification_service import NotificationDeliveryService
from .poll_scheduler import ChatPoller, PollScheduler
from .quota_guard import QuotaGuard

__all__ = [
    "ChatPoller",
    "ChatRequestService",
    "ConversationFeed",
    "NotificationDeliveryService",
    "PollScheduler",
    "QuotaGuard",
    "next_state",
]
