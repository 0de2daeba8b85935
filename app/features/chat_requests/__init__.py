"""
Chat request feature package.

Student/trainer conversations built on the shared academy_notifications
table: request submission with a daily quota, the approval lifecycle, the
per-request message feed and the polling that keeps clients up to date.
Domain models, store, services and the API router are co-located here.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as chat_router  # noqa: F401
from .domain.models import ChatMessage, ChatRequest, EventRecord, QuotaStatus  # noqa: F401
from .services.conversation_feed import ConversationFeed  # noqa: F401
from .services.lifecycle_service import ChatRequestService  # noqa: F401
from .services.poll_scheduler import ChatPoller, PollScheduler  # noqa: F401
