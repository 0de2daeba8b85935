"""
Daily chat-request quota.

A student gets one chat request per local calendar day. A rejection frees
the slot immediately; a pending, approved, active or ended request holds it
until the next local day. The guard is a pure function of the sender's
records and the current time; the check-then-insert around it is not atomic.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.config import settings
from app.features.chat_requests.domain.models import (
    KIND_CHAT_REQUEST,
    ChatRequest,
    EventRecord,
    QuotaStatus,
)
from app.features.chat_requests.services import codec


def local_day_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [start of local day, start of next local day) for ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    local_date = now.astimezone(tz).date()
    start = datetime.combine(local_date, time.min, tzinfo=tz)
    end = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class QuotaGuard:
    """Decides whether a sender may submit a new chat request today."""

    def __init__(self, timezone: str | None = None):
        self.tz = ZoneInfo(timezone or settings.QUOTA_TIMEZONE)

    def evaluate(self, sender_id: str, now: datetime, records: Iterable[EventRecord]) -> QuotaStatus:
        start, end = local_day_bounds(now, self.tz)

        todays: list[tuple[datetime, ChatRequest]] = []
        for record in records:
            if record.kind != KIND_CHAT_REQUEST:
                continue
            decoded = codec.decode(record)
            if not isinstance(decoded, ChatRequest) or decoded.from_user_id != sender_id:
                continue
            created_at = decoded.created_at
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=UTC)
            if start <= created_at < end:
                todays.append((created_at, decoded))

        if not todays:
            return QuotaStatus(can_send=True, today_count=0)

        _, latest = max(todays, key=lambda item: (item[0], item[1].id))
        if latest.state == "rejected":
            return QuotaStatus(can_send=True, today_count=len(todays), last_state=latest.state)

        return QuotaStatus(
            can_send=False,
            today_count=len(todays),
            last_state=latest.state,
            resets_at=end.astimezone(UTC),
        )
