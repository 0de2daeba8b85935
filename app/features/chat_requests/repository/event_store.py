"""
Event record store backing the chat request feature.

``academy_notifications`` is shared with attendance, maintenance and other
notification features, so every query here filters by ``type`` and nothing
assumes it owns the table. The store offers exactly three operation shapes:
insert, update (optionally guarded by the current status) and query with
simple equality filters.
"""

from collections.abc import Iterable
from typing import Any, Protocol

from app.db.helpers import DatabaseError, fetch_all, fetch_one
from app.features.chat_requests.domain.errors import StoreUnavailableError
from app.features.chat_requests.domain.models import EventRecord
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EventStore(Protocol):
    async def insert(self, record: EventRecord) -> EventRecord: ...

    async def update(
        self,
        record_id: str,
        fields: dict[str, Any],
        expected_statuses: Iterable[str] | None = None,
    ) -> EventRecord | None: ...

    async def query(
        self,
        *,
        kinds: Iterable[str],
        record_id: str | None = None,
        participant: str | None = None,
        sender: str | None = None,
        receiver: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[EventRecord]: ...


class PostgresEventStore:
    """EventStore over Supabase Postgres using the shared connection pool."""

    TABLE = "academy_notifications"

    SELECT_COLUMNS = """
        id::text AS id, type, title, message,
        user_id::text AS user_id, phone_number, status, created_at
    """

    # EventRecord field -> column; only these may be written by update()
    UPDATABLE_COLUMNS = {
        "status": "status",
        "title": "title",
        "body": "message",
    }

    @staticmethod
    def _row_to_record(row: dict | None) -> EventRecord | None:
        if not row:
            return None

        return EventRecord(
            id=str(row["id"]),
            kind=row["type"],
            title=row.get("title") or "",
            body=row.get("message") or "",
            sender_ref=row.get("user_id"),
            receiver_ref=row.get("phone_number"),
            status=row.get("status"),
            created_at=row.get("created_at"),
        )

    async def insert(self, record: EventRecord) -> EventRecord:
        query = f"""
            INSERT INTO {self.TABLE} (type, title, message, user_id, phone_number, status)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {self.SELECT_COLUMNS}
        """
        params = (
            record.kind,
            record.title,
            record.body,
            record.sender_ref,
            record.receiver_ref,
            record.status,
        )

        try:
            row = await fetch_one(query, params)
        except DatabaseError as e:
            logger.error("Event insert failed", kind=record.kind, error=str(e))
            raise StoreUnavailableError(f"Event insert failed: {e}", operation="insert") from e

        stored = self._row_to_record(row)
        if stored is None:
            raise StoreUnavailableError("Event insert returned no row", operation="insert")

        logger.debug("Event record inserted", record_id=stored.id, kind=stored.kind)
        return stored

    async def update(
        self,
        record_id: str,
        fields: dict[str, Any],
        expected_statuses: Iterable[str] | None = None,
    ) -> EventRecord | None:
        """
        Update a record in place.

        Args:
            record_id: Record to update
            fields: EventRecord field names to new values (status, title, body)
            expected_statuses: When given, the row is only updated if its
                current status is one of these

        Returns:
            The updated record, or None when no row matched (missing id or
            status guard failed)
        """
        unknown = set(fields) - set(self.UPDATABLE_COLUMNS)
        if not fields or unknown:
            raise ValueError(f"Unsupported update fields: {sorted(unknown) or 'none given'}")

        assignments = ", ".join(f"{self.UPDATABLE_COLUMNS[name]} = %s" for name in fields)
        params: list[Any] = list(fields.values())

        query = f"UPDATE {self.TABLE} SET {assignments} WHERE id::text = %s"
        params.append(record_id)

        if expected_statuses is not None:
            query += " AND status = ANY(%s)"
            params.append(list(expected_statuses))

        query += f" RETURNING {self.SELECT_COLUMNS}"

        try:
            row = await fetch_one(query, tuple(params))
        except DatabaseError as e:
            logger.error("Event update failed", record_id=record_id, error=str(e))
            raise StoreUnavailableError(f"Event update failed: {e}", operation="update") from e

        return self._row_to_record(row)

    async def query(
        self,
        *,
        kinds: Iterable[str],
        record_id: str | None = None,
        participant: str | None = None,
        sender: str | None = None,
        receiver: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[EventRecord]:
        kinds = list(kinds)
        if not kinds:
            raise ValueError("At least one record kind is required")

        conditions = ["type = ANY(%s)"]
        params: list[Any] = [kinds]

        if record_id is not None:
            conditions.append("id::text = %s")
            params.append(record_id)
        if participant is not None:
            conditions.append("(user_id::text = %s OR phone_number = %s)")
            params.extend([participant, participant])
        if sender is not None:
            conditions.append("user_id::text = %s")
            params.append(sender)
        if receiver is not None:
            conditions.append("phone_number = %s")
            params.append(receiver)

        direction = "DESC" if newest_first else "ASC"
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM {self.TABLE}
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at {direction}, id {direction}
        """
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)

        try:
            rows = await fetch_all(query, tuple(params))
        except DatabaseError as e:
            logger.error("Event query failed", kinds=kinds, error=str(e))
            raise StoreUnavailableError(f"Event query failed: {e}", operation="query") from e

        return [self._row_to_record(row) for row in rows]
