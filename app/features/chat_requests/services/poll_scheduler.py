"""
Interval polling in place of a push channel.

Each open scope (a request list view, an open conversation) owns one asyncio
task that fetches, hands the result to the scope's callback, then sleeps for
its interval plus a little jitter. Fetches inside a scope never overlap: a
manual trigger while a fetch is in flight is dropped. Closing a scope cancels
its task and any result that resolves afterwards is discarded.
"""

import asyncio
import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from app.config import settings
from app.features.chat_requests.domain.models import ChatMessage, ChatRequest
from app.features.chat_requests.services.conversation_feed import ConversationFeed
from app.features.chat_requests.services.lifecycle_service import ChatRequestService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

FetchFn = Callable[[], Awaitable[Any]]
UpdateFn = Callable[[Any], Awaitable[None] | None]
ErrorFn = Callable[[Exception], Awaitable[None] | None]


@dataclass(slots=True)
class _PollScope:
    key: str
    fetch: FetchFn
    on_update: UpdateFn
    on_error: ErrorFn | None
    interval: float
    wake: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    in_flight: bool = False
    closed: bool = False
    polls: int = 0


async def _invoke(callback: Callable[[Any], Any], value: Any) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class PollScheduler:
    """Runs one sequential polling loop per open scope."""

    def __init__(self, jitter: float | None = None, rng: random.Random | None = None):
        self.jitter = settings.POLL_JITTER_SECONDS if jitter is None else jitter
        self._rng = rng or random.Random()
        self._scopes: dict[str, _PollScope] = {}

    @property
    def open_scopes(self) -> list[str]:
        return sorted(self._scopes)

    def is_open(self, key: str) -> bool:
        return key in self._scopes

    async def open_scope(
        self,
        key: str,
        fetch: FetchFn,
        on_update: UpdateFn,
        *,
        interval: float,
        on_error: ErrorFn | None = None,
        immediate: bool = True,
    ) -> None:
        """
        Start polling ``fetch`` every ``interval`` seconds under ``key``.

        Re-opening an open key closes the previous loop first.
        """
        if interval <= 0:
            raise ValueError("Poll interval must be positive")

        if key in self._scopes:
            await self.close_scope(key)

        scope = _PollScope(
            key=key, fetch=fetch, on_update=on_update, on_error=on_error, interval=interval
        )
        self._scopes[key] = scope
        scope.task = asyncio.create_task(self._run(scope, immediate), name=f"poll:{key}")
        logger.debug("Poll scope opened", scope=key, interval=interval)

    async def close_scope(self, key: str) -> bool:
        scope = self._scopes.pop(key, None)
        if scope is None:
            return False

        scope.closed = True
        scope.wake.set()
        if scope.task is asyncio.current_task():
            # Closed from inside its own callback; _run returns after this poll
            pass
        elif scope.task is not None:
            scope.task.cancel()
            try:
                await scope.task
            except asyncio.CancelledError:
                pass

        logger.debug("Poll scope closed", scope=key, polls=scope.polls)
        return True

    async def close_all(self) -> None:
        for key in list(self._scopes):
            await self.close_scope(key)

    def trigger(self, key: str) -> bool:
        """
        Poll ``key`` now instead of waiting for the next tick.

        Returns:
            bool: False when the scope is unknown or a fetch is already in flight
        """
        scope = self._scopes.get(key)
        if scope is None or scope.in_flight:
            return False
        scope.wake.set()
        return True

    def _is_current(self, scope: _PollScope) -> bool:
        return not scope.closed and self._scopes.get(scope.key) is scope

    async def _run(self, scope: _PollScope, immediate: bool) -> None:
        if not immediate:
            await self._sleep(scope)
        while self._is_current(scope):
            await self._poll_once(scope)
            if not self._is_current(scope):
                break
            await self._sleep(scope)

    async def _sleep(self, scope: _PollScope) -> None:
        delay = scope.interval + (self._rng.uniform(0, self.jitter) if self.jitter > 0 else 0.0)
        try:
            await asyncio.wait_for(scope.wake.wait(), timeout=delay)
        except TimeoutError:
            pass
        scope.wake.clear()

    async def _poll_once(self, scope: _PollScope) -> None:
        scope.in_flight = True
        try:
            result = await scope.fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Poll fetch failed",
                scope=scope.key,
                error=str(e),
                error_type=type(e).__name__,
            )
            if scope.on_error is not None and self._is_current(scope):
                await self._deliver(scope, scope.on_error, e)
            return
        finally:
            scope.in_flight = False
            scope.polls += 1

        if not self._is_current(scope):
            logger.debug("Discarding poll result for closed scope", scope=scope.key)
            return

        await self._deliver(scope, scope.on_update, result)

    async def _deliver(self, scope: _PollScope, callback: Callable[[Any], Any], value: Any) -> None:
        try:
            await _invoke(callback, value)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Poll callback failed",
                scope=scope.key,
                error=str(e),
                error_type=type(e).__name__,
            )


class ChatPoller:
    """Keeps request lists and open conversations fresh for one client."""

    def __init__(
        self,
        requests: ChatRequestService,
        feed: ConversationFeed,
        scheduler: PollScheduler | None = None,
    ):
        self.requests = requests
        self.feed = feed
        self.scheduler = scheduler or PollScheduler()

    @staticmethod
    def requests_scope(user_id: str) -> str:
        return f"requests:{user_id}"

    @staticmethod
    def conversation_scope(request_id: str) -> str:
        return f"conversation:{request_id}"

    async def watch_requests(
        self,
        user_id: str,
        role: str,
        on_update: Callable[[list[ChatRequest]], Any],
        on_error: ErrorFn | None = None,
    ) -> str:
        key = self.requests_scope(user_id)

        async def fetch() -> list[ChatRequest]:
            return await self.requests.list_requests(user_id, role)

        await self.scheduler.open_scope(
            key,
            fetch,
            on_update,
            interval=settings.REQUEST_LIST_POLL_SECONDS,
            on_error=on_error,
        )
        return key

    async def watch_conversation(
        self,
        request_id: str,
        on_update: Callable[[list[ChatMessage]], Any],
        on_error: ErrorFn | None = None,
    ) -> str:
        key = self.conversation_scope(request_id)

        async def fetch() -> list[ChatMessage]:
            return await self.feed.list_messages(request_id)

        await self.scheduler.open_scope(
            key,
            fetch,
            on_update,
            interval=settings.CONVERSATION_POLL_SECONDS,
            on_error=on_error,
        )
        return key

    async def unwatch(self, key: str) -> bool:
        return await self.scheduler.close_scope(key)

    def refresh(self, key: str) -> bool:
        return self.scheduler.trigger(key)

    async def shutdown(self) -> None:
        await self.scheduler.close_all()
