# search_gateway/services/request_coalescer.py

"""Merges concurrent identical requests into one upstream call."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger("search_gateway.coalescer")

T = TypeVar("T")


class RequestCoalescer(Generic[T]):
    """In-flight registry mapping a cache key to one shared task.

    The first caller for a key starts the supplier; every caller that
    arrives before it settles gets the same task back. The registry is
    confined to one event loop: ``begin_or_join`` never awaits between
    the lookup and the insert, so two callers can never both become
    the first. Removal happens in the task's done callback and
    therefore runs on success, failure and cancellation alike.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[T]] = {}

    def begin_or_join(
        self,
        key: str,
        supplier: Callable[[], Awaitable[T]],
    ) -> tuple[asyncio.Future[T], bool]:
        """Return ``(future, joined)`` for ``key``.

        ``joined`` is True when the caller piggybacks on a request that
        was already running; ``supplier`` is then not invoked.
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.debug("Joining in-flight request %s", key)
            return existing, True

        future: asyncio.Future[T] = asyncio.ensure_future(supplier())
        self._in_flight[key] = future
        future.add_done_callback(
            lambda done: self._release(key, done)
        )
        return future, False

    async def run(
        self,
        key: str,
        supplier: Callable[[], Awaitable[T]],
    ) -> tuple[T, bool]:
        """Await the shared result for ``key``; returns ``(value, joined)``.

        The shared task is shielded so one caller giving up does not
        cancel the work other callers are waiting on.
        """
        future, joined = self.begin_or_join(key, supplier)
        result = await asyncio.shield(future)
        return result, joined

    def _release(self, key: str, future: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        # Mark the outcome as retrieved even if every waiter went away
        if not future.cancelled() and future.exception() is not None:
            logger.debug(
                "In-flight request %s failed: %s", key, future.exception()
            )

    def in_flight_count(self) -> int:
        """Number of keys currently executing."""
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight
