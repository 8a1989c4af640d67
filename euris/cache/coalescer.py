"""
Request coalescing to prevent duplicate upstream calls.

When multiple concurrent requests ask for the same key, only one
upstream call is made and all requesters share the result.
"""
import asyncio
import time
import logging
from typing import Dict, Callable, Any, Awaitable, Hashable
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    task: "asyncio.Task[Any]"
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 1


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key starts the fetch as a task
    - Subsequent requests for the same key await that task
    - When the fetch completes, all waiters receive the same result or error
    - Waiters await a shielded view of the task, so a cancelled waiter
      never cancels the fetch for the others

    All bookkeeping happens on the event loop thread, so no lock is needed.

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            key="lock:BEGNE00001",
            fetch_fn=lambda: client.details("lock", "BEGNE00001"),
        )
    """

    def __init__(self):
        self._in_flight: Dict[Hashable, InFlightRequest] = {}

    def start(
        self,
        key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> "asyncio.Task[Any]":
        """
        Join an existing in-flight request for key or initiate a new one.

        Returns:
            The task performing the fetch
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None and in_flight.task.done():
            # Settled, its done callback has not run yet
            del self._in_flight[key]
            in_flight = None
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            return in_flight.task

        task = asyncio.ensure_future(fetch_fn())
        in_flight = InFlightRequest(task=task)
        self._in_flight[key] = in_flight
        task.add_done_callback(lambda t: self._on_done(key, in_flight))
        logger.debug(f"Initiating fetch for {key}")
        return task

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            key: Unique key for this request
            fetch_fn: Coroutine function to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            Exception: Any error from fetch_fn is propagated to every waiter
        """
        task = self.start(key, fetch_fn)
        return await asyncio.shield(task)

    def _on_done(self, key: Hashable, in_flight: InFlightRequest) -> None:
        # Only clean up our own record; forget() may have replaced it
        if self._in_flight.get(key) is in_flight:
            del self._in_flight[key]
        task = in_flight.task
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so an error with no remaining waiters is not
            # reported as "never retrieved"; waiters still re-raise it.
            logger.debug(f"Fetch failed for {key}: {task.exception()}")

    def forget(self, key: Hashable) -> bool:
        """
        Detach the in-flight request for key without cancelling it.

        The next request for key starts a new fetch.
        """
        return self._in_flight.pop(key, None) is not None

    def forget_all(self) -> int:
        count = len(self._in_flight)
        self._in_flight.clear()
        return count

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        now = time.time()
        return {
            "active_requests": len(self._in_flight),
            "active_keys": [str(k) for k in self._in_flight.keys()],
            "waiters": {str(k): r.waiter_count for k, r in self._in_flight.items()},
            "oldest_request_age_seconds": round(max(
                (now - r.started_at for r in self._in_flight.values()), default=0.0
            ), 1),
        }
