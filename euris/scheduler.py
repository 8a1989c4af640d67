"""
Daily reset of the operating times cache.

Operating times are fetched for "today"; once the date changes every
cached schedule is stale regardless of its TTL.
"""
import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional

from euris.cache import AsyncLoadingCache

logger = logging.getLogger("scheduler")


def parse_time_of_day(text: str) -> time:
    """Parse 'HH:MM' (24h) into a time."""
    try:
        hours, minutes = text.strip().split(":")
        return time(hour=int(hours), minute=int(minutes))
    except ValueError:
        raise ValueError(f"Expected HH:MM, got '{text}'") from None


def seconds_until(at: time, now: datetime) -> float:
    """
    Seconds from now until the next occurrence of a local wall-clock time.

    Returns a full day when now is exactly at the target time.
    """
    target = datetime.combine(now.date(), at, tzinfo=now.tzinfo)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class ScheduledInvalidator:
    """
    Clears one cache once a day at a fixed local time.

    Usage:
        invalidator = ScheduledInvalidator(schedule_cache, at=time(0, 0))
        invalidator.start()
        ...
        await invalidator.stop()
    """

    def __init__(
        self,
        cache: AsyncLoadingCache,
        at: time = time(0, 0),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._cache = cache
        self._at = at
        self._clock = clock
        self._task: Optional["asyncio.Task[None]"] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.ensure_future(self._run())
        logger.info(
            f"Daily reset of '{self._cache.name}' scheduled at {self._at.strftime('%H:%M')}"
        )

    async def _run(self) -> None:
        while True:
            delay = seconds_until(self._at, self._clock())
            logger.debug(f"Next reset of '{self._cache.name}' in {delay:.0f}s")
            await asyncio.sleep(delay)
            self.fire()

    def fire(self) -> int:
        """Clear the cache now."""
        count = self._cache.invalidate_all()
        self.runs += 1
        logger.info(f"Daily reset cleared {count} entries from '{self._cache.name}'")
        return count

    async def stop(self) -> None:
        """Cancel the timer. Safe to call when not running."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Daily reset of '{self._cache.name}' stopped")
