"""
One-shot deadline timers on the running asyncio loop.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple
from tripboard.core.config import settings
from tripboard.core.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class DeadlineScheduler:
    """
    Keeps at most one pending timer per trip. Scheduling a new deadline
    replaces the old timer; clearing the deadline cancels it.
    """

    def __init__(self, buffer_seconds: Optional[float] = None, clock: Callable[[], datetime] = utcnow):
        self.buffer_seconds = settings.AUTO_LOCK_BUFFER_SECONDS if buffer_seconds is None else buffer_seconds
        self.clock = clock
        self._timers: Dict[int, Tuple[datetime, asyncio.TimerHandle]] = {}

    def schedule(self, trip_id: int, deadline: datetime, callback: Callable[[int], None]) -> bool:
        """
        Run ``callback(trip_id)`` shortly after ``deadline``.
        Returns False if the deadline already passed or no loop is running.
        """
        deadline = as_utc(deadline)
        existing = self._timers.get(trip_id)
        if existing and existing[0] == deadline:
            return True
        self.cancel(trip_id)

        delay = (deadline - self.clock()).total_seconds()
        if delay <= 0:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; deadline check for trip {trip_id} not scheduled")
            return False

        handle = loop.call_later(delay + self.buffer_seconds, self._fire, trip_id, callback)
        self._timers[trip_id] = (deadline, handle)
        logger.info(f"Deadline check for trip {trip_id} scheduled at {deadline.isoformat()}")
        return True

    def cancel(self, trip_id: int) -> bool:
        entry = self._timers.pop(trip_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        logger.debug(f"Deadline check for trip {trip_id} cancelled")
        return True

    def cancel_all(self) -> None:
        for trip_id in list(self._timers):
            self.cancel(trip_id)

    def scheduled_deadline(self, trip_id: int) -> Optional[datetime]:
        entry = self._timers.get(trip_id)
        return entry[0] if entry else None

    def _fire(self, trip_id: int, callback: Callable[[int], None]) -> None:
        self._timers.pop(trip_id, None)
        try:
            callback(trip_id)
        except Exception as e:
            logger.error(f"Deadline check for trip {trip_id} failed: {e}", exc_info=True)
