"""
Auto-lock monitor: re-runs voting resolution whenever a trip changes and
once more right after the voting deadline.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Set
from sqlalchemy.orm import Session
from tripboard.core.exceptions import NotFoundError, TripboardError
from tripboard.core.utils import utcnow
from tripboard.schemas.trip import TripSnapshot
from tripboard.services.commands import apply_lock_intent
from tripboard.services.notifier import ChangeNotifier
from tripboard.services.scheduler import DeadlineScheduler
from tripboard.services.trip_store import TripStore
from tripboard.services.voting_service import (
    VOTING_PHASES, is_already_locked, phase_deadline, plan_auto_lock
)

logger = logging.getLogger(__name__)


class AutoLockMonitor:
    """
    Subscribes to every trip change. Evaluation runs with system authority and
    is safe to repeat: once a phase is locked, later passes do nothing.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: ChangeNotifier,
        scheduler: Optional[DeadlineScheduler] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.scheduler = scheduler or DeadlineScheduler(clock=clock)
        self.clock = clock
        self._unsubscribe = None
        self._running: Set[int] = set()
        self._dirty: Set[int] = set()

    def start(self, trip_ids: Iterable[int] = ()) -> None:
        """Subscribe to changes and evaluate the given trips once."""
        if self._unsubscribe is None:
            self._unsubscribe = self.notifier.subscribe_all(self.evaluate)
        for trip_id in trip_ids:
            self.evaluate(trip_id)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.scheduler.cancel_all()

    def evaluate(self, trip_id: int) -> bool:
        """
        Evaluate one trip. Changes published while a pass for the same trip is
        running are folded into one follow-up pass. Returns True if a lock was
        applied.
        """
        if trip_id in self._running:
            self._dirty.add(trip_id)
            return False

        self._running.add(trip_id)
        try:
            locked = self._evaluate_once(trip_id)
            while trip_id in self._dirty:
                self._dirty.discard(trip_id)
                locked = self._evaluate_once(trip_id) or locked
            return locked
        finally:
            self._running.discard(trip_id)
            self._dirty.discard(trip_id)

    def _evaluate_once(self, trip_id: int) -> bool:
        db = self.session_factory()
        try:
            store = TripStore(db, self.notifier)
            trip = store.get_trip(trip_id)
            self._sync_timer(trip)

            intent = plan_auto_lock(
                trip,
                store.get_proposals(trip_id, trip.phase),
                store.get_active_members(trip_id),
                self.clock()
            )
            if intent is None:
                return False

            applied = apply_lock_intent(store, intent)
            if applied:
                logger.info(f"Auto-locked proposal {intent.proposal_id} for trip {trip_id}")
                self._sync_timer(store.get_trip(trip_id))
            return applied
        except NotFoundError:
            self.scheduler.cancel(trip_id)
            return False
        except TripboardError as e:
            # Next change or deadline tick retries
            logger.error(f"Auto-lock failed for trip {trip_id}: {e.message}", exc_info=True)
            return False
        finally:
            db.close()

    def _sync_timer(self, trip: TripSnapshot) -> None:
        deadline = None
        if trip.phase in VOTING_PHASES and not is_already_locked(trip):
            deadline = phase_deadline(trip)

        if deadline is None:
            self.scheduler.cancel(trip.id)
        else:
            self.scheduler.schedule(trip.id, deadline, self.evaluate)
