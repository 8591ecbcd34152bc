"""
Command layer: runs a planner against fresh snapshots and applies the
resulting intent through the store.

Commands never raise domain errors to their caller. They return ``Applied``
with the intent that was written, or ``Rejected`` with the reason and the
HTTP-style status code the API layer should answer with.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Union
from tripboard.core.exceptions import TripboardError, PhaseTransitionError
from tripboard.services.phase_service import PhaseTransition
from tripboard.services.trip_store import TripStore
from tripboard.services.voting_service import LockIntent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Applied:
    intent: Any


@dataclass(frozen=True)
class Rejected:
    reason: str
    code: int = 400


CommandResult = Union[Applied, Rejected]


def run_command(plan: Callable[[], Any], apply: Callable[[Any], None]) -> CommandResult:
    """Plan, then apply; domain errors from either step become ``Rejected``."""
    try:
        intent = plan()
        apply(intent)
    except TripboardError as e:
        logger.warning(f"Command rejected: {e.message}")
        return Rejected(reason=e.message, code=e.status_code)
    return Applied(intent)


def apply_transition(store: TripStore, transition: PhaseTransition, actor_id: int) -> None:
    """
    Write a phase transition: guarded trip update first, then the include
    flag, the system message and finally member notifications.
    """
    applied = store.update_trip(
        transition.trip_id,
        transition.trip_updates,
        expected_phase=transition.from_phase
    )
    if not applied:
        raise PhaseTransitionError("Trip phase changed while the request was in flight")

    if transition.include_proposal_id is not None:
        store.update_proposal(transition.include_proposal_id, {"included": True})

    store.emit_system_event(transition.trip_id, transition.system_message)
    logger.info(
        f"Trip {transition.trip_id} moved {transition.from_phase.value} -> {transition.to_phase.value} "
        f"by user {actor_id}"
    )

    if transition.notice is not None:
        # The phase change stands even if notifications cannot be delivered
        try:
            store.notify_members(
                transition.trip_id,
                actor_id,
                transition.notice.type,
                transition.notice.title,
                transition.notice.body
            )
        except TripboardError as e:
            logger.error(f"Error sending notifications for trip {transition.trip_id}: {e.message}")


def apply_lock_intent(store: TripStore, intent: LockIntent) -> bool:
    """
    Apply an automatic lock. Returns False if another pass already applied it;
    in that case nothing else is written.
    """
    if intent.trip_updates:
        applied = store.update_trip(
            intent.trip_id,
            intent.trip_updates,
            expected_phase=intent.expected_phase,
            expect_unlocked=intent.expect_unlocked,
            require_set=intent.require_set
        )
        if not applied:
            logger.warning(f"Auto-lock for trip {intent.trip_id} lost a race; already locked")
            return False

    store.update_proposal(intent.proposal_id, {"included": True})
    store.emit_system_event(intent.trip_id, intent.system_message)
    return True
