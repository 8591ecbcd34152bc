"""
Trip phase state machine.

Planning moves strictly forward through PHASE_ORDER. Owners may reopen the
immediately preceding phase. The planners below validate a requested change
against a trip snapshot and return a ``PhaseTransition`` intent; applying it
is the job of ``tripboard.services.commands``.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence
from tripboard.core.exceptions import DataIntegrityError, PermissionDeniedError, PhaseTransitionError
from tripboard.models.trip import TripPhase, TripStatus, MemberRole, MemberStatus
from tripboard.schemas.proposal import ProposalSnapshot
from tripboard.schemas.trip import TripSnapshot, MemberSnapshot

PHASE_ORDER = (
    TripPhase.DESTINATION,
    TripPhase.ITINERARY,
    TripPhase.TRANSPORTATION,
    TripPhase.FINALIZE,
    TripPhase.READY,
)

PHASE_LABELS = {
    TripPhase.DESTINATION: "Choose Destination",
    TripPhase.ITINERARY: "Build Itinerary",
    TripPhase.TRANSPORTATION: "Plan Transportation",
    TripPhase.FINALIZE: "Finalize",
    TripPhase.READY: "Ready",
}


@dataclass(frozen=True)
class MemberNotice:
    """Notification to fan out to every trip member."""
    type: str
    title: str
    body: str


@dataclass(frozen=True)
class PhaseTransition:
    """
    Writes for one phase change. ``trip_updates`` is applied first, guarded on
    the trip still being in ``from_phase``; then ``include_proposal_id``; then
    the system message and the optional member notice.
    """
    trip_id: int
    from_phase: TripPhase
    to_phase: TripPhase
    trip_updates: dict = field(default_factory=dict)
    include_proposal_id: Optional[int] = None
    system_message: str = ""
    notice: Optional[MemberNotice] = None


def phase_index(phase: TripPhase) -> int:
    return PHASE_ORDER.index(phase)


def next_phase(phase: TripPhase) -> Optional[TripPhase]:
    """Following phase, or None at the end of the lifecycle."""
    index = phase_index(phase)
    if index + 1 < len(PHASE_ORDER):
        return PHASE_ORDER[index + 1]
    return None


def previous_phase(phase: TripPhase) -> Optional[TripPhase]:
    """Preceding phase, or None for the initial phase."""
    index = phase_index(phase)
    if index > 0:
        return PHASE_ORDER[index - 1]
    return None


def require_owner(actor: Optional[MemberSnapshot]) -> None:
    """Manual transitions are reserved for the trip owner."""
    if actor is None or actor.status != MemberStatus.ACTIVE or actor.role != MemberRole.OWNER:
        raise PermissionDeniedError("Only the trip owner can change the trip phase")


def plan_lock_destination(
    trip: TripSnapshot,
    proposal: ProposalSnapshot,
    actor: Optional[MemberSnapshot]
) -> PhaseTransition:
    """Owner picks the destination and moves the trip to itinerary planning."""
    require_owner(actor)
    if trip.phase != TripPhase.DESTINATION:
        raise PhaseTransitionError(f"Destination can only be locked during {TripPhase.DESTINATION.value}")
    if not proposal.is_destination:
        raise DataIntegrityError(f"Proposal {proposal.id} is not a destination proposal")

    return PhaseTransition(
        trip_id=trip.id,
        from_phase=TripPhase.DESTINATION,
        to_phase=TripPhase.ITINERARY,
        trip_updates={"locked_destination_id": proposal.id, "phase": TripPhase.ITINERARY},
        include_proposal_id=proposal.id,
        system_message=f"Destination locked: {proposal.display_name}! Now let's build the itinerary.",
    )


def plan_advance(
    trip: TripSnapshot,
    target: TripPhase,
    actor: Optional[MemberSnapshot],
    included_itinerary_count: int = 0
) -> PhaseTransition:
    """
    Move one step forward. Leaving destination needs a lock and leaving
    finalize needs final dates, so both go through their own planners.
    """
    require_owner(actor)

    expected = next_phase(trip.phase)
    if target != expected:
        raise PhaseTransitionError(
            f"Cannot move from {trip.phase.value} to {target.value}"
        )
    if trip.phase == TripPhase.DESTINATION:
        raise PhaseTransitionError("Lock a destination to start itinerary planning")
    if target == TripPhase.READY:
        raise PhaseTransitionError("Use mark ready to finish the trip")
    if trip.phase == TripPhase.ITINERARY and included_itinerary_count < 1:
        raise PhaseTransitionError("Include at least one item in the itinerary first")

    return PhaseTransition(
        trip_id=trip.id,
        from_phase=trip.phase,
        to_phase=target,
        trip_updates={"phase": target},
        system_message=f"Trip moved to: {PHASE_LABELS[target]}",
    )


def plan_mark_ready(
    trip: TripSnapshot,
    actor: Optional[MemberSnapshot],
    destination_name: Optional[str] = None,
    date_start: Optional[date] = None,
    date_end: Optional[date] = None
) -> PhaseTransition:
    """Finish planning: store final dates and tell every member."""
    require_owner(actor)
    if trip.phase != TripPhase.FINALIZE:
        raise PhaseTransitionError(
            f"Cannot move from {trip.phase.value} to {TripPhase.READY.value}"
        )
    if date_start and date_end and date_end < date_start:
        raise PhaseTransitionError("Trip end date is before its start date")

    return PhaseTransition(
        trip_id=trip.id,
        from_phase=TripPhase.FINALIZE,
        to_phase=TripPhase.READY,
        trip_updates={
            "phase": TripPhase.READY,
            "status": TripStatus.DECIDED,
            "date_start": date_start,
            "date_end": date_end,
        },
        system_message=f"Trip is ready! {destination_name or 'Destination'} is all planned!",
        notice=MemberNotice(
            type="plan_locked",
            title="Trip is ready!",
            body=f"The trip to {destination_name or 'your destination'} is fully planned!",
        ),
    )


def plan_reopen(
    trip: TripSnapshot,
    target: TripPhase,
    actor: Optional[MemberSnapshot],
    confirmed: bool
) -> PhaseTransition:
    """
    Step back to the immediately preceding phase. Reopening destination clears
    the locked destination; itinerary items created since are kept.
    """
    require_owner(actor)
    if not confirmed:
        raise PhaseTransitionError("Reopening a phase must be confirmed")

    expected = previous_phase(trip.phase)
    if expected is None or target != expected:
        raise PhaseTransitionError(
            f"Cannot reopen {target.value} from {trip.phase.value}"
        )

    # Voting in the reopened phase resumes once the owner sets a new deadline
    updates = {"phase": target}
    if target == TripPhase.DESTINATION:
        updates["locked_destination_id"] = None
        updates["destination_voting_deadline"] = None
    elif target == TripPhase.ITINERARY:
        updates["itinerary_voting_deadline"] = None
    if trip.phase == TripPhase.READY:
        updates["status"] = TripStatus.PLANNING

    return PhaseTransition(
        trip_id=trip.id,
        from_phase=trip.phase,
        to_phase=target,
        trip_updates=updates,
        system_message=f"Trip reopened for: {PHASE_LABELS[target]}",
    )


def count_included_itinerary(proposals: Sequence[ProposalSnapshot]) -> int:
    return sum(1 for p in proposals if p.included and not p.is_destination)
