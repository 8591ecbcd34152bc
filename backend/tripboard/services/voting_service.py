"""
Voting resolution: decides when voting for the current phase is done and
which proposal wins.

Everything here is pure. Callers pass snapshots and the current time and get
back a status plus, when the lock should fire, a ``LockIntent`` describing
the writes for the store to apply.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union
from tripboard.core.utils import as_utc
from tripboard.models.proposal import VoteType
from tripboard.models.trip import TripPhase, MemberStatus
from tripboard.schemas.proposal import ProposalSnapshot, VoteSnapshot
from tripboard.schemas.trip import TripSnapshot, MemberSnapshot

VOTE_TYPE_SCORES = {
    VoteType.IN: 100.0,
    VoteType.MAYBE: 50.0,
    VoteType.OUT: 0.0,
}

VOTING_PHASES = (TripPhase.DESTINATION, TripPhase.ITINERARY)


@dataclass(frozen=True)
class Categorical:
    vote: VoteType


@dataclass(frozen=True)
class Temperature:
    score: float


VoteValue = Union[Categorical, Temperature]


def vote_value(vote: VoteSnapshot) -> VoteValue:
    """An explicit score takes precedence over the categorical vote."""
    if vote.score is not None:
        return Temperature(float(vote.score))
    if vote.vote is not None:
        return Categorical(vote.vote)
    raise ValueError(f"Vote by user {vote.user_id} has neither a type nor a score")


def temperature_of(value: VoteValue) -> float:
    """Canonical 0-100 temperature for aggregation."""
    if isinstance(value, Temperature):
        return value.score
    return VOTE_TYPE_SCORES[value.vote]


def average_temperature(votes: Sequence[VoteSnapshot]) -> float:
    """Mean temperature; a proposal nobody voted on averages 0."""
    if not votes:
        return 0.0
    return sum(temperature_of(vote_value(v)) for v in votes) / len(votes)


@dataclass(frozen=True)
class AutoLockStatus:
    """Result of evaluating the current phase."""
    phase: TripPhase
    should_auto_lock: bool
    all_voted: bool
    deadline_passed: bool
    voted_count: int
    total_members: int
    deadline: Optional[datetime]
    winning_proposal: Optional[ProposalSnapshot]


@dataclass(frozen=True)
class LockIntent:
    """
    Writes that resolve the current phase, in the order they must be applied:
    trip update (guarded on ``expected_phase`` and the guard columns), proposal
    include, system event.
    """
    trip_id: int
    proposal_id: int
    trip_updates: dict = field(default_factory=dict)
    expected_phase: Optional[TripPhase] = None
    expect_unlocked: bool = False
    require_set: Tuple[str, ...] = ()
    system_message: str = ""


def active_members(members: Sequence[MemberSnapshot]) -> List[MemberSnapshot]:
    return [m for m in members if m.status == MemberStatus.ACTIVE]


def relevant_proposals(phase: TripPhase, proposals: Sequence[ProposalSnapshot]) -> List[ProposalSnapshot]:
    """Destination proposals in the destination phase, itinerary items otherwise."""
    if phase == TripPhase.DESTINATION:
        return [p for p in proposals if p.is_destination]
    return [p for p in proposals if not p.is_destination]


def phase_deadline(trip: TripSnapshot) -> Optional[datetime]:
    """Deadline that governs voting in the trip's current phase."""
    if trip.phase == TripPhase.DESTINATION:
        return as_utc(trip.destination_voting_deadline)
    return as_utc(trip.itinerary_voting_deadline)


def check_all_voted(proposals: Sequence[ProposalSnapshot], members: Sequence[MemberSnapshot]) -> tuple:
    """
    Whether every active member voted on at least one of the proposals.
    Returns (all_voted, voted_count). No proposals means not all voted.
    """
    if not proposals:
        return False, 0

    voter_ids = {v.user_id for p in proposals for v in p.votes}
    all_voted = all(m.user_id in voter_ids for m in active_members(members))
    return all_voted, len(voter_ids)


def check_deadline_passed(deadline: Optional[datetime], now: datetime) -> bool:
    """No deadline means voting only ends by a manual lock."""
    if deadline is None:
        return False
    return as_utc(deadline) <= as_utc(now)


def select_winner(proposals: Sequence[ProposalSnapshot]) -> Optional[ProposalSnapshot]:
    """
    Highest average temperature wins.
    Ties go to the earliest created proposal, then the lowest id.
    """
    if not proposals:
        return None

    def sort_key(p: ProposalSnapshot):
        created = as_utc(p.created_at)
        return (-average_temperature(p.votes), created is None, created or datetime.min, p.id)

    return sorted(proposals, key=sort_key)[0]


def get_auto_lock_status(
    trip: TripSnapshot,
    proposals: Sequence[ProposalSnapshot],
    members: Sequence[MemberSnapshot],
    now: datetime
) -> AutoLockStatus:
    """Evaluate the trip's current phase."""
    relevant = relevant_proposals(trip.phase, proposals)
    deadline = phase_deadline(trip)
    all_voted, voted_count = check_all_voted(relevant, members)
    deadline_passed = check_deadline_passed(deadline, now)
    winner = select_winner(relevant)

    return AutoLockStatus(
        phase=trip.phase,
        should_auto_lock=all_voted and deadline_passed and winner is not None,
        all_voted=all_voted,
        deadline_passed=deadline_passed,
        voted_count=voted_count,
        total_members=len(active_members(members)),
        deadline=deadline,
        winning_proposal=winner,
    )


def is_already_locked(trip: TripSnapshot, winner: Optional[ProposalSnapshot] = None) -> bool:
    """
    Whether the current phase has nothing left to resolve.
    Phases after itinerary have no voting, so they always count as locked.
    """
    if trip.phase == TripPhase.DESTINATION:
        return trip.locked_destination_id is not None
    if trip.phase == TripPhase.ITINERARY:
        return winner is not None and winner.included
    return True


def plan_auto_lock(
    trip: TripSnapshot,
    proposals: Sequence[ProposalSnapshot],
    members: Sequence[MemberSnapshot],
    now: datetime
) -> Optional[LockIntent]:
    """Return the lock to apply now, or None if nothing should happen."""
    if trip.phase not in VOTING_PHASES or is_already_locked(trip):
        return None

    status = get_auto_lock_status(trip, proposals, members, now)
    if not status.should_auto_lock:
        return None

    winner = status.winning_proposal
    if is_already_locked(trip, winner):
        return None

    if trip.phase == TripPhase.DESTINATION:
        return LockIntent(
            trip_id=trip.id,
            proposal_id=winner.id,
            trip_updates={"locked_destination_id": winner.id, "phase": TripPhase.ITINERARY},
            expected_phase=TripPhase.DESTINATION,
            expect_unlocked=True,
            system_message=f"Voting complete! Destination auto-locked: {winner.display_name}",
        )

    # Clearing the deadline makes the itinerary lock fire once
    return LockIntent(
        trip_id=trip.id,
        proposal_id=winner.id,
        trip_updates={"itinerary_voting_deadline": None},
        expected_phase=TripPhase.ITINERARY,
        require_set=("itinerary_voting_deadline",),
        system_message=f'Voting complete! "{winner.display_name}" added to plan.',
    )
