"""
Trip management routes: membership, deadlines and phase transitions.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from tripboard.db.session import get_db
from tripboard.core.utils import as_utc, utcnow
from tripboard.models.user import User
from tripboard.models.trip import Trip, TripMember, TripPhase, MemberRole, MemberStatus
from tripboard.models.message import Message
from tripboard.schemas.trip import (
    TripCreate, TripResponse, TripDetailResponse, MemberResponse, MemberAdd,
    DeadlineUpdate, LockDestinationRequest, PhaseAdvanceRequest, PhaseReopenRequest,
    MarkReadyRequest, VotingStatusResponse, MessageResponse
)
from tripboard.api.dependencies import get_current_user, get_store
from tripboard.services.commands import Rejected, apply_transition, run_command
from tripboard.services.phase_service import (
    count_included_itinerary, plan_advance, plan_lock_destination, plan_mark_ready, plan_reopen
)
from tripboard.services.trip_store import TripStore
from tripboard.services.voting_service import VOTING_PHASES, get_auto_lock_status, is_already_locked

router = APIRouter(prefix="/trips", tags=["trips"])

DEADLINE_FIELDS = {
    TripPhase.DESTINATION: "destination_voting_deadline",
    TripPhase.ITINERARY: "itinerary_voting_deadline",
}


def check_trip_access(trip_id: int, user_id: int, db: Session) -> Trip:
    """Check if user is an active member of the trip."""
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Trip not found"
        )

    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
        TripMember.status == MemberStatus.ACTIVE
    ).first()

    if not member:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this trip"
        )

    return trip


def require_role(trip_id: int, user_id: int, db: Session, roles=(MemberRole.OWNER, MemberRole.ADMIN)) -> TripMember:
    """Check the current user holds one of the given roles."""
    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
        TripMember.status == MemberStatus.ACTIVE
    ).first()
    if not member or member.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only trip owners can do this"
        )
    return member


def raise_if_rejected(result):
    """Turn a rejected command into an HTTP error."""
    if isinstance(result, Rejected):
        raise HTTPException(status_code=result.code, detail=result.reason)
    return result


def member_responses(trip_id: int, db: Session) -> List[MemberResponse]:
    members = db.query(TripMember).filter(TripMember.trip_id == trip_id).all()
    return [
        MemberResponse(
            user_id=m.user_id,
            username=m.user.username,
            role=m.role,
            status=m.status
        )
        for m in members
    ]


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new trip; the creator becomes its owner."""
    new_trip = Trip(
        name=trip_data.name,
        created_by=current_user.id,
        date_start=trip_data.date_start,
        date_end=trip_data.date_end
    )
    db.add(new_trip)
    db.flush()

    # Add creator as owner
    member = TripMember(
        trip_id=new_trip.id,
        user_id=current_user.id,
        role=MemberRole.OWNER
    )
    db.add(member)
    db.commit()
    db.refresh(new_trip)

    return new_trip


@router.get("", response_model=List[TripResponse])
async def list_trips(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all trips the current user is an active member of."""
    trips = db.query(Trip).join(TripMember).filter(
        TripMember.user_id == current_user.id,
        TripMember.status == MemberStatus.ACTIVE
    ).order_by(Trip.created_at.desc()).all()
    return trips


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get trip details."""
    trip = check_trip_access(trip_id, current_user.id, db)
    trip_detail = TripDetailResponse(
        **TripResponse.model_validate(trip).model_dump(),
        members=member_responses(trip_id, db)
    )
    return trip_detail


@router.get("/{trip_id}/members", response_model=List[MemberResponse])
async def get_members(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get member list, including removed members."""
    check_trip_access(trip_id, current_user.id, db)
    return member_responses(trip_id, db)


@router.post("/{trip_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    trip_id: int,
    invite: MemberAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Add a member to the trip, or reactivate a removed one."""
    check_trip_access(trip_id, current_user.id, db)
    require_role(trip_id, current_user.id, db)

    if invite.role == MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A trip has exactly one owner"
        )

    # Find user by username
    user = db.query(User).filter(User.username == invite.username).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user.id
    ).first()

    if member and member.status == MemberStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member"
        )

    if member:
        member.status = MemberStatus.ACTIVE
        member.role = invite.role
    else:
        member = TripMember(trip_id=trip_id, user_id=user.id, role=invite.role)
        db.add(member)
    db.commit()

    # New members change the voting quorum
    store.publish(trip_id)

    return MemberResponse(user_id=user.id, username=user.username, role=member.role, status=member.status)


@router.delete("/{trip_id}/members/{user_id}")
async def remove_member(
    trip_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Remove a member (or leave the trip). The membership row is kept."""
    check_trip_access(trip_id, current_user.id, db)
    if user_id != current_user.id:
        require_role(trip_id, current_user.id, db)

    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id,
        TripMember.status == MemberStatus.ACTIVE
    ).first()

    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found"
        )
    if member.role == MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The trip owner cannot be removed"
        )

    member.status = MemberStatus.REMOVED
    db.commit()
    store.publish(trip_id)

    return {"message": "Member removed successfully"}


@router.put("/{trip_id}/deadline", response_model=TripResponse)
async def set_voting_deadline(
    trip_id: int,
    deadline_data: DeadlineUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Set the voting deadline for the current phase."""
    trip = check_trip_access(trip_id, current_user.id, db)
    require_role(trip_id, current_user.id, db, roles=(MemberRole.OWNER,))

    field = DEADLINE_FIELDS.get(trip.phase)
    if field is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No voting during {trip.phase.value}"
        )

    store.update_trip(trip_id, {field: as_utc(deadline_data.deadline)})
    db.refresh(trip)
    return trip


@router.delete("/{trip_id}/deadline", response_model=TripResponse)
async def clear_voting_deadline(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Clear the voting deadline for the current phase."""
    trip = check_trip_access(trip_id, current_user.id, db)
    require_role(trip_id, current_user.id, db, roles=(MemberRole.OWNER,))

    field = DEADLINE_FIELDS.get(trip.phase)
    if field is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No voting during {trip.phase.value}"
        )

    store.update_trip(trip_id, {field: None})
    db.refresh(trip)
    return trip


@router.get("/{trip_id}/voting-status", response_model=VotingStatusResponse)
async def get_voting_status(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Voting progress for the current phase."""
    check_trip_access(trip_id, current_user.id, db)

    trip = store.get_trip(trip_id)
    result = get_auto_lock_status(
        trip,
        store.get_proposals(trip_id, trip.phase),
        store.get_active_members(trip_id),
        utcnow()
    )
    winner = result.winning_proposal
    already_locked = trip.phase not in VOTING_PHASES or is_already_locked(trip, winner)

    return VotingStatusResponse(
        phase=trip.phase,
        should_auto_lock=result.should_auto_lock and not already_locked,
        all_voted=result.all_voted,
        deadline_passed=result.deadline_passed,
        voted_count=result.voted_count,
        total_members=result.total_members,
        deadline=result.deadline,
        winning_proposal_id=winner.id if winner else None,
        already_locked=already_locked
    )


@router.post("/{trip_id}/lock-destination", response_model=TripResponse)
async def lock_destination(
    trip_id: int,
    lock_data: LockDestinationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Owner locks a destination and moves the trip to itinerary planning."""
    trip = check_trip_access(trip_id, current_user.id, db)

    result = run_command(
        lambda: plan_lock_destination(
            store.get_trip(trip_id),
            store.get_proposal(trip_id, lock_data.proposal_id),
            store.get_member(trip_id, current_user.id)
        ),
        lambda transition: apply_transition(store, transition, current_user.id)
    )
    raise_if_rejected(result)

    db.refresh(trip)
    return trip


@router.post("/{trip_id}/advance", response_model=TripResponse)
async def advance_phase(
    trip_id: int,
    advance_data: PhaseAdvanceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Move the trip to the next phase."""
    trip = check_trip_access(trip_id, current_user.id, db)

    result = run_command(
        lambda: plan_advance(
            store.get_trip(trip_id),
            advance_data.target_phase,
            store.get_member(trip_id, current_user.id),
            count_included_itinerary(store.get_proposals(trip_id, TripPhase.ITINERARY))
        ),
        lambda transition: apply_transition(store, transition, current_user.id)
    )
    raise_if_rejected(result)

    db.refresh(trip)
    return trip


@router.post("/{trip_id}/reopen", response_model=TripResponse)
async def reopen_phase(
    trip_id: int,
    reopen_data: PhaseReopenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Reopen the previous phase. Itinerary items are kept."""
    trip = check_trip_access(trip_id, current_user.id, db)

    result = run_command(
        lambda: plan_reopen(
            store.get_trip(trip_id),
            reopen_data.target_phase,
            store.get_member(trip_id, current_user.id),
            reopen_data.confirm
        ),
        lambda transition: apply_transition(store, transition, current_user.id)
    )
    raise_if_rejected(result)

    db.refresh(trip)
    return trip


@router.post("/{trip_id}/ready", response_model=TripResponse)
async def mark_trip_ready(
    trip_id: int,
    ready_data: MarkReadyRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Mark the trip ready with its final dates and notify members."""
    trip = check_trip_access(trip_id, current_user.id, db)

    def plan():
        snapshot = store.get_trip(trip_id)
        destination_name = None
        if snapshot.locked_destination_id is not None:
            destination_name = store.get_proposal(trip_id, snapshot.locked_destination_id).display_name
        return plan_mark_ready(
            snapshot,
            store.get_member(trip_id, current_user.id),
            destination_name=destination_name,
            date_start=ready_data.date_start or trip.date_start,
            date_end=ready_data.date_end or trip.date_end
        )

    result = run_command(plan, lambda transition: apply_transition(store, transition, current_user.id))
    raise_if_rejected(result)

    db.refresh(trip)
    return trip


@router.get("/{trip_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the trip's message and event stream, oldest first."""
    check_trip_access(trip_id, current_user.id, db)
    messages = db.query(Message).filter(
        Message.trip_id == trip_id
    ).order_by(Message.created_at.asc(), Message.id.asc()).all()
    return messages
