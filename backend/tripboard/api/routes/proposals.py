"""
Proposal and voting routes.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
from tripboard.db.session import get_db
from tripboard.models.user import User
from tripboard.models.trip import TripPhase
from tripboard.models.proposal import Proposal, Vote
from tripboard.schemas.proposal import (
    ProposalCreate, ProposalResponse, ProposalSnapshot, VoteCast, VoteResponse,
    IncludeUpdate, BookingClaim
)
from tripboard.schemas.expense import ExpenseResponse
from tripboard.models.expense import Expense
from tripboard.api.dependencies import get_current_user, get_store
from tripboard.api.routes.trips import check_trip_access, require_role
from tripboard.services.expense_service import claim_booking
from tripboard.services.trip_store import TripStore
from tripboard.services.voting_service import average_temperature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["proposals"])


def get_trip_proposal(trip_id: int, proposal_id: int, db: Session) -> Proposal:
    """Load a proposal that belongs to the trip."""
    proposal = db.query(Proposal).options(selectinload(Proposal.votes)).filter(
        Proposal.id == proposal_id,
        Proposal.trip_id == trip_id
    ).first()
    if not proposal:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Proposal not found"
        )
    return proposal


def proposal_response(proposal: Proposal) -> ProposalResponse:
    """Build a proposal response with its average temperature."""
    response = ProposalResponse.model_validate(proposal)
    snapshot = ProposalSnapshot.model_validate(proposal)
    return response.model_copy(update={"average_temperature": average_temperature(snapshot.votes)})


@router.post("/{trip_id}", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
async def create_proposal(
    trip_id: int,
    proposal_data: ProposalCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Propose a destination or an itinerary item."""
    check_trip_access(trip_id, current_user.id, db)

    proposal = Proposal(
        trip_id=trip_id,
        created_by=current_user.id,
        name=proposal_data.name,
        destination=proposal_data.destination,
        is_destination=proposal_data.is_destination,
        estimated_cost_per_person=proposal_data.estimated_cost_per_person
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    logger.info(f"Proposal {proposal.id} created on trip {trip_id} by user {current_user.id}")

    store.publish(trip_id)
    return proposal_response(proposal)


@router.get("/{trip_id}", response_model=List[ProposalResponse])
async def list_proposals(
    trip_id: int,
    phase: Optional[TripPhase] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List proposals, newest first; filter by the phase they are voted on."""
    check_trip_access(trip_id, current_user.id, db)

    query = db.query(Proposal).options(selectinload(Proposal.votes)).filter(Proposal.trip_id == trip_id)
    if phase is not None:
        query = query.filter(Proposal.is_destination == (phase == TripPhase.DESTINATION))
    proposals = query.order_by(Proposal.created_at.desc(), Proposal.id.desc()).all()

    return [proposal_response(p) for p in proposals]


@router.put("/{trip_id}/{proposal_id}/vote", response_model=VoteResponse)
async def cast_vote(
    trip_id: int,
    proposal_id: int,
    vote_data: VoteCast,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Cast or replace the current user's vote on a proposal."""
    check_trip_access(trip_id, current_user.id, db)
    get_trip_proposal(trip_id, proposal_id, db)

    vote = db.query(Vote).filter(
        Vote.proposal_id == proposal_id,
        Vote.user_id == current_user.id
    ).first()

    if vote:
        vote.vote = vote_data.vote
        vote.score = vote_data.score
    else:
        vote = Vote(
            trip_id=trip_id,
            proposal_id=proposal_id,
            user_id=current_user.id,
            vote=vote_data.vote,
            score=vote_data.score
        )
        db.add(vote)
    db.commit()
    db.refresh(vote)

    store.publish(trip_id)
    return vote


@router.delete("/{trip_id}/{proposal_id}/vote")
async def remove_vote(
    trip_id: int,
    proposal_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Withdraw the current user's vote."""
    check_trip_access(trip_id, current_user.id, db)
    get_trip_proposal(trip_id, proposal_id, db)

    deleted = db.query(Vote).filter(
        Vote.proposal_id == proposal_id,
        Vote.user_id == current_user.id
    ).delete()
    db.commit()

    if deleted:
        store.publish(trip_id)
    return {"message": "Vote removed" if deleted else "No vote to remove"}


@router.patch("/{trip_id}/{proposal_id}/include", response_model=ProposalResponse)
async def set_included(
    trip_id: int,
    proposal_id: int,
    include_data: IncludeUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Include an itinerary item in the plan, or take it out."""
    trip = check_trip_access(trip_id, current_user.id, db)
    require_role(trip_id, current_user.id, db)

    proposal = get_trip_proposal(trip_id, proposal_id, db)
    if proposal.is_destination:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Destinations are included by locking them"
        )
    if trip.phase != TripPhase.ITINERARY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The itinerary can only be edited while building it"
        )

    store.update_proposal(proposal_id, {"included": include_data.included})
    db.refresh(proposal)
    return proposal_response(proposal)


@router.post(
    "/{trip_id}/{proposal_id}/claim-booking",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED
)
async def claim_proposal_booking(
    trip_id: int,
    proposal_id: int,
    claim_data: BookingClaim,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Record that the current user paid for this itinerary item."""
    check_trip_access(trip_id, current_user.id, db)

    expense_id = claim_booking(
        store,
        trip_id,
        proposal_id,
        current_user.id,
        claim_data.amount,
        category=claim_data.category,
        expense_date=claim_data.expense_date,
        split_user_ids=claim_data.split_user_ids
    )

    expense = db.query(Expense).options(selectinload(Expense.splits)).filter(Expense.id == expense_id).first()
    return expense
