"""
Expense service for expense-related business logic.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from tripboard.core.exceptions import DataIntegrityError, PhaseTransitionError
from tripboard.core.utils import utcnow
from tripboard.models.expense import Expense
from tripboard.models.trip import TripPhase
from tripboard.services.ledger_service import split_equally, splits_to_settle
from tripboard.services.trip_store import TripStore

logger = logging.getLogger(__name__)


def create_expense_with_splits(
    store: TripStore,
    trip_id: int,
    payer_id: int,
    amount: Decimal,
    split_user_ids: List[int],
    description: Optional[str] = None,
    category: str = "other",
    expense_date: Optional[date] = None,
    proposal_id: Optional[int] = None
) -> int:
    """Create an expense split equally among participants."""
    active_ids = {m.user_id for m in store.get_active_members(trip_id)}
    unknown = [uid for uid in split_user_ids if uid not in active_ids]
    if payer_id not in active_ids or unknown:
        raise DataIntegrityError(f"Users {unknown or [payer_id]} are not active members of this trip")
    if len(set(split_user_ids)) != len(split_user_ids):
        raise DataIntegrityError("A participant is listed more than once")

    # If no participants specified, payer pays all
    splits = split_equally(amount, split_user_ids or [payer_id])

    expense = Expense(
        trip_id=trip_id,
        paid_by=payer_id,
        amount=amount,
        description=description,
        category=category,
        expense_date=expense_date or date.today(),
        proposal_id=proposal_id
    )
    expense_id = store.create_expense(expense, splits)
    logger.info(f"Expense {expense_id} of {amount} added to trip {trip_id} by user {payer_id}")
    return expense_id


def claim_booking(
    store: TripStore,
    trip_id: int,
    proposal_id: int,
    payer_id: int,
    amount: Decimal,
    category: str = "activity",
    expense_date: Optional[date] = None,
    split_user_ids: Optional[List[int]] = None
) -> int:
    """Record that a member paid for an itinerary item, as a shared expense."""
    trip = store.get_trip(trip_id)
    if trip.phase != TripPhase.ITINERARY:
        raise PhaseTransitionError("Bookings can only be claimed while building the itinerary")

    proposal = store.get_proposal(trip_id, proposal_id)
    if proposal.is_destination:
        raise DataIntegrityError("Only itinerary items can be claimed as bookings")

    if split_user_ids is None:
        split_user_ids = [m.user_id for m in store.get_active_members(trip_id)]

    return create_expense_with_splits(
        store,
        trip_id,
        payer_id,
        amount,
        split_user_ids,
        description=f"Booking: {proposal.display_name}",
        category=category,
        expense_date=expense_date,
        proposal_id=proposal_id
    )


def settle_with_user(store: TripStore, trip_id: int, user_id: int, to_user_id: int) -> List[int]:
    """Mark every unsettled share the user owes ``to_user_id`` as settled."""
    split_ids = splits_to_settle(store.get_expenses(trip_id), user_id, to_user_id)
    if not split_ids:
        return []
    store.update_splits(split_ids, is_settled=True, settled_at=utcnow())
    logger.info(f"User {user_id} settled {len(split_ids)} splits with user {to_user_id} on trip {trip_id}")
    return split_ids
