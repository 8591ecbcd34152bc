"""
Trip/vote store: the single read/write boundary between the planning core
and the database.

Reads return frozen snapshots; writes commit immediately and publish a change
for the trip so observers (the auto-lock monitor) can re-evaluate.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from decimal import Decimal
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from tripboard.core.config import settings
from tripboard.core.exceptions import NotFoundError, StoreError
from tripboard.models.trip import Trip, TripMember, TripPhase, MemberStatus
from tripboard.models.proposal import Proposal
from tripboard.models.expense import Expense, ExpenseSplit
from tripboard.models.message import Message, MessageType, Notification
from tripboard.schemas.expense import ExpenseSnapshot
from tripboard.schemas.proposal import ProposalSnapshot
from tripboard.schemas.trip import TripSnapshot, MemberSnapshot
from tripboard.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


class TripStore:
    """Store operations for one database session."""

    def __init__(self, db: Session, notifier: Optional[ChangeNotifier] = None):
        self.db = db
        self.notifier = notifier

    # Reads

    def get_trip(self, trip_id: int) -> TripSnapshot:
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if not trip:
            raise NotFoundError("Trip not found")
        return TripSnapshot.model_validate(trip)

    def get_members(self, trip_id: int) -> List[MemberSnapshot]:
        members = self.db.query(TripMember).filter(TripMember.trip_id == trip_id).all()
        return [MemberSnapshot.model_validate(m) for m in members]

    def get_active_members(self, trip_id: int) -> List[MemberSnapshot]:
        members = self.db.query(TripMember).filter(
            TripMember.trip_id == trip_id,
            TripMember.status == MemberStatus.ACTIVE
        ).all()
        return [MemberSnapshot.model_validate(m) for m in members]

    def get_member(self, trip_id: int, user_id: int) -> Optional[MemberSnapshot]:
        member = self.db.query(TripMember).filter(
            TripMember.trip_id == trip_id,
            TripMember.user_id == user_id
        ).first()
        return MemberSnapshot.model_validate(member) if member else None

    def get_proposals(self, trip_id: int, phase_filter: Optional[TripPhase] = None) -> List[ProposalSnapshot]:
        """
        Proposals with their votes, newest first. With a phase filter only the
        proposals voted on in that phase are returned.
        """
        query = self.db.query(Proposal).options(selectinload(Proposal.votes)).filter(
            Proposal.trip_id == trip_id
        )
        if phase_filter is not None:
            query = query.filter(Proposal.is_destination == (phase_filter == TripPhase.DESTINATION))
        proposals = query.order_by(Proposal.created_at.desc(), Proposal.id.desc()).all()
        return [ProposalSnapshot.model_validate(p) for p in proposals]

    def get_proposal(self, trip_id: int, proposal_id: int) -> ProposalSnapshot:
        proposal = self.db.query(Proposal).options(selectinload(Proposal.votes)).filter(
            Proposal.id == proposal_id,
            Proposal.trip_id == trip_id
        ).first()
        if not proposal:
            raise NotFoundError("Proposal not found")
        return ProposalSnapshot.model_validate(proposal)

    def get_expenses(self, trip_id: int) -> List[ExpenseSnapshot]:
        expenses = self.db.query(Expense).options(selectinload(Expense.splits)).filter(
            Expense.trip_id == trip_id
        ).order_by(Expense.expense_date.desc(), Expense.created_at.desc()).all()
        return [ExpenseSnapshot.model_validate(e) for e in expenses]

    # Writes

    def update_trip(
        self,
        trip_id: int,
        values: dict,
        expected_phase: Optional[TripPhase] = None,
        expect_unlocked: bool = False,
        require_set: Sequence[str] = ()
    ) -> bool:
        """
        Conditional update. Returns False when the stored trip no longer
        matches ``expected_phase`` (or is already locked when
        ``expect_unlocked``, or has one of the ``require_set`` columns
        cleared), which means a concurrent pass got there first.
        """
        stmt = update(Trip).where(Trip.id == trip_id)
        if expected_phase is not None:
            stmt = stmt.where(Trip.phase == expected_phase)
        if expect_unlocked:
            stmt = stmt.where(Trip.locked_destination_id.is_(None))
        for column in require_set:
            stmt = stmt.where(getattr(Trip, column).is_not(None))

        try:
            result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update trip {trip_id}: {e}", exc_info=True)
            raise StoreError("Failed to update trip") from e

        self.db.expire_all()
        applied = result.rowcount > 0
        if applied:
            self._publish(trip_id)
        return applied

    def update_proposal(self, proposal_id: int, values: dict) -> None:
        try:
            proposal = self.db.query(Proposal).filter(Proposal.id == proposal_id).first()
            if not proposal:
                raise NotFoundError("Proposal not found")
            for key, value in values.items():
                setattr(proposal, key, value)
            trip_id = proposal.trip_id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update proposal {proposal_id}: {e}", exc_info=True)
            raise StoreError("Failed to update proposal") from e
        self._publish(trip_id)

    def create_expense(self, expense: Expense, splits: Sequence[Tuple[int, Decimal]]) -> int:
        """
        Insert an expense and its splits. If the splits cannot be written the
        expense is deleted again so no expense exists without its splits.
        """
        try:
            self.db.add(expense)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create expense: {e}", exc_info=True)
            raise StoreError("Failed to add expense") from e

        expense_id = expense.id
        trip_id = expense.trip_id
        try:
            for user_id, amount in splits:
                self.db.add(ExpenseSplit(expense_id=expense_id, user_id=user_id, amount=amount))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create splits for expense {expense_id}, removing expense: {e}", exc_info=True)
            self.delete_expense(expense_id, publish=False)
            raise StoreError("Failed to add expense") from e

        self._publish(trip_id)
        return expense_id

    def delete_expense(self, expense_id: int, publish: bool = True) -> None:
        expense = self.db.query(Expense).filter(Expense.id == expense_id).first()
        if not expense:
            raise NotFoundError("Expense not found")
        trip_id = expense.trip_id
        try:
            self.db.delete(expense)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete expense {expense_id}: {e}", exc_info=True)
            raise StoreError("Failed to delete expense") from e
        if publish:
            self._publish(trip_id)

    def update_splits(self, split_ids: Iterable[int], is_settled: bool, settled_at: Optional[datetime]) -> None:
        split_ids = list(split_ids)
        if not split_ids:
            return
        try:
            splits = self.db.query(ExpenseSplit).filter(ExpenseSplit.id.in_(split_ids)).all()
            for split in splits:
                split.is_settled = is_settled
                split.settled_at = settled_at
            trip_ids = {split.expense.trip_id for split in splits}
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to settle splits {split_ids}: {e}", exc_info=True)
            raise StoreError("Failed to settle") from e
        for trip_id in trip_ids:
            self._publish(trip_id)

    def emit_system_event(self, trip_id: int, text: str) -> None:
        """Append a system message to the trip's event stream."""
        try:
            self.db.add(Message(trip_id=trip_id, user_id=None, type=MessageType.SYSTEM, body=text))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to post system event for trip {trip_id}: {e}", exc_info=True)
            raise StoreError("Failed to post system event") from e
        logger.info(f"Trip {trip_id}: {text}")

    def notify_members(
        self,
        trip_id: int,
        actor_id: Optional[int],
        type: str,
        title: str,
        body: str,
        href: Optional[str] = None
    ) -> int:
        """Create a notification for every active member except the actor."""
        recipients = [m.user_id for m in self.get_active_members(trip_id) if m.user_id != actor_id]
        href = href or f"{settings.APP_BASE_PATH}/{trip_id}"
        try:
            for user_id in recipients:
                self.db.add(Notification(
                    user_id=user_id,
                    trip_id=trip_id,
                    actor_id=actor_id,
                    type=type,
                    title=title,
                    body=body,
                    href=href
                ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to notify members of trip {trip_id}: {e}", exc_info=True)
            raise StoreError("Failed to send notifications") from e
        return len(recipients)

    def publish(self, trip_id: int) -> None:
        self._publish(trip_id)

    def _publish(self, trip_id: int) -> None:
        if self.notifier is not None:
            self.notifier.publish(trip_id)
