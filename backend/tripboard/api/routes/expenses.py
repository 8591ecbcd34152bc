"""
Expense management routes.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload
from typing import List
from tripboard.db.session import get_db
from tripboard.core.config import settings
from tripboard.models.user import User
from tripboard.models.expense import Expense
from tripboard.schemas.expense import ExpenseCreate, ExpenseResponse, SettleRequest
from tripboard.schemas.settlement import ExpenseSummaryResponse, SettleResponse
from tripboard.api.dependencies import get_current_user, get_store
from tripboard.api.routes.trips import check_trip_access
from tripboard.services import ledger_service
from tripboard.services.expense_service import create_expense_with_splits, settle_with_user
from tripboard.services.trip_store import TripStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("/{trip_id}", response_model=List[ExpenseResponse])
async def list_expenses(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List expenses with their splits, newest first."""
    check_trip_access(trip_id, current_user.id, db)

    expenses = db.query(Expense).options(
        selectinload(Expense.splits)
    ).filter(
        Expense.trip_id == trip_id
    ).order_by(Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc()).all()

    return expenses


@router.post("/{trip_id}", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    trip_id: int,
    expense_data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Create an expense paid by the current user, split equally."""
    check_trip_access(trip_id, current_user.id, db)

    expense_id = create_expense_with_splits(
        store,
        trip_id,
        current_user.id,
        expense_data.amount,
        expense_data.split_user_ids,
        description=expense_data.description,
        category=expense_data.category,
        expense_date=expense_data.expense_date
    )

    # Reload expense with splits
    expense = db.query(Expense).options(
        selectinload(Expense.splits)
    ).filter(Expense.id == expense_id).first()

    return expense


@router.delete("/{trip_id}/{expense_id}")
async def delete_expense(
    trip_id: int,
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Delete an expense. Only the payer can delete it."""
    check_trip_access(trip_id, current_user.id, db)

    expense = db.query(Expense).filter(
        Expense.id == expense_id,
        Expense.trip_id == trip_id
    ).first()

    if not expense:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found"
        )

    if expense.paid_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the payer can delete this expense"
        )

    store.delete_expense(expense_id)
    logger.info(f"Expense {expense_id} deleted from trip {trip_id} by user {current_user.id}")
    return {"message": "Expense deleted successfully"}


@router.get("/{trip_id}/summary", response_model=ExpenseSummaryResponse)
async def get_expense_summary(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Totals, the current user's balance and the transfers that settle the trip."""
    check_trip_access(trip_id, current_user.id, db)

    expenses = store.get_expenses(trip_id)

    return ExpenseSummaryResponse(
        trip_id=trip_id,
        currency=settings.DEFAULT_CURRENCY,
        total_expenses=ledger_service.calculate_total_expenses(expenses),
        by_category=ledger_service.calculate_expenses_by_category(expenses),
        user_balance=ledger_service.get_user_balance(current_user.id, expenses),
        has_unsettled_debts=ledger_service.has_unsettled_debts(current_user.id, expenses),
        settlements=ledger_service.calculate_settlements(expenses)
    )


@router.post("/{trip_id}/settle", response_model=SettleResponse)
async def settle_up(
    trip_id: int,
    settle_data: SettleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TripStore = Depends(get_store)
):
    """Mark everything the current user owes another member as paid."""
    check_trip_access(trip_id, current_user.id, db)

    if settle_data.to_user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot settle with yourself"
        )

    split_ids = settle_with_user(store, trip_id, current_user.id, settle_data.to_user_id)
    return SettleResponse(settled_split_ids=split_ids)
