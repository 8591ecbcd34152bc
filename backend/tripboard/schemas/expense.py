"""
Pydantic schemas for Expense and ExpenseSplit entities.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from tripboard.models.expense import EXPENSE_CATEGORIES


class SplitSnapshot(BaseModel):
    """Read-only view of a split used by the ledger."""
    id: Optional[int] = None
    user_id: int
    amount: Decimal
    is_settled: bool = False

    class Config:
        from_attributes = True
        frozen = True


class ExpenseSnapshot(BaseModel):
    """Read-only view of an expense with its splits."""
    id: Optional[int] = None
    paid_by: int
    amount: Decimal
    category: str = "other"
    splits: List[SplitSnapshot] = []

    class Config:
        from_attributes = True
        frozen = True


class ExpenseCreate(BaseModel):
    """Schema for expense creation."""
    amount: Decimal = Field(gt=0, decimal_places=2)
    description: Optional[str] = None
    category: str = "other"
    expense_date: Optional[date] = None  # Defaults to today
    split_user_ids: List[int] = []  # Ordered; the first participant absorbs rounding

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Restrict to the known expense categories."""
        v = v.lower()
        if v not in EXPENSE_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(EXPENSE_CATEGORIES)}")
        return v


class ExpenseSplitResponse(BaseModel):
    """Schema for expense split response."""
    id: int
    user_id: int
    amount: Decimal
    is_settled: bool
    settled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    trip_id: int
    paid_by: int
    amount: Decimal
    description: Optional[str] = None
    category: str
    expense_date: date
    proposal_id: Optional[int] = None
    splits: List[ExpenseSplitResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class SettleRequest(BaseModel):
    """Mark the current user's debts towards another member as paid."""
    to_user_id: int
