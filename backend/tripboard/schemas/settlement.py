"""
Pydantic schemas for balances and settlement transfers.
"""
from pydantic import BaseModel
from typing import Dict, List
from decimal import Decimal


class Transfer(BaseModel):
    """A single payment that moves a debtor towards zero."""
    from_user_id: int
    to_user_id: int
    amount: Decimal

    class Config:
        frozen = True


class ExpenseSummaryResponse(BaseModel):
    """Schema for the ledger summary of a trip."""
    trip_id: int
    currency: str
    total_expenses: Decimal
    by_category: Dict[str, Decimal]
    user_balance: Decimal  # Current user's net balance (positive = owed to them)
    has_unsettled_debts: bool
    settlements: List[Transfer]


class SettleResponse(BaseModel):
    """Schema for the result of settling with a member."""
    settled_split_ids: List[int]
