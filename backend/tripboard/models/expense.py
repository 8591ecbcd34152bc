"""
Expense model for tracking shared spending.
"""
from sqlalchemy import Column, String, Numeric, Date, DateTime, Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from tripboard.db.base import BaseModel

EXPENSE_CATEGORIES = ("food", "transport", "housing", "activity", "other")


class Expense(BaseModel):
    """Expense model representing a single spending event."""
    __tablename__ = "trip_expenses"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default="other")
    expense_date = Column(Date, nullable=False, index=True)
    proposal_id = Column(Integer, ForeignKey("trip_proposals.id"), nullable=True)  # Set when claimed from a booking

    # Relationships
    trip = relationship("Trip", back_populates="expenses")
    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.id"
    )


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""
    __tablename__ = "expense_splits"

    expense_id = Column(Integer, ForeignKey("trip_expenses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    is_settled = Column(Boolean, default=False, nullable=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    expense = relationship("Expense", back_populates="splits")
