"""
Pydantic schemas for Proposal and Vote entities.
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from tripboard.models.proposal import VoteType
from tripboard.models.expense import EXPENSE_CATEGORIES


class VoteSnapshot(BaseModel):
    """Read-only view of a vote; either field may be missing but not both."""
    user_id: int
    vote: Optional[VoteType] = None
    score: Optional[float] = None

    class Config:
        from_attributes = True
        frozen = True


class ProposalSnapshot(BaseModel):
    """Read-only view of a proposal with its votes."""
    id: int
    name: Optional[str] = None
    destination: str
    is_destination: bool
    included: bool = False
    created_at: Optional[datetime] = None
    votes: List[VoteSnapshot] = []

    class Config:
        from_attributes = True
        frozen = True

    @property
    def display_name(self) -> str:
        return self.name or self.destination


class ProposalCreate(BaseModel):
    """Schema for proposal creation."""
    destination: str
    name: Optional[str] = None
    is_destination: bool = False
    estimated_cost_per_person: Optional[Decimal] = Field(default=None, ge=0)


class VoteCast(BaseModel):
    """Schema for casting or replacing a vote."""
    vote: Optional[VoteType] = None
    score: Optional[int] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def require_value(self):
        """A vote needs a category, a temperature, or both."""
        if self.vote is None and self.score is None:
            raise ValueError("Either vote or score is required")
        return self


class VoteResponse(BaseModel):
    """Schema for vote response."""
    id: int
    proposal_id: int
    user_id: int
    vote: Optional[VoteType] = None
    score: Optional[int] = None

    class Config:
        from_attributes = True


class ProposalResponse(BaseModel):
    """Schema for proposal response."""
    id: int
    trip_id: int
    created_by: int
    name: Optional[str] = None
    destination: str
    is_destination: bool
    included: bool
    estimated_cost_per_person: Optional[Decimal] = None
    average_temperature: float = 0.0
    votes: List[VoteResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class IncludeUpdate(BaseModel):
    """Schema for toggling a proposal in or out of the itinerary."""
    included: bool


class BookingClaim(BaseModel):
    """Record that the current user paid for a booked itinerary item."""
    amount: Decimal = Field(gt=0, decimal_places=2)
    category: str = "activity"
    expense_date: Optional[date] = None
    split_user_ids: Optional[List[int]] = None  # Defaults to all active members

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Restrict to the known expense categories."""
        v = v.lower()
        if v not in EXPENSE_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(EXPENSE_CATEGORIES)}")
        return v
