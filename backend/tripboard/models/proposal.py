"""
Proposal and vote models.
"""
from sqlalchemy import Column, String, Boolean, Numeric, ForeignKey, Integer, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship
from tripboard.db.base import BaseModel
import enum


class VoteType(str, enum.Enum):
    """Categorical vote."""
    IN = "in"
    MAYBE = "maybe"
    OUT = "out"


class Proposal(BaseModel):
    """A candidate destination or itinerary item that members vote on."""
    __tablename__ = "trip_proposals"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(200), nullable=True)
    destination = Column(String(200), nullable=False)
    is_destination = Column(Boolean, default=False, nullable=False)  # Fixed at creation
    included = Column(Boolean, default=False, nullable=False)  # Part of the finalized itinerary
    estimated_cost_per_person = Column(Numeric(15, 2), nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="proposals", foreign_keys=[trip_id])
    votes = relationship("Vote", back_populates="proposal", cascade="all, delete-orphan")


class Vote(BaseModel):
    """One live vote per (proposal, user); re-voting overwrites the row."""
    __tablename__ = "trip_votes"
    __table_args__ = (UniqueConstraint("proposal_id", "user_id", name="uq_vote_proposal_user"),)

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    proposal_id = Column(Integer, ForeignKey("trip_proposals.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vote = Column(SQLEnum(VoteType), nullable=True)
    score = Column(Integer, nullable=True)  # Temperature 0-100

    # Relationships
    proposal = relationship("Proposal", back_populates="votes")
