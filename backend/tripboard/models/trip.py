"""
Trip and membership models for group trip planning.
"""
from sqlalchemy import Column, String, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from tripboard.db.base import BaseModel
import enum


class TripPhase(str, enum.Enum):
    """Planning lifecycle, in order."""
    DESTINATION = "destination"
    ITINERARY = "itinerary"
    TRANSPORTATION = "transportation"
    FINALIZE = "finalize"
    READY = "ready"


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PLANNING = "planning"
    DECIDED = "decided"


class MemberRole(str, enum.Enum):
    """Member role enumeration."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MemberStatus(str, enum.Enum):
    """Removed members stay on record so votes and splits keep their author."""
    ACTIVE = "active"
    REMOVED = "removed"


class Trip(BaseModel):
    """Trip model representing a single planning session."""
    __tablename__ = "trips"

    name = Column(String(200), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    phase = Column(SQLEnum(TripPhase), default=TripPhase.DESTINATION, nullable=False)
    status = Column(SQLEnum(TripStatus), default=TripStatus.PLANNING, nullable=False)
    locked_destination_id = Column(
        Integer,
        ForeignKey("trip_proposals.id", use_alter=True, name="fk_trips_locked_destination"),
        nullable=True
    )
    destination_voting_deadline = Column(DateTime(timezone=True), nullable=True)
    itinerary_voting_deadline = Column(DateTime(timezone=True), nullable=True)
    date_start = Column(Date, nullable=True)
    date_end = Column(Date, nullable=True)

    # Relationships
    members = relationship("TripMember", back_populates="trip", cascade="all, delete-orphan")
    proposals = relationship(
        "Proposal",
        back_populates="trip",
        cascade="all, delete-orphan",
        foreign_keys="Proposal.trip_id"
    )
    locked_destination = relationship("Proposal", foreign_keys=[locked_destination_id], post_update=True)
    expenses = relationship("Expense", back_populates="trip", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="trip", cascade="all, delete-orphan")


class TripMember(BaseModel):
    """Junction table for Trip and User with role and status."""
    __tablename__ = "trip_members"
    __table_args__ = (UniqueConstraint("trip_id", "user_id", name="uq_trip_member"),)

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    status = Column(SQLEnum(MemberStatus), default=MemberStatus.ACTIVE, nullable=False)

    # Relationships
    trip = relationship("Trip", back_populates="members")
    user = relationship("User", back_populates="memberships")
