"""
Pydantic schemas for Trip and TripMember entities.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime
from tripboard.models.trip import TripPhase, TripStatus, MemberRole, MemberStatus
from tripboard.models.message import MessageType


class TripSnapshot(BaseModel):
    """Read-only view of the trip fields the planning core reads."""
    id: int
    phase: TripPhase
    locked_destination_id: Optional[int] = None
    destination_voting_deadline: Optional[datetime] = None
    itinerary_voting_deadline: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


class MemberSnapshot(BaseModel):
    """Read-only view of a membership."""
    user_id: int
    role: MemberRole
    status: MemberStatus

    class Config:
        from_attributes = True
        frozen = True


class TripCreate(BaseModel):
    """Schema for trip creation."""
    name: str
    date_start: Optional[date] = None
    date_end: Optional[date] = None


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    name: str
    created_by: int
    phase: TripPhase
    status: TripStatus
    locked_destination_id: Optional[int] = None
    destination_voting_deadline: Optional[datetime] = None
    itinerary_voting_deadline: Optional[datetime] = None
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    """Schema for trip member response."""
    user_id: int
    username: str
    role: MemberRole
    status: MemberStatus


class MemberAdd(BaseModel):
    """Schema for adding a member by username."""
    username: str
    role: MemberRole = MemberRole.MEMBER


class DeadlineUpdate(BaseModel):
    """Voting deadline for the trip's current phase."""
    deadline: datetime


class LockDestinationRequest(BaseModel):
    """Schema for locking a destination proposal."""
    proposal_id: int


class PhaseAdvanceRequest(BaseModel):
    """Schema for a manual forward transition."""
    target_phase: TripPhase


class PhaseReopenRequest(BaseModel):
    """Schema for reopening the previous phase; must be confirmed."""
    target_phase: TripPhase
    confirm: bool = False


class MarkReadyRequest(BaseModel):
    """Final confirmed dates for the trip."""
    date_start: Optional[date] = None
    date_end: Optional[date] = None


class VotingStatusResponse(BaseModel):
    """Auto-lock status for the current phase."""
    phase: TripPhase
    should_auto_lock: bool
    all_voted: bool
    deadline_passed: bool
    voted_count: int
    total_members: int
    deadline: Optional[datetime] = None
    winning_proposal_id: Optional[int] = None
    already_locked: bool


class MessageResponse(BaseModel):
    """Schema for trip message response."""
    id: int
    trip_id: int
    user_id: Optional[int] = None
    type: MessageType
    body: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    """Schema for notification response."""
    id: int
    trip_id: int
    actor_id: Optional[int] = None
    type: str
    title: str
    body: Optional[str] = None
    href: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TripDetailResponse(TripResponse):
    """Schema for detailed trip response with members."""
    members: List[MemberResponse] = []
