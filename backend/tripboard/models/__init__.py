"""Models package - Import all models for SQLAlchemy registration."""
from tripboard.models.user import User
from tripboard.models.trip import Trip, TripMember, TripPhase, TripStatus, MemberRole, MemberStatus
from tripboard.models.proposal import Proposal, Vote, VoteType
from tripboard.models.expense import Expense, ExpenseSplit, EXPENSE_CATEGORIES
from tripboard.models.message import Message, MessageType, Notification

__all__ = [
    "User",
    "Trip",
    "TripMember",
    "TripPhase",
    "TripStatus",
    "MemberRole",
    "MemberStatus",
    "Proposal",
    "Vote",
    "VoteType",
    "Expense",
    "ExpenseSplit",
    "EXPENSE_CATEGORIES",
    "Message",
    "MessageType",
    "Notification",
]
