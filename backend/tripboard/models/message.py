"""
Trip event stream and member notification models.
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, Enum as SQLEnum
from sqlalchemy.orm import relationship
from tripboard.db.base import BaseModel
import enum


class MessageType(str, enum.Enum):
    """Message type enumeration."""
    TEXT = "text"
    SYSTEM = "system"


class Message(BaseModel):
    """Entry in a trip's message/event stream."""
    __tablename__ = "messages"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # Null for system-authority events
    type = Column(SQLEnum(MessageType), default=MessageType.TEXT, nullable=False)
    body = Column(Text, nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="messages")


class Notification(BaseModel):
    """Per-recipient notification."""
    __tablename__ = "notifications"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=True)
    href = Column(String(255), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="notifications")
