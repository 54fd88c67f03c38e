from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class TicketPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class _Flaggable:
    is_flagged = Column(Boolean, nullable=False, default=False)
    flag_reason = Column(Text, nullable=True)
    flagged_at = Column(DateTime, nullable=True)
    flagged_by = Column(String(64), nullable=True)


class Event(_Flaggable, BaseModel):
    """Gig posted by a client looking for a musician."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime, nullable=True)
    location = Column(String, nullable=True)
    budget = Column(Numeric(12, 2), nullable=True)

    client = relationship("UserProfile")


class MusicianEvent(_Flaggable, BaseModel):
    """Ticketed show hosted by a musician."""

    __tablename__ = "musician_events"

    id = Column(Integer, primary_key=True, index=True)
    musician_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime, nullable=True)
    venue = Column(String, nullable=True)
    ticket_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="NGN")

    musician = relationship("UserProfile")
    purchases = relationship("TicketPurchase", back_populates="musician_event", cascade="all, delete-orphan")


class TicketPurchase(BaseModel):
    __tablename__ = "ticket_purchases"

    id = Column(Integer, primary_key=True, index=True)
    musician_event_id = Column(
        Integer, ForeignKey("musician_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    buyer_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    payment_status = Column(
        CaseInsensitiveEnum(TicketPaymentStatus), nullable=False, default=TicketPaymentStatus.PENDING
    )
    ticket_code = Column(String, nullable=True, unique=True)
    refund_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    refunded_by = Column(String(64), nullable=True)

    musician_event = relationship("MusicianEvent", back_populates="purchases")
    buyer = relationship("UserProfile")
