from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    WALLET = "wallet"
    DIRECT = "direct"


class Booking(BaseModel):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    musician_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    status = Column(CaseInsensitiveEnum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    payment_status = Column(
        CaseInsensitiveEnum(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    event_type = Column(String, nullable=True)
    event_date = Column(DateTime, nullable=False)
    event_location = Column(String, nullable=True)
    event_latitude = Column(Float, nullable=True)
    event_longitude = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    payment_method = Column(CaseInsensitiveEnum(PaymentMethod), nullable=True)
    payment_reference = Column(String, nullable=True, unique=True)
    paid_at = Column(DateTime, nullable=True)

    marked_complete_at = Column(DateTime, nullable=True)
    marked_complete_by = Column(String(64), nullable=True)
    funds_released_at = Column(DateTime, nullable=True)

    tracking_active = Column(Boolean, nullable=False, default=False)

    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancellation_category = Column(String, nullable=True)  # client_request|musician_request

    client = relationship("UserProfile", foreign_keys=[client_id])
    musician = relationship("UserProfile", foreign_keys=[musician_id])
    event = relationship("Event")
    escrow = relationship("EscrowTransaction", back_populates="booking", uselist=False)

    def participant_ids(self) -> tuple[str, str]:
        return (self.client_id, self.musician_id)
