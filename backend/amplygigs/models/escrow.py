from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel, utcnow
from .types import CaseInsensitiveEnum


class EscrowStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class ReleaseType(str, enum.Enum):
    MANUAL_CLIENT = "manual_client"
    AUTO_RELEASE = "auto_release"
    ADMIN = "admin"


class EscrowTransaction(BaseModel):
    __tablename__ = "escrow_transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    client_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    musician_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    gross_amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    vat = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    status = Column(CaseInsensitiveEnum(EscrowStatus), nullable=False, default=EscrowStatus.HELD)
    held_at = Column(DateTime, nullable=False, default=utcnow)
    released_at = Column(DateTime, nullable=True)
    released_by = Column(String(64), nullable=True)  # null for auto release
    release_type = Column(CaseInsensitiveEnum(ReleaseType), nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="escrow")
