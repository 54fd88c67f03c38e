from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from .base import BaseModel, utcnow


class LiveLocation(BaseModel):
    __tablename__ = "live_locations"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "user_id", name="uq_live_locations_booking_user"),
    )
