from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from ..models.booking import BookingStatus, PaymentMethod, PaymentStatus


class BookingCreate(BaseModel):
    musician_id: str
    amount: Decimal = Field(gt=0)
    currency: str = Field(default="NGN", min_length=3, max_length=3)
    event_date: datetime
    event_type: Optional[str] = None
    event_id: Optional[int] = None
    event_location: Optional[str] = None
    event_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    event_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


# Body shapes of the legacy /booking/* endpoints keep their camelCase keys
class BookingActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: int = Field(alias="bookingId")


class FeeBreakdownResponse(BaseModel):
    amount: float
    platform_fee: float
    vat: float
    musician_receives: float
    currency: str


class BookingResponse(BaseModel):
    id: int
    client_id: str
    musician_id: str
    event_id: Optional[int] = None
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    amount: Decimal
    currency: str
    event_type: Optional[str] = None
    event_date: datetime
    event_location: Optional[str] = None
    event_latitude: Optional[float] = None
    event_longitude: Optional[float] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    marked_complete_at: Optional[datetime] = None
    funds_released_at: Optional[datetime] = None
    tracking_active: bool = False
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
