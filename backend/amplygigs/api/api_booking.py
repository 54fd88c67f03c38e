from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Optional
import logging

from .. import models, schemas
from ..models import BookingStatus, PaymentStatus, utcnow
from ..services import booking_lifecycle, escrow as escrow_service
from ..services.exceptions import DomainError
from ..services.fees import compute_fee_breakdown
from ..utils.errors import domain_error_response
from ..utils.redis_cache import cache_bookings, get_cached_bookings
from .dependencies import (
    get_current_client,
    get_current_musician,
    get_current_user,
    get_db,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def booking_row(booking: models.Booking) -> dict[str, Any]:
    """Stored booking fields plus fees; safe to cache."""
    data = schemas.BookingResponse.model_validate(booking).model_dump(mode="json")
    data["fees"] = compute_fee_breakdown(booking.amount, booking.currency).as_dict()
    return data


def with_time_fields(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Add the clock-dependent values the booking page shows."""
    marked = _parse_dt(data.get("marked_complete_at"))
    release_at = escrow_service.release_deadline(marked)
    data["can_mark_complete"] = booking_lifecycle.completable(
        _parse_dt(data["event_date"]),
        PaymentStatus(data["payment_status"]),
        BookingStatus(data["status"]),
        now,
    )
    data["auto_release_at"] = release_at.isoformat() if release_at else None
    data["release_countdown_seconds"] = booking_lifecycle.countdown_seconds(
        marked, _parse_dt(data.get("funds_released_at")), now
    )
    return data


def booking_payload(booking: models.Booking, now: datetime) -> dict[str, Any]:
    return with_time_fields(booking_row(booking), now)


@router.get("/bookings/mine")
def list_my_bookings(
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    rows = get_cached_bookings(current_user.id)
    if rows is None:
        rows = [booking_row(b) for b in booking_lifecycle.list_bookings_for_user(db, current_user)]
        cache_bookings(current_user.id, rows)
    now = utcnow()
    return {"success": True, "bookings": [with_time_fields(dict(r), now) for r in rows]}


@router.get("/bookings/{booking_id}")
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        booking = booking_lifecycle.get_booking_for_participant(db, booking_id, current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    escrow = escrow_service.get_escrow(db, booking.id)
    return {
        "success": True,
        "booking": booking_payload(booking, utcnow()),
        "escrow": escrow_service.escrow_summary(escrow, booking) if escrow else None,
    }


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    try:
        booking = booking_lifecycle.create_booking(db, current_user, payload.model_dump())
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "booking": booking_payload(booking, utcnow())}


@router.post("/bookings/{booking_id}/accept")
def accept_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    try:
        booking = booking_lifecycle.accept_booking(db, booking_id, current_user)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "booking": booking_payload(booking, utcnow())}


@router.post("/bookings/{booking_id}/decline")
def decline_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    try:
        booking = booking_lifecycle.decline_booking(db, booking_id, current_user)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "booking": booking_payload(booking, utcnow())}


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    now = utcnow()
    try:
        booking = booking_lifecycle.cancel_booking(db, booking_id, current_user, payload.reason, now)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "booking": booking_payload(booking, now)}


@router.post("/booking/mark-complete")
def mark_complete(
    payload: schemas.BookingActionRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    now = utcnow()
    try:
        booking, escrow = booking_lifecycle.mark_complete(db, payload.booking_id, current_user, now)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "message": "Booking marked as complete",
        "booking": booking_payload(booking, now),
        "escrow": escrow_service.escrow_summary(escrow, booking),
    }
