"""Booking state machine.

    pending ──accept──▶ confirmed ──mark complete──▶ completed
       │                    │
       ├──decline──▶ declined
       └──cancel───▶ cancelled ◀──cancel──┘

Transitions are one-directional. Every mutation runs in one transaction
together with the notifications it produces.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..database import transaction
from ..models import BookingStatus, PaymentStatus, UserRole
from ..utils.notifications import notify
from ..utils.redis_cache import invalidate_bookings_cache
from . import escrow as escrow_service
from . import wallet as wallet_service
from .exceptions import BookingActionError
from .fees import to_decimal

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.DECLINED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


def completable(
    event_date: datetime, payment_status: PaymentStatus, status: BookingStatus, now: datetime
) -> bool:
    """True when the gig date has passed, it is paid, and it is still open."""
    return (
        event_date < now
        and payment_status == PaymentStatus.PAID
        and status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
    )


def can_mark_complete(booking: models.Booking, now: datetime) -> bool:
    return completable(booking.event_date, booking.payment_status, booking.status, now)


def countdown_seconds(
    marked_complete_at: Optional[datetime], funds_released_at: Optional[datetime], now: datetime
) -> Optional[int]:
    """Seconds until escrow auto-releases, or ``None`` when no window is running."""
    if funds_released_at is not None:
        return None
    release_at = escrow_service.release_deadline(marked_complete_at)
    if release_at is None:
        return None
    return max(0, int((release_at - now).total_seconds()))


def release_countdown(booking: models.Booking, now: datetime) -> Optional[int]:
    return countdown_seconds(booking.marked_complete_at, booking.funds_released_at, now)


def get_booking(db: Session, booking_id: int) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise LookupError("Booking not found")
    return booking


def get_booking_for_participant(db: Session, booking_id: int, user_id: str) -> models.Booking:
    booking = get_booking(db, booking_id)
    if user_id not in booking.participant_ids():
        raise PermissionError("Not a participant in this booking")
    return booking


def list_bookings_for_user(db: Session, user: models.UserProfile) -> list[models.Booking]:
    column = models.Booking.musician_id if user.role == UserRole.MUSICIAN else models.Booking.client_id
    return (
        db.query(models.Booking)
        .filter(column == user.id)
        .order_by(models.Booking.event_date.desc(), models.Booking.id.desc())
        .all()
    )


def set_status(booking: models.Booking, target: BookingStatus) -> None:
    if not can_transition(booking.status, target):
        raise BookingActionError(
            f"Cannot change booking from {booking.status.value} to {target.value}",
            status_code=409,
        )
    booking.status = target


def create_booking(db: Session, client: models.UserProfile, data: dict[str, Any]) -> models.Booking:
    if client.role != UserRole.CLIENT:
        raise PermissionError("Only clients can create bookings")
    musician = db.get(models.UserProfile, data["musician_id"])
    if musician is None or musician.role != UserRole.MUSICIAN:
        raise LookupError("Musician not found")
    if musician.is_suspended:
        raise BookingActionError("This musician is not accepting bookings")
    if not musician.kyc_verified:
        raise BookingActionError("This musician has not completed verification")
    amount = to_decimal(data["amount"])
    if amount <= 0:
        raise BookingActionError("Amount must be greater than zero")
    with transaction(db):
        booking = models.Booking(
            client_id=client.id,
            musician_id=musician.id,
            event_id=data.get("event_id"),
            amount=amount,
            currency=(data.get("currency") or "NGN").upper(),
            event_type=data.get("event_type"),
            event_date=data["event_date"],
            event_location=data.get("event_location"),
            event_latitude=data.get("event_latitude"),
            event_longitude=data.get("event_longitude"),
            notes=data.get("notes"),
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
        )
        db.add(booking)
        db.flush()
        notify(
            db,
            musician.id,
            "booking_request",
            "New Booking Request",
            f"{client.display_name} wants to book you for {booking.event_type or 'an event'}.",
            {"booking_id": booking.id},
            category="booking",
        )
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Booking %s created by client %s for musician %s", booking.id, client.id, musician.id)
    return booking


def _musician_decision(
    db: Session, booking_id: int, musician: models.UserProfile, target: BookingStatus
) -> models.Booking:
    booking = get_booking(db, booking_id)
    if booking.musician_id != musician.id:
        raise PermissionError("Only the booked musician can respond to this booking")
    if booking.status != BookingStatus.PENDING:
        raise BookingActionError(f"Booking is already {booking.status.value}", status_code=409)
    with transaction(db):
        set_status(booking, target)
        verb = "accepted" if target == BookingStatus.CONFIRMED else "declined"
        notify(
            db,
            booking.client_id,
            f"booking_{verb}",
            f"Booking {verb.capitalize()}",
            f"{musician.display_name} {verb} your booking #{booking.id}.",
            {"booking_id": booking.id},
            category="booking",
        )
    invalidate_bookings_cache(booking.participant_ids())
    return booking


def accept_booking(db: Session, booking_id: int, musician: models.UserProfile) -> models.Booking:
    return _musician_decision(db, booking_id, musician, BookingStatus.CONFIRMED)


def decline_booking(db: Session, booking_id: int, musician: models.UserProfile) -> models.Booking:
    return _musician_decision(db, booking_id, musician, BookingStatus.DECLINED)


def cancel_booking(
    db: Session,
    booking_id: int,
    user: models.UserProfile,
    reason: Optional[str],
    now: datetime,
) -> models.Booking:
    """Cancel a pending or confirmed booking; held funds go back to the client's wallet."""
    booking = get_booking_for_participant(db, booking_id, user.id)
    if booking.status == BookingStatus.CANCELLED:
        raise BookingActionError("Booking already cancelled", status_code=409)
    if booking.funds_released_at is not None:
        raise BookingActionError("Funds for this booking have already been released", status_code=409)
    is_client = booking.client_id == user.id
    with transaction(db):
        set_status(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = now
        booking.cancelled_by = user.id
        booking.cancellation_reason = reason
        booking.cancellation_category = "client_request" if is_client else "musician_request"
        refunded = wallet_service.refund_booking_to_wallet(db, booking, now)
        other = booking.musician_id if is_client else booking.client_id
        notify(
            db,
            other,
            "booking_cancelled",
            "Booking Cancelled",
            f"Booking #{booking.id} was cancelled by the {'client' if is_client else 'musician'}."
            + (f" Reason: {reason}" if reason else ""),
            {"booking_id": booking.id},
            category="booking",
        )
        if refunded is not None:
            notify(
                db,
                booking.client_id,
                "booking_refunded",
                "Refund Issued",
                f"The payment for booking #{booking.id} was returned to your wallet.",
                {"booking_id": booking.id, "escrow_id": refunded.id},
                category="payment",
            )
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Booking %s cancelled by %s (refunded=%s)", booking.id, user.id, refunded is not None)
    return booking


def mark_complete(
    db: Session,
    booking_id: int,
    musician: models.UserProfile,
    now: datetime,
) -> tuple[models.Booking, Optional[models.EscrowTransaction]]:
    """Musician confirms the gig happened; starts the escrow release window.

    Each failed precondition raises :class:`BookingActionError` carrying the
    message shown to the musician. Nothing is retried.
    """
    booking = get_booking(db, booking_id)
    if booking.musician_id != musician.id:
        raise PermissionError("Only the booked musician can mark this booking complete")
    if booking.payment_status != PaymentStatus.PAID:
        raise BookingActionError("Booking must be paid before marking complete")
    if booking.event_date >= now:
        raise BookingActionError("Cannot mark complete before event date")
    if booking.status == BookingStatus.COMPLETED or booking.marked_complete_at is not None:
        raise BookingActionError("Booking already marked as complete", status_code=409)
    if not can_mark_complete(booking, now):
        raise BookingActionError(f"Cannot complete a {booking.status.value} booking", status_code=409)
    with transaction(db):
        # Guarded update so a concurrent double-complete fails for one caller
        updated = (
            db.query(models.Booking)
            .filter(
                models.Booking.id == booking.id,
                models.Booking.status == booking.status,
                models.Booking.marked_complete_at.is_(None),
            )
            .update(
                {
                    models.Booking.status: BookingStatus.COMPLETED,
                    models.Booking.marked_complete_at: now,
                    models.Booking.marked_complete_by: musician.id,
                },
                synchronize_session="fetch",
            )
        )
        if not updated:
            raise BookingActionError("Booking already marked as complete", status_code=409)
        notify(
            db,
            booking.client_id,
            "gig_completed",
            "Gig Completed",
            f"{musician.display_name} marked booking #{booking.id} as complete. "
            "Funds will be released automatically in 24 hours unless you release them sooner.",
            {"booking_id": booking.id},
            category="booking",
        )
        notify(
            db,
            musician.id,
            "completion_confirmed",
            "Completion Confirmed",
            f"Booking #{booking.id} is complete. Your payment will be released within 24 hours.",
            {"booking_id": booking.id},
            category="booking",
        )
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Booking %s marked complete by musician %s", booking.id, musician.id)
    return booking, escrow_service.get_escrow(db, booking.id)
