"""Escrow holds and releases.

A held escrow row is created in the same transaction that marks a booking
paid. It is released exactly once: by the client after completion, by an
admin, or by the auto-release job once the booking has been complete for
``ESCROW_AUTO_RELEASE_HOURS``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..database import transaction
from ..models import BookingStatus, EscrowStatus, PaymentStatus, ReleaseType
from ..utils.notifications import notify
from ..utils.redis_cache import invalidate_bookings_cache
from . import earnings as earnings_service
from .exceptions import EscrowError
from .fees import compute_fee_breakdown, format_money

logger = logging.getLogger(__name__)


def release_deadline(marked_complete_at: Optional[datetime]) -> Optional[datetime]:
    if marked_complete_at is None:
        return None
    return marked_complete_at + timedelta(hours=settings.ESCROW_AUTO_RELEASE_HOURS)


def auto_release_at(booking: models.Booking) -> Optional[datetime]:
    return release_deadline(booking.marked_complete_at)


def get_escrow(db: Session, booking_id: int) -> Optional[models.EscrowTransaction]:
    return (
        db.query(models.EscrowTransaction)
        .filter(models.EscrowTransaction.booking_id == booking_id)
        .first()
    )


def hold_for_booking(db: Session, booking: models.Booking, now: datetime) -> models.EscrowTransaction:
    """Create the held escrow row for a freshly paid booking (no commit)."""
    if get_escrow(db, booking.id) is not None:
        raise EscrowError("Booking already paid")
    fees = compute_fee_breakdown(booking.amount, booking.currency)
    escrow = models.EscrowTransaction(
        booking_id=booking.id,
        client_id=booking.client_id,
        musician_id=booking.musician_id,
        gross_amount=fees.amount,
        platform_fee=fees.platform_fee,
        vat=fees.vat,
        net_amount=fees.musician_receives,
        currency=fees.currency,
        status=EscrowStatus.HELD,
        held_at=now,
    )
    db.add(escrow)
    db.flush()
    earnings_service.record_hold(db, escrow)
    return escrow


def escrow_summary(escrow: Optional[models.EscrowTransaction], booking: models.Booking) -> dict[str, Any]:
    release_at = auto_release_at(booking)
    if escrow is None:
        return {"escrow_id": None, "status": None, "auto_release_at": release_at}
    return {
        "escrow_id": escrow.id,
        "status": escrow.status.value,
        "gross_amount": float(escrow.gross_amount),
        "platform_fee": float(escrow.platform_fee),
        "vat": float(escrow.vat),
        "net_amount": float(escrow.net_amount),
        "currency": escrow.currency,
        "released_at": escrow.released_at,
        "release_type": escrow.release_type.value if escrow.release_type else None,
        "auto_release_at": release_at,
    }


def _can_release(booking: models.Booking, now: datetime) -> bool:
    if booking.status == BookingStatus.COMPLETED:
        return True
    return booking.status == BookingStatus.CONFIRMED and booking.event_date < now


def release_held_escrow(
    db: Session,
    booking: models.Booking,
    escrow: models.EscrowTransaction,
    released_by: Optional[str],
    release_type: ReleaseType,
    now: datetime,
) -> models.EscrowTransaction:
    """Flip a held escrow to released and credit the musician (no commit)."""
    # Guarded update so two concurrent releases cannot both succeed
    updated = (
        db.query(models.EscrowTransaction)
        .filter(
            models.EscrowTransaction.id == escrow.id,
            models.EscrowTransaction.status == EscrowStatus.HELD,
        )
        .update(
            {
                models.EscrowTransaction.status: EscrowStatus.RELEASED,
                models.EscrowTransaction.released_at: now,
                models.EscrowTransaction.released_by: released_by,
                models.EscrowTransaction.release_type: release_type,
            },
            synchronize_session="fetch",
        )
    )
    if not updated:
        raise EscrowError("Funds have already been released")
    booking.funds_released_at = now
    earnings_service.record_release(db, escrow)
    amount = format_money(escrow.net_amount, escrow.currency)
    if release_type == ReleaseType.AUTO_RELEASE:
        notify(
            db,
            booking.musician_id,
            "funds_auto_released",
            "Payment Released",
            f"{amount} has been automatically released to you for booking #{booking.id} and is now available for withdrawal.",
            {"booking_id": booking.id, "escrow_id": escrow.id},
            category="payment",
        )
        notify(
            db,
            booking.client_id,
            "auto_release_notification",
            "Funds Released",
            f"Escrow for booking #{booking.id} was released to the musician after the review window.",
            {"booking_id": booking.id, "escrow_id": escrow.id},
            category="payment",
        )
    else:
        notify(
            db,
            booking.musician_id,
            "funds_released",
            "Payment Released",
            f"{amount} has been released to you for booking #{booking.id} and is now available for withdrawal.",
            {"booking_id": booking.id, "escrow_id": escrow.id},
            category="payment",
        )
        notify(
            db,
            booking.client_id,
            "release_confirmed",
            "Funds Released",
            f"You released payment for booking #{booking.id}."
            if release_type == ReleaseType.MANUAL_CLIENT
            else f"Payment for booking #{booking.id} was released to the musician by support.",
            {"booking_id": booking.id, "escrow_id": escrow.id},
            category="payment",
        )
    return escrow


def releasable_escrow(
    db: Session, booking_id: int, now: datetime, client_id: Optional[str] = None
) -> tuple[models.Booking, models.EscrowTransaction]:
    """Return the booking and its held escrow, or raise why it cannot be released.

    ``client_id`` restricts the release to the booking's own client
    (manual release from the booking page).
    """
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise LookupError("Booking not found")
    if client_id is not None and booking.client_id != client_id:
        raise PermissionError("Not your booking")
    if booking.payment_status != PaymentStatus.PAID:
        raise EscrowError("Booking has not been paid")
    if booking.funds_released_at is not None:
        raise EscrowError("Funds have already been released")
    if not _can_release(booking, now):
        raise EscrowError("Booking must be completed before releasing funds")
    escrow = get_escrow(db, booking_id)
    if escrow is None or escrow.status != EscrowStatus.HELD:
        raise EscrowError("No funds in escrow for this booking", status_code=404)
    return booking, escrow


def release_escrow(
    db: Session,
    booking_id: int,
    *,
    released_by: Optional[str],
    release_type: ReleaseType,
    now: datetime,
    client_id: Optional[str] = None,
) -> models.EscrowTransaction:
    """Release the held escrow for ``booking_id``."""
    booking, escrow = releasable_escrow(db, booking_id, now, client_id)
    with transaction(db):
        release_held_escrow(db, booking, escrow, released_by, release_type, now)
    invalidate_bookings_cache(booking.participant_ids())
    logger.info(
        "Escrow %s for booking %s released (%s) by %s",
        escrow.id,
        booking.id,
        release_type.value,
        released_by or "system",
    )
    db.refresh(escrow)
    return escrow


def due_for_auto_release(db: Session, now: datetime) -> list[models.Booking]:
    cutoff = now - timedelta(hours=settings.ESCROW_AUTO_RELEASE_HOURS)
    return (
        db.query(models.Booking)
        .filter(
            models.Booking.status == BookingStatus.COMPLETED,
            models.Booking.funds_released_at.is_(None),
            models.Booking.marked_complete_at.isnot(None),
            models.Booking.marked_complete_at <= cutoff,
        )
        .order_by(models.Booking.marked_complete_at)
        .all()
    )


def process_auto_release(db: Session, now: datetime) -> dict[str, Any]:
    """Release every escrow whose review window has elapsed.

    Each booking is released in its own transaction so one failure does not
    hold back the rest. Returns ``{total, successful, failed, errors}``.
    """
    bookings = due_for_auto_release(db, now)
    result: dict[str, Any] = {"total": len(bookings), "successful": 0, "failed": 0, "errors": []}
    for booking in bookings:
        escrow = get_escrow(db, booking.id)
        if escrow is None or escrow.status != EscrowStatus.HELD:
            result["failed"] += 1
            result["errors"].append({"booking_id": booking.id, "error": "No held escrow"})
            continue
        try:
            with transaction(db):
                release_held_escrow(db, booking, escrow, None, ReleaseType.AUTO_RELEASE, now)
        except EscrowError as exc:
            result["failed"] += 1
            result["errors"].append({"booking_id": booking.id, "error": exc.message})
            continue
        invalidate_bookings_cache(booking.participant_ids())
        result["successful"] += 1
    if result["total"]:
        logger.info(
            "Escrow auto-release: %s due, %s released, %s failed",
            result["total"],
            result["successful"],
            result["failed"],
        )
    return result
