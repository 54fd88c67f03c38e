from datetime import timedelta
from decimal import Decimal

import pytest

from amplygigs import models
from amplygigs.models import (
    BookingStatus,
    EscrowStatus,
    PaymentStatus,
    UserRole,
    WalletTransactionType,
    utcnow,
)
from amplygigs.services import booking_lifecycle, escrow as escrow_service
from amplygigs.services.exceptions import BookingActionError

from conftest import make_booking, make_user, make_wallet


def _paid(db, booking, now):
    escrow_service.hold_for_booking(db, booking, now)
    booking.payment_status = PaymentStatus.PAID
    booking.status = BookingStatus.CONFIRMED
    booking.paid_at = now
    db.commit()
    db.refresh(booking)
    return booking


def test_transition_table():
    assert booking_lifecycle.can_transition("pending", "confirmed")
    assert booking_lifecycle.can_transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
    assert not booking_lifecycle.can_transition("completed", "pending")
    assert not booking_lifecycle.can_transition("declined", "confirmed")
    assert not booking_lifecycle.can_transition("cancelled", "confirmed")


def test_create_booking_notifies_musician(db, client_user, musician):
    booking = booking_lifecycle.create_booking(
        db,
        client_user,
        {
            "musician_id": musician.id,
            "amount": Decimal("25000"),
            "event_date": utcnow() + timedelta(days=3),
            "event_type": "Birthday",
        },
    )
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.UNPAID
    notif = db.query(models.Notification).filter_by(user_id=musician.id).one()
    assert notif.type == "booking_request"
    assert notif.data == {"booking_id": booking.id}


def test_create_booking_requires_verified_musician(db, client_user):
    unverified = make_user(db, UserRole.MUSICIAN, kyc_verified=False)
    with pytest.raises(BookingActionError, match="verification"):
        booking_lifecycle.create_booking(
            db,
            client_user,
            {"musician_id": unverified.id, "amount": 100, "event_date": utcnow()},
        )


def test_create_booking_rejects_musician_caller(db, musician):
    with pytest.raises(PermissionError):
        booking_lifecycle.create_booking(
            db, musician, {"musician_id": musician.id, "amount": 100, "event_date": utcnow()}
        )


def test_accept_and_decline_only_from_pending(db, client_user, musician):
    booking = make_booking(db, client_user, musician)
    booking_lifecycle.accept_booking(db, booking.id, musician)
    assert booking.status == BookingStatus.CONFIRMED
    with pytest.raises(BookingActionError) as exc:
        booking_lifecycle.decline_booking(db, booking.id, musician)
    assert exc.value.status_code == 409


def test_other_musician_cannot_accept(db, client_user, musician):
    booking = make_booking(db, client_user, musician)
    other = make_user(db, UserRole.MUSICIAN)
    with pytest.raises(PermissionError):
        booking_lifecycle.accept_booking(db, booking.id, other)


def test_cancel_paid_booking_refunds_wallet(db, client_user, musician):
    now = utcnow()
    wallet = make_wallet(db, client_user, 1000)
    booking = _paid(db, make_booking(db, client_user, musician), now)

    booking_lifecycle.cancel_booking(db, booking.id, client_user, "Venue closed", now)

    db.refresh(wallet)
    escrow = escrow_service.get_escrow(db, booking.id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.cancellation_category == "client_request"
    assert escrow.status == EscrowStatus.REFUNDED
    assert wallet.balance == Decimal("6000.00")
    refund = db.query(models.ClientWalletTransaction).filter_by(booking_id=booking.id).one()
    assert refund.type == WalletTransactionType.REFUND
    types = {n.type for n in db.query(models.Notification).all()}
    assert {"booking_cancelled", "booking_refunded"} <= types


def test_cancel_twice_rejected(db, client_user, musician):
    booking = make_booking(db, client_user, musician)
    booking_lifecycle.cancel_booking(db, booking.id, musician, None, utcnow())
    assert booking.cancellation_category == "musician_request"
    with pytest.raises(BookingActionError, match="already cancelled"):
        booking_lifecycle.cancel_booking(db, booking.id, client_user, None, utcnow())


def test_outsider_cannot_cancel(db, client_user, musician):
    booking = make_booking(db, client_user, musician)
    outsider = make_user(db)
    with pytest.raises(PermissionError):
        booking_lifecycle.cancel_booking(db, booking.id, outsider, None, utcnow())


@pytest.mark.parametrize(
    "days, payment_status, status, expected",
    [
        (-1, PaymentStatus.PAID, BookingStatus.CONFIRMED, True),
        (-1, PaymentStatus.PAID, BookingStatus.PENDING, True),
        (1, PaymentStatus.PAID, BookingStatus.CONFIRMED, False),
        (-1, PaymentStatus.UNPAID, BookingStatus.CONFIRMED, False),
        (-1, PaymentStatus.PAID, BookingStatus.COMPLETED, False),
        (-1, PaymentStatus.PAID, BookingStatus.CANCELLED, False),
        (-1, PaymentStatus.PAID, BookingStatus.DECLINED, False),
        (-1, PaymentStatus.REFUNDED, BookingStatus.CONFIRMED, False),
        (1, PaymentStatus.PAID, BookingStatus.PENDING, False),
        (1, PaymentStatus.PAID, BookingStatus.DECLINED, False),
        (1, PaymentStatus.PAID, BookingStatus.CANCELLED, False),
        (1, PaymentStatus.PAID, BookingStatus.COMPLETED, False),
        (1, PaymentStatus.UNPAID, BookingStatus.PENDING, False),
    ],
)
def test_can_mark_complete(days, payment_status, status, expected):
    now = utcnow()
    booking = models.Booking(
        event_date=now + timedelta(days=days),
        payment_status=payment_status,
        status=status,
    )
    assert booking_lifecycle.can_mark_complete(booking, now) is expected


def test_mark_complete_starts_release_window(db, client_user, musician):
    now = utcnow()
    booking = make_booking(db, client_user, musician, event_date=now - timedelta(hours=2))
    _paid(db, booking, now - timedelta(days=1))

    booking, escrow = booking_lifecycle.mark_complete(db, booking.id, musician, now)

    db.refresh(booking)
    assert booking.status == BookingStatus.COMPLETED
    assert booking.marked_complete_at == now
    assert booking.marked_complete_by == musician.id
    assert escrow.status == EscrowStatus.HELD
    assert escrow_service.auto_release_at(booking) == now + timedelta(hours=24)
    assert booking_lifecycle.release_countdown(booking, now) == 24 * 3600


def test_mark_complete_error_messages(db, client_user, musician):
    now = utcnow()
    unpaid = make_booking(db, client_user, musician, event_date=now - timedelta(hours=1))
    with pytest.raises(BookingActionError, match="must be paid"):
        booking_lifecycle.mark_complete(db, unpaid.id, musician, now)

    future = _paid(db, make_booking(db, client_user, musician), now)
    with pytest.raises(BookingActionError, match="before event date"):
        booking_lifecycle.mark_complete(db, future.id, musician, now)


def test_mark_complete_twice_fails(db, client_user, musician):
    now = utcnow()
    booking = _paid(db, make_booking(db, client_user, musician, event_date=now - timedelta(hours=1)), now)
    booking_lifecycle.mark_complete(db, booking.id, musician, now)
    with pytest.raises(BookingActionError) as exc:
        booking_lifecycle.mark_complete(db, booking.id, musician, now)
    assert exc.value.status_code == 409
    assert exc.value.message == "Booking already marked as complete"


def test_mark_complete_only_by_booked_musician(db, client_user, musician):
    now = utcnow()
    booking = _paid(db, make_booking(db, client_user, musician, event_date=now - timedelta(hours=1)), now)
    other = make_user(db, UserRole.MUSICIAN)
    with pytest.raises(PermissionError):
        booking_lifecycle.mark_complete(db, booking.id, other, now)
