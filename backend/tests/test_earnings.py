from datetime import timedelta
from decimal import Decimal

import pytest

from amplygigs import models
from amplygigs.models import BookingStatus, PaymentStatus, ReleaseType, WithdrawalStatus, utcnow
from amplygigs.services import booking_lifecycle, earnings as earnings_service, escrow as escrow_service
from amplygigs.services import wallet as wallet_service
from amplygigs.services.exceptions import EarningsError, InsufficientFundsError

from conftest import auth, make_booking, make_wallet


def _completed(db, client_user, musician, amount=Decimal("100000")):
    completed_at = utcnow() - timedelta(hours=1)
    booking = make_booking(
        db, client_user, musician, amount=amount, event_date=completed_at - timedelta(hours=4)
    )
    escrow_service.hold_for_booking(db, booking, completed_at - timedelta(days=2))
    booking.payment_status = PaymentStatus.PAID
    booking.status = BookingStatus.COMPLETED
    booking.marked_complete_at = completed_at
    booking.marked_complete_by = musician.id
    db.commit()
    db.refresh(booking)
    return booking


def _released(db, client_user, musician, amount=Decimal("100000")):
    booking = _completed(db, client_user, musician, amount)
    escrow_service.release_escrow(
        db,
        booking.id,
        released_by=client_user.id,
        release_type=ReleaseType.MANUAL_CLIENT,
        now=utcnow(),
        client_id=client_user.id,
    )
    return booking


def test_held_escrow_is_pending_until_released(db, client_user, musician):
    booking = _completed(db, client_user, musician)
    earnings = earnings_service.get_earnings(db, musician.id)
    assert earnings.pending_balance == Decimal("82500.00")
    assert earnings.available_balance == Decimal("0.00")

    escrow_service.release_escrow(
        db,
        booking.id,
        released_by=client_user.id,
        release_type=ReleaseType.MANUAL_CLIENT,
        now=utcnow(),
        client_id=client_user.id,
    )

    db.refresh(earnings)
    assert earnings.pending_balance == Decimal("0.00")
    assert earnings.available_balance == Decimal("82500.00")
    assert earnings.total_earned == Decimal("82500.00")
    notice = db.query(models.Notification).filter_by(user_id=musician.id, type="funds_released").one()
    assert notice.message.endswith("is now available for withdrawal.")


def test_cancelled_paid_booking_leaves_pending(db, client_user, musician):
    make_wallet(db, client_user, 10000)
    booking = make_booking(db, client_user, musician)
    wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())
    assert earnings_service.get_earnings(db, musician.id).pending_balance == Decimal("4125.00")

    booking_lifecycle.cancel_booking(db, booking.id, client_user, "Venue closed", utcnow())

    earnings = earnings_service.get_earnings(db, musician.id)
    db.refresh(earnings)
    assert earnings.pending_balance == Decimal("0.00")
    assert earnings.total_earned == Decimal("0.00")
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("10000.00")


def test_withdrawal_reserves_available_balance(db, client_user, musician):
    _released(db, client_user, musician)

    withdrawal = earnings_service.request_withdrawal(
        db, musician, "50000", "GTBank", "0123456789", utcnow()
    )

    assert withdrawal.status == WithdrawalStatus.PENDING
    assert withdrawal.withdrawal_fee == Decimal("50.00")
    assert withdrawal.net_amount == Decimal("49950.00")
    assert withdrawal.reference.startswith(f"WD_{musician.id[:8]}_")
    earnings = earnings_service.get_earnings(db, musician.id)
    assert earnings.available_balance == Decimal("32500.00")
    assert earnings.pending_withdrawals == Decimal("50000.00")
    assert db.query(models.Notification).filter_by(type="withdrawal_requested").count() == 1


@pytest.mark.parametrize(
    "amount, error",
    [("abc", "Invalid amount"), ("999.99", "Minimum withdrawal is ₦1,000")],
)
def test_withdrawal_amount_checked(db, musician, amount, error):
    with pytest.raises(EarningsError, match=error):
        earnings_service.request_withdrawal(db, musician, amount, "GTBank", "0123456789", utcnow())


def test_withdrawal_limited_to_available_balance(db, client_user, musician):
    _completed(db, client_user, musician)
    # Pending earnings cannot be withdrawn
    with pytest.raises(InsufficientFundsError):
        earnings_service.request_withdrawal(db, musician, "5000", "GTBank", "0123456789", utcnow())
    assert db.query(models.Withdrawal).count() == 0


def test_withdrawal_without_earnings(db, musician):
    with pytest.raises(EarningsError) as exc:
        earnings_service.request_withdrawal(db, musician, "5000", "GTBank", "0123456789", utcnow())
    assert exc.value.status_code == 404


def test_earnings_endpoints(client, db, client_user, musician):
    res = client.get("/api/v1/earnings", headers=auth(musician))
    assert res.status_code == 200
    assert res.json()["earnings"]["available_balance"] == 0.0

    _released(db, client_user, musician)
    res = client.post(
        "/api/v1/withdrawals",
        json={"amount": 20000, "bank_name": "Access Bank", "account_number": "0123456789"},
        headers=auth(musician),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["message"] == "Withdrawal requested"
    assert body["withdrawal"]["status"] == "pending"
    assert body["earnings"]["available_balance"] == 62500.0

    res = client.get("/api/v1/withdrawals", headers=auth(musician))
    assert [w["bank_name"] for w in res.json()["withdrawals"]] == ["Access Bank"]

    res = client.post(
        "/api/v1/withdrawals",
        json={"amount": 20000, "bank_name": "Access Bank", "account_number": "12345"},
        headers=auth(musician),
    )
    assert res.status_code == 422


def test_earnings_endpoints_for_musicians_only(client, client_user):
    assert client.get("/api/v1/earnings", headers=auth(client_user)).status_code == 403
