from decimal import Decimal

import pytest

from amplygigs import models
from amplygigs.models import (
    BookingStatus,
    EscrowStatus,
    PaymentMethod,
    PaymentStatus,
    WalletTransactionStatus,
    WalletTransactionType,
    utcnow,
)
from amplygigs.services import booking_lifecycle, earnings as earnings_service, wallet as wallet_service
from amplygigs.services.exceptions import InsufficientFundsError, WalletError

from conftest import FakeGateway, auth, make_booking, make_user, make_wallet


def test_wallet_option_disabled_when_balance_short():
    options = {o.method: o for o in wallet_service.payment_options(5000, 8000)}
    assert options["wallet"].enabled is False
    assert options["wallet"].reason == "Insufficient wallet balance"
    assert options["direct"].enabled is True


def test_wallet_option_enabled_when_balance_covers_amount():
    options = {o.method: o for o in wallet_service.payment_options("8000", Decimal("8000"))}
    assert options["wallet"].enabled is True


@pytest.mark.parametrize("amount", ["99.99", "1000000.01", "abc"])
def test_deposit_bounds_checked_before_gateway(db, client_user, amount):
    gateway = FakeGateway()
    with pytest.raises(WalletError):
        wallet_service.start_deposit(db, client_user, amount, "NG", gateway)
    assert gateway.initialized == []
    assert db.query(models.ClientWalletTransaction).count() == 0


def test_deposit_route_by_country():
    assert wallet_service.deposit_route("ng") == ("paystack", "NGN")
    assert wallet_service.deposit_route("US") == ("paystack", "USD")
    assert wallet_service.deposit_route(None) == ("paystack", "USD")


def test_deposit_then_confirm_credits_once(db, client_user):
    gateway = FakeGateway()
    started = wallet_service.start_deposit(db, client_user, "2500", "NG", gateway)
    reference = started["reference"]
    assert started["currency"] == "NGN"
    assert gateway.initialized[0]["amount"] == Decimal("2500.00")
    assert reference.startswith(f"wallet_deposit_{client_user.id}_")

    gateway.amounts[reference] = Decimal("2500")
    tx = wallet_service.confirm_deposit(db, reference, gateway)
    assert tx.status == WalletTransactionStatus.COMPLETED
    again = wallet_service.confirm_deposit(db, reference, gateway)
    assert again.id == tx.id
    assert gateway.verified == [reference]

    wallet = wallet_service.get_wallet(db, client_user.id)
    assert wallet.balance == Decimal("2500.00")
    assert wallet.total_funded == Decimal("2500.00")
    assert db.query(models.Notification).filter_by(type="wallet_funded").count() == 1


def test_failed_deposit_marks_transaction_failed(db, client_user):
    gateway = FakeGateway()
    gateway.status = "failed"
    reference = wallet_service.start_deposit(db, client_user, 500, "NG", gateway)["reference"]
    with pytest.raises(WalletError, match="not successful"):
        wallet_service.confirm_deposit(db, reference, gateway)
    tx = db.query(models.ClientWalletTransaction).filter_by(reference=reference).one()
    assert tx.status == WalletTransactionStatus.FAILED
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("0.00")


def test_unknown_deposit_reference(db):
    with pytest.raises(LookupError):
        wallet_service.confirm_deposit(db, "wallet_deposit_nope", FakeGateway())


def test_pay_from_wallet_holds_escrow(db, client_user, musician):
    wallet = make_wallet(db, client_user, 10000)
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))

    escrow, wallet = wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())

    assert wallet.balance == Decimal("2000.00")
    assert wallet.total_spent == Decimal("8000.00")
    assert escrow.status == EscrowStatus.HELD
    assert escrow.gross_amount == Decimal("8000.00")
    assert escrow.net_amount == Decimal("6600.00")
    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.payment_method == PaymentMethod.WALLET
    assert booking.status == BookingStatus.CONFIRMED
    notified = {n.user_id: n.type for n in db.query(models.Notification).all()}
    assert notified == {musician.id: "payment_received", client_user.id: "payment_success"}


def test_pay_from_wallet_insufficient_balance(db, client_user, musician):
    make_wallet(db, client_user, 5000)
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))
    with pytest.raises(InsufficientFundsError):
        wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())
    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.UNPAID
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("5000.00")


def test_pay_from_wallet_twice_rejected(db, client_user, musician):
    make_wallet(db, client_user, 20000)
    booking = make_booking(db, client_user, musician)
    wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())
    with pytest.raises(WalletError, match="already paid"):
        wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("15000.00")


def test_pay_from_wallet_without_wallet(db, client_user, musician):
    booking = make_booking(db, client_user, musician)
    with pytest.raises(WalletError) as exc:
        wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())
    assert exc.value.status_code == 404


def test_direct_payment_round_trip(db, client_user, musician):
    gateway = FakeGateway()
    booking = make_booking(db, client_user, musician, amount=Decimal("100000"))
    started = wallet_service.start_direct_payment(db, client_user, booking.id, gateway)
    assert started["fees"]["musician_receives"] == 82500.0
    assert gateway.initialized[0]["metadata"]["booking_id"] == booking.id

    gateway.amounts[started["reference"]] = Decimal("100000")
    escrow = wallet_service.confirm_direct_payment(db, started["reference"], gateway, utcnow())
    assert escrow.platform_fee == Decimal("10000.00")
    assert booking.payment_method == PaymentMethod.DIRECT
    # Verifying again returns the same escrow without another provider call
    again = wallet_service.confirm_direct_payment(db, started["reference"], gateway, utcnow())
    assert again.id == escrow.id
    assert len(gateway.verified) == 1


def test_direct_payment_short_amount_rejected(db, client_user, musician):
    gateway = FakeGateway()
    booking = make_booking(db, client_user, musician, amount=Decimal("5000"))
    reference = wallet_service.start_direct_payment(db, client_user, booking.id, gateway)["reference"]
    gateway.amounts[reference] = Decimal("4000")
    with pytest.raises(WalletError, match="does not match"):
        wallet_service.confirm_direct_payment(db, reference, gateway, utcnow())
    assert db.query(models.EscrowTransaction).count() == 0


def test_payment_options_endpoint(client, db, client_user, musician):
    make_wallet(db, client_user, 5000)
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))
    res = client.get(f"/api/v1/bookings/{booking.id}/payment-options", headers=auth(client_user))
    assert res.status_code == 200
    body = res.json()
    assert body["wallet_balance"] == 5000.0
    options = {o["method"]: o["enabled"] for o in body["options"]}
    assert options == {"wallet": False, "direct": True}


def test_pay_from_wallet_endpoint(client, db, client_user, musician):
    make_wallet(db, client_user, 9000)
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))
    res = client.post("/api/v1/booking/pay-from-wallet", json={"bookingId": booking.id}, headers=auth(client_user))
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Payment successful"
    assert body["wallet"]["balance"] == 1000.0
    assert body["booking"]["payment_status"] == "paid"
    assert body["escrow"]["status"] == "held"

    res = client.post("/api/v1/booking/pay-from-wallet", json={"bookingId": booking.id}, headers=auth(client_user))
    assert res.status_code == 400
    assert res.json()["error"] == "Booking already paid"


def test_pay_from_wallet_endpoint_insufficient(client, db, client_user, musician):
    make_wallet(db, client_user, 5000)
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))
    res = client.post("/api/v1/booking/pay-from-wallet", json={"bookingId": booking.id}, headers=auth(client_user))
    assert res.status_code == 400
    assert res.json()["error"] == "Insufficient wallet balance"


def test_deposit_endpoint_and_verify(client, db, gateway, client_user):
    res = client.post("/api/v1/wallet/deposit", json={"amount": "50", "countryCode": "NG"}, headers=auth(client_user))
    assert res.status_code == 400
    assert res.json()["error"] == "Minimum deposit is ₦100"
    assert gateway.initialized == []

    res = client.post("/api/v1/wallet/deposit", json={"amount": "1500", "countryCode": "NG"}, headers=auth(client_user))
    assert res.status_code == 200
    reference = res.json()["reference"]
    assert res.json()["authorization_url"].endswith(reference)

    gateway.amounts[reference] = Decimal("1500")
    res = client.get("/api/v1/wallet/verify", params={"tx_ref": reference}, headers=auth(client_user))
    assert res.status_code == 200
    assert res.json()["wallet"]["balance"] == 1500.0

    res = client.get("/api/v1/wallet/transactions", headers=auth(client_user))
    txs = res.json()["transactions"]
    assert [t["status"] for t in txs] == ["completed"]


def test_wallet_endpoint_defaults_for_new_client(client, client_user):
    res = client.get("/api/v1/wallet", headers=auth(client_user))
    assert res.status_code == 200
    assert res.json()["wallet"]["balance"] == 0.0


class ConcurrentGateway(FakeGateway):
    """Lets a second request settle the same reference while the first is verifying."""

    def __init__(self, settle):
        super().__init__()
        self.settle = settle
        self.raced = False

    def verify(self, reference):
        if not self.raced:
            self.raced = True
            self.settle(reference, self)
        return super().verify(reference)


def test_concurrent_deposit_confirmations_credit_once(db, Session, client_user):
    def settle(reference, gateway):
        other = Session()
        try:
            wallet_service.confirm_deposit(other, reference, gateway)
        finally:
            other.close()

    gateway = ConcurrentGateway(settle)
    reference = wallet_service.start_deposit(db, client_user, "2500", "NG", gateway)["reference"]
    gateway.amounts[reference] = Decimal("2500")

    tx = wallet_service.confirm_deposit(db, reference, gateway)

    assert tx.status == WalletTransactionStatus.COMPLETED
    assert len(gateway.verified) == 2
    db.expire_all()
    wallet = wallet_service.get_wallet(db, client_user.id)
    assert wallet.balance == Decimal("2500.00")
    assert wallet.total_funded == Decimal("2500.00")
    assert db.query(models.Notification).filter_by(type="wallet_funded").count() == 1


def test_failed_deposit_is_not_verified_again(db, client_user):
    gateway = FakeGateway()
    gateway.status = "failed"
    reference = wallet_service.start_deposit(db, client_user, 500, "NG", gateway)["reference"]
    with pytest.raises(WalletError):
        wallet_service.confirm_deposit(db, reference, gateway)
    gateway.status = "success"
    with pytest.raises(WalletError, match="not successful"):
        wallet_service.confirm_deposit(db, reference, gateway)
    assert gateway.verified == [reference]


def test_concurrent_direct_confirmations_share_one_escrow(db, Session, client_user, musician):
    def settle(reference, gateway):
        other = Session()
        try:
            wallet_service.confirm_direct_payment(other, reference, gateway, utcnow())
        finally:
            other.close()

    gateway = ConcurrentGateway(settle)
    booking = make_booking(db, client_user, musician)
    reference = wallet_service.start_direct_payment(db, client_user, booking.id, gateway)["reference"]
    gateway.amounts[reference] = Decimal("5000")

    escrow = wallet_service.confirm_direct_payment(db, reference, gateway, utcnow())

    assert db.query(models.EscrowTransaction).count() == 1
    assert escrow.booking_id == booking.id
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.status == BookingStatus.CONFIRMED
    earnings = earnings_service.get_earnings(db, musician.id)
    assert earnings.pending_balance == Decimal("4125.00")


def test_direct_payment_after_decline_is_credited_to_wallet(db, client_user, musician):
    gateway = FakeGateway()
    booking = make_booking(db, client_user, musician)
    reference = wallet_service.start_direct_payment(db, client_user, booking.id, gateway)["reference"]
    booking_lifecycle.decline_booking(db, booking.id, musician)
    gateway.amounts[reference] = Decimal("5000")

    with pytest.raises(WalletError, match="added to your wallet") as exc:
        wallet_service.confirm_direct_payment(db, reference, gateway, utcnow())

    assert exc.value.status_code == 409
    db.refresh(booking)
    assert booking.status == BookingStatus.DECLINED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert db.query(models.EscrowTransaction).count() == 0
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("5000.00")
    refund = db.query(models.ClientWalletTransaction).filter_by(reference=f"refund_{reference}").one()
    assert refund.type == WalletTransactionType.REFUND
    assert db.query(models.Notification).filter_by(type="payment_refunded").count() == 1

    # A second verify neither asks the provider again nor credits twice
    with pytest.raises(WalletError) as again:
        wallet_service.confirm_direct_payment(db, reference, gateway, utcnow())
    assert again.value.status_code == 409
    assert gateway.verified == [reference]
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("5000.00")


def test_pay_from_wallet_rejects_booking_declined_meanwhile(db, Session, client_user, musician):
    make_wallet(db, client_user, 10000)
    booking = make_booking(db, client_user, musician)
    other = Session()
    try:
        booking_lifecycle.decline_booking(other, booking.id, other.get(models.UserProfile, musician.id))
    finally:
        other.close()

    with pytest.raises(WalletError, match="no longer payable") as exc:
        wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())

    assert exc.value.status_code == 409
    db.expire_all()
    assert booking.status == BookingStatus.DECLINED
    assert booking.payment_status == PaymentStatus.UNPAID
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("10000.00")
    assert db.query(models.EscrowTransaction).count() == 0


def test_wallet_option_disabled_for_other_currency():
    options = {o.method: o for o in wallet_service.payment_options(50000, 8000, "USD", "NGN")}
    assert options["wallet"].enabled is False
    assert options["wallet"].reason == "Wallet currency does not match booking currency"
    assert options["direct"].enabled is True


def test_pay_from_wallet_rejects_currency_mismatch(db, client_user, musician):
    wallet = make_wallet(db, client_user, 50000)
    wallet.currency = "USD"
    db.commit()
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))

    with pytest.raises(WalletError, match="priced in NGN"):
        wallet_service.pay_from_wallet(db, client_user, booking.id, utcnow())

    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.UNPAID
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("50000.00")


def test_payment_options_endpoint_flags_currency(client, db, client_user, musician):
    wallet = make_wallet(db, client_user, 50000)
    wallet.currency = "USD"
    db.commit()
    booking = make_booking(db, client_user, musician, amount=Decimal("8000"))
    res = client.get(f"/api/v1/bookings/{booking.id}/payment-options", headers=auth(client_user))
    wallet_option = next(o for o in res.json()["options"] if o["method"] == "wallet")
    assert wallet_option == {
        "method": "wallet",
        "enabled": False,
        "reason": "Wallet currency does not match booking currency",
    }


def test_verify_deposit_of_another_client_rejected_before_provider(client, db, gateway, client_user):
    reference = wallet_service.start_deposit(db, client_user, "1500", "NG", FakeGateway())["reference"]
    intruder = make_user(db)
    res = client.get("/api/v1/wallet/verify", params={"tx_ref": reference}, headers=auth(intruder))
    assert res.status_code == 403
    assert gateway.verified == []
    tx = db.query(models.ClientWalletTransaction).filter_by(reference=reference).one()
    assert tx.status == WalletTransactionStatus.PENDING


def test_verify_payment_of_another_client_rejected_before_provider(client, db, gateway, client_user, musician):
    booking = make_booking(db, client_user, musician)
    reference = wallet_service.start_direct_payment(db, client_user, booking.id, FakeGateway())["reference"]
    intruder = make_user(db)
    res = client.get("/api/v1/pay/verify", params={"reference": reference}, headers=auth(intruder))
    assert res.status_code == 403
    assert gateway.verified == []
    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.UNPAID
    assert db.query(models.EscrowTransaction).count() == 0


def test_verify_payment_endpoint_after_cancel(client, db, gateway, client_user, musician):
    booking = make_booking(db, client_user, musician)
    reference = wallet_service.start_direct_payment(db, client_user, booking.id, gateway)["reference"]
    gateway.amounts[reference] = Decimal("5000")
    res = client.post(
        f"/api/v1/bookings/{booking.id}/cancel", json={"reason": "Plans changed"}, headers=auth(client_user)
    )
    assert res.status_code == 200

    res = client.get("/api/v1/pay/verify", params={"reference": reference}, headers=auth(client_user))
    assert res.status_code == 409
    assert res.json()["error"] == "This booking can no longer be paid. Your payment was added to your wallet."
    db.expire_all()
    assert booking.status == BookingStatus.CANCELLED
    assert wallet_service.get_wallet(db, client_user.id).balance == Decimal("5000.00")
