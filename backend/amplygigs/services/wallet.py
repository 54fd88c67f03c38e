"""Client wallet: deposits, pay-from-wallet and refunds.

The balance only moves here. Deposits credit it once the payment provider
confirms the charge; pay-from-wallet debits it in the same transaction that
creates the held escrow and marks the booking paid.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..database import transaction
from ..models import (
    BookingStatus,
    EscrowStatus,
    PaymentMethod,
    PaymentStatus,
    WalletTransactionStatus,
    WalletTransactionType,
)
from ..utils.notifications import notify
from ..utils.redis_cache import invalidate_bookings_cache
from . import booking_lifecycle
from . import earnings as earnings_service
from . import escrow as escrow_service
from .exceptions import InsufficientFundsError, WalletError
from .fees import compute_fee_breakdown, format_money, quantize, to_decimal
from .payment_gateway import PaystackGateway

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class PaymentOption:
    method: str
    enabled: bool
    reason: Optional[str] = None


def validate_deposit_amount(amount: Any) -> Decimal:
    """Return ``amount`` as Decimal or raise before anything touches the network."""
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise WalletError("Invalid amount") from exc
    if value < settings.MIN_DEPOSIT:
        raise WalletError(f"Minimum deposit is ₦{int(settings.MIN_DEPOSIT):,}")
    if value > settings.MAX_DEPOSIT:
        raise WalletError(f"Maximum deposit is ₦{int(settings.MAX_DEPOSIT):,}")
    return quantize(value)


def payment_options(
    balance: Any,
    amount: Any,
    wallet_currency: Optional[str] = None,
    currency: Optional[str] = None,
) -> list[PaymentOption]:
    """Wallet is selectable only when it covers the full amount in the booking's
    currency; direct always is."""
    bal = to_decimal(balance or 0)
    due = to_decimal(amount)
    if wallet_currency and currency and wallet_currency.upper() != currency.upper():
        reason: Optional[str] = "Wallet currency does not match booking currency"
    elif bal < due:
        reason = "Insufficient wallet balance"
    else:
        reason = None
    return [
        PaymentOption(method=PaymentMethod.WALLET.value, enabled=reason is None, reason=reason),
        PaymentOption(method=PaymentMethod.DIRECT.value, enabled=True),
    ]


def deposit_route(country_code: Optional[str]) -> tuple[str, str]:
    """Return (provider, currency) for a depositor's country."""
    if (country_code or "").upper() == "NG":
        return "paystack", "NGN"
    return "paystack", "USD"


def get_wallet(db: Session, client_id: str) -> Optional[models.ClientWallet]:
    return db.query(models.ClientWallet).filter(models.ClientWallet.client_id == client_id).first()


def get_or_create_wallet(db: Session, client_id: str, currency: Optional[str] = None) -> models.ClientWallet:
    wallet = get_wallet(db, client_id)
    if wallet is None:
        wallet = models.ClientWallet(
            client_id=client_id,
            balance=ZERO,
            total_funded=ZERO,
            total_spent=ZERO,
            pending_payments=ZERO,
            currency=(currency or settings.DEFAULT_CURRENCY).upper(),
        )
        db.add(wallet)
        db.flush()
    return wallet


def wallet_summary(wallet: Optional[models.ClientWallet]) -> dict[str, Any]:
    if wallet is None:
        return {
            "balance": 0.0,
            "total_funded": 0.0,
            "total_spent": 0.0,
            "pending_payments": 0.0,
            "currency": settings.DEFAULT_CURRENCY,
        }
    return {
        "balance": float(wallet.balance or 0),
        "total_funded": float(wallet.total_funded or 0),
        "total_spent": float(wallet.total_spent or 0),
        "pending_payments": float(wallet.pending_payments or 0),
        "currency": wallet.currency,
    }


def list_transactions(db: Session, client_id: str, limit: int = 50) -> list[models.ClientWalletTransaction]:
    return (
        db.query(models.ClientWalletTransaction)
        .filter(models.ClientWalletTransaction.client_id == client_id)
        .order_by(models.ClientWalletTransaction.id.desc())
        .limit(limit)
        .all()
    )


def start_deposit(
    db: Session,
    client: models.UserProfile,
    amount: Any,
    country_code: Optional[str],
    gateway: PaystackGateway,
) -> dict[str, Any]:
    value = validate_deposit_amount(amount)
    provider, currency = deposit_route(country_code or client.country_code)
    reference = f"wallet_deposit_{client.id}_{int(time.time() * 1000)}"
    with transaction(db):
        wallet = get_or_create_wallet(db, client.id, currency)
        db.add(
            models.ClientWalletTransaction(
                wallet_id=wallet.id,
                client_id=client.id,
                type=WalletTransactionType.DEPOSIT,
                amount=value,
                status=WalletTransactionStatus.PENDING,
                reference=reference,
                provider=provider,
                description="Wallet deposit",
            )
        )
    init = gateway.initialize(
        email=client.email or f"{client.id}@users.amplygigs.local",
        amount=value,
        currency=currency,
        reference=reference,
        callback_url=f"{settings.APP_URL.rstrip('/')}/wallet/verify?tx_ref={reference}",
        metadata={"purpose": "wallet_deposit", "client_id": client.id},
    )
    logger.info("Wallet deposit %s started for client %s (%s %s)", reference, client.id, value, currency)
    return {
        "reference": init.reference,
        "authorization_url": init.authorization_url,
        "provider": provider,
        "currency": currency,
        "amount": float(value),
    }


def _credit(db: Session, wallet: models.ClientWallet, amount: Decimal, funded: bool = False) -> None:
    changes: dict[Any, Any] = {models.ClientWallet.balance: models.ClientWallet.balance + amount}
    if funded:
        changes[models.ClientWallet.total_funded] = models.ClientWallet.total_funded + amount
    db.query(models.ClientWallet).filter(models.ClientWallet.id == wallet.id).update(
        changes, synchronize_session=False
    )
    db.refresh(wallet)


def _claim_deposit(db: Session, tx: models.ClientWalletTransaction, values: dict[Any, Any]) -> bool:
    """Move a pending deposit on; False when another request already settled it."""
    updated = (
        db.query(models.ClientWalletTransaction)
        .filter(
            models.ClientWalletTransaction.id == tx.id,
            models.ClientWalletTransaction.status == WalletTransactionStatus.PENDING,
        )
        .update(values, synchronize_session=False)
    )
    db.refresh(tx)
    return bool(updated)


def confirm_deposit(
    db: Session,
    reference: str,
    gateway: PaystackGateway,
    client_id: Optional[str] = None,
) -> models.ClientWalletTransaction:
    """Verify a deposit with the provider and credit the wallet once.

    When ``client_id`` is given the deposit must belong to that client; this is
    checked before the provider is asked about it.
    """
    tx = (
        db.query(models.ClientWalletTransaction)
        .filter(
            models.ClientWalletTransaction.reference == reference,
            models.ClientWalletTransaction.type == WalletTransactionType.DEPOSIT,
        )
        .first()
    )
    if tx is None:
        raise LookupError("Deposit not found")
    if client_id is not None and tx.client_id != client_id:
        raise PermissionError("Not your deposit")
    if tx.status == WalletTransactionStatus.COMPLETED:
        return tx
    if tx.status == WalletTransactionStatus.FAILED:
        raise WalletError("Payment not successful")
    result = gateway.verify(reference)
    if not result.successful:
        with transaction(db):
            _claim_deposit(db, tx, {models.ClientWalletTransaction.status: WalletTransactionStatus.FAILED})
        logger.warning("Wallet deposit %s not successful: %s", reference, result.status)
        if tx.status == WalletTransactionStatus.COMPLETED:
            return tx
        raise WalletError("Payment not successful")
    credited = quantize(result.amount) if result.amount > 0 else quantize(to_decimal(tx.amount))
    with transaction(db):
        claimed = _claim_deposit(
            db,
            tx,
            {
                models.ClientWalletTransaction.status: WalletTransactionStatus.COMPLETED,
                models.ClientWalletTransaction.amount: credited,
            },
        )
        if claimed:
            wallet = db.get(models.ClientWallet, tx.wallet_id)
            _credit(db, wallet, credited, funded=True)
            tx.balance_after = wallet.balance
            notify(
                db,
                tx.client_id,
                "wallet_funded",
                "Wallet Funded",
                f"{format_money(credited, wallet.currency)} was added to your wallet.",
                {"reference": reference},
                category="payment",
            )
    if not claimed:
        logger.info("Wallet deposit %s already settled by another request", reference)
        if tx.status != WalletTransactionStatus.COMPLETED:
            raise WalletError("Payment not successful")
        return tx
    logger.info("Wallet deposit %s credited %s", reference, credited)
    return tx


def _debit(db: Session, wallet: models.ClientWallet, amount: Decimal) -> None:
    # Conditional update so concurrent debits can never overdraw
    updated = (
        db.query(models.ClientWallet)
        .filter(models.ClientWallet.id == wallet.id, models.ClientWallet.balance >= amount)
        .update(
            {
                models.ClientWallet.balance: models.ClientWallet.balance - amount,
                models.ClientWallet.total_spent: models.ClientWallet.total_spent + amount,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        raise InsufficientFundsError("Insufficient wallet balance")
    db.refresh(wallet)


OPEN_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def _claim_payment(
    db: Session, booking: models.Booking, method: PaymentMethod, reference: str, now: datetime
) -> bool:
    """Mark an unpaid, still open booking paid and confirm it.

    Returns False when the booking was paid by another request or was
    declined or cancelled in the meantime.
    """
    updated = (
        db.query(models.Booking)
        .filter(
            models.Booking.id == booking.id,
            models.Booking.payment_status == PaymentStatus.UNPAID,
            models.Booking.status.in_(OPEN_STATUSES),
        )
        .update(
            {
                models.Booking.payment_status: PaymentStatus.PAID,
                models.Booking.payment_method: method,
                models.Booking.payment_reference: reference,
                models.Booking.paid_at: now,
            },
            synchronize_session=False,
        )
    )
    db.refresh(booking)
    if not updated:
        return False
    if booking.status == BookingStatus.PENDING:
        booking_lifecycle.set_status(booking, BookingStatus.CONFIRMED)
    return True


def _notify_paid(db: Session, booking: models.Booking, escrow: models.EscrowTransaction) -> None:
    notify(
        db,
        booking.musician_id,
        "payment_received",
        "Payment Received",
        f"{format_money(escrow.gross_amount, escrow.currency)} for booking #{booking.id} is held in escrow. "
        f"You will receive {format_money(escrow.net_amount, escrow.currency)} after the gig.",
        {"booking_id": booking.id, "escrow_id": escrow.id},
        category="payment",
    )
    notify(
        db,
        booking.client_id,
        "payment_success",
        "Payment Successful",
        f"Your payment for booking #{booking.id} was successful and is held in escrow.",
        {"booking_id": booking.id, "escrow_id": escrow.id},
        category="payment",
    )


def _payable_booking(db: Session, client_id: str, booking_id: int) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise LookupError("Booking not found")
    if booking.client_id != client_id:
        raise PermissionError("Not your booking")
    if booking.payment_status == PaymentStatus.PAID or escrow_service.get_escrow(db, booking.id):
        raise WalletError("Booking already paid")
    if booking.status in (BookingStatus.DECLINED, BookingStatus.CANCELLED, BookingStatus.COMPLETED):
        raise WalletError(f"Cannot pay for a {booking.status.value} booking")
    return booking


def pay_from_wallet(
    db: Session,
    client: models.UserProfile,
    booking_id: int,
    now: datetime,
) -> tuple[models.EscrowTransaction, models.ClientWallet]:
    """Debit the wallet, hold escrow and mark the booking paid, atomically."""
    booking = _payable_booking(db, client.id, booking_id)
    wallet = get_wallet(db, client.id)
    if wallet is None:
        raise WalletError("Wallet not found. Please add funds first.", status_code=404)
    if (wallet.currency or "").upper() != (booking.currency or "").upper():
        raise WalletError(
            f"Wallet is in {wallet.currency} but this booking is priced in {booking.currency}. "
            "Please pay directly instead."
        )
    amount = quantize(to_decimal(booking.amount))
    if to_decimal(wallet.balance) < amount:
        raise InsufficientFundsError("Insufficient wallet balance")
    reference = f"wallet_{booking.id}_{int(time.time() * 1000)}"
    with transaction(db):
        if not _claim_payment(db, booking, PaymentMethod.WALLET, reference, now):
            raise WalletError("Booking is no longer payable", status_code=409)
        _debit(db, wallet, amount)
        db.add(
            models.ClientWalletTransaction(
                wallet_id=wallet.id,
                client_id=client.id,
                type=WalletTransactionType.PAYMENT,
                amount=amount,
                balance_after=wallet.balance,
                status=WalletTransactionStatus.COMPLETED,
                reference=reference,
                provider="wallet",
                booking_id=booking.id,
                description=f"Payment for booking #{booking.id}",
            )
        )
        escrow = escrow_service.hold_for_booking(db, booking, now)
        _notify_paid(db, booking, escrow)
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Booking %s paid from wallet %s (escrow %s)", booking.id, wallet.id, escrow.id)
    db.refresh(wallet)
    return escrow, wallet


def start_direct_payment(
    db: Session,
    client: models.UserProfile,
    booking_id: int,
    gateway: PaystackGateway,
) -> dict[str, Any]:
    booking = _payable_booking(db, client.id, booking_id)
    fees = compute_fee_breakdown(booking.amount, booking.currency)
    reference = f"amply_{booking.id}_{int(time.time() * 1000)}"
    init = gateway.initialize(
        email=client.email or f"{client.id}@users.amplygigs.local",
        amount=fees.amount,
        currency=fees.currency,
        reference=reference,
        callback_url=f"{settings.APP_URL.rstrip('/')}/bookings/{booking.id}?payment=verify&reference={reference}",
        metadata={
            "purpose": "booking_payment",
            "booking_id": booking.id,
            "client_id": client.id,
            "musician_id": booking.musician_id,
            "platform_fee": float(fees.platform_fee),
        },
    )
    with transaction(db):
        booking.payment_reference = init.reference
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Direct payment %s started for booking %s", init.reference, booking.id)
    return {
        "reference": init.reference,
        "authorization_url": init.authorization_url,
        "fees": fees.as_dict(),
    }


def _refund_unpayable(db: Session, booking: models.Booking, reference: str, amount: Decimal) -> bool:
    """Credit a charge for a booking that closed before it was paid (no commit).

    Returns False when another request already refunded it.
    """
    updated = (
        db.query(models.Booking)
        .filter(models.Booking.id == booking.id, models.Booking.payment_status == PaymentStatus.UNPAID)
        .update({models.Booking.payment_status: PaymentStatus.REFUNDED}, synchronize_session=False)
    )
    db.refresh(booking)
    if not updated:
        return False
    wallet = get_or_create_wallet(db, booking.client_id, booking.currency)
    _credit(db, wallet, amount)
    db.add(
        models.ClientWalletTransaction(
            wallet_id=wallet.id,
            client_id=booking.client_id,
            type=WalletTransactionType.REFUND,
            amount=amount,
            balance_after=wallet.balance,
            status=WalletTransactionStatus.COMPLETED,
            reference=f"refund_{reference}",
            provider="wallet",
            booking_id=booking.id,
            description=f"Refund for booking #{booking.id}",
        )
    )
    notify(
        db,
        booking.client_id,
        "payment_refunded",
        "Payment Refunded",
        f"Booking #{booking.id} is {booking.status.value}, so your payment of "
        f"{format_money(amount, wallet.currency)} was added to your wallet.",
        {"booking_id": booking.id, "reference": reference},
        category="payment",
    )
    return True


def confirm_direct_payment(
    db: Session,
    reference: str,
    gateway: PaystackGateway,
    now: datetime,
    client_id: Optional[str] = None,
) -> models.EscrowTransaction:
    """Verify a card payment and hold it in escrow.

    If the booking was declined or cancelled while the client was at the
    checkout, the charge is credited to their wallet and a 409 is raised.
    Repeat calls for a settled reference return the existing escrow.
    """
    booking = db.query(models.Booking).filter(models.Booking.payment_reference == reference).first()
    if booking is None:
        raise LookupError("Booking not found for payment reference")
    if client_id is not None and booking.client_id != client_id:
        raise PermissionError("Not your payment")
    existing = escrow_service.get_escrow(db, booking.id)
    if existing is not None:
        return existing
    if booking.payment_status == PaymentStatus.REFUNDED:
        raise WalletError("This booking can no longer be paid", status_code=409)
    result = gateway.verify(reference)
    if not result.successful:
        raise WalletError("Payment not successful")
    due = quantize(to_decimal(booking.amount))
    if result.amount and quantize(result.amount) < due:
        logger.error("Payment %s amount %s below booking amount %s", reference, result.amount, booking.amount)
        raise WalletError("Payment amount does not match booking")
    charged = quantize(result.amount) if result.amount else due
    escrow = None
    refunded = False
    with transaction(db):
        if _claim_payment(db, booking, PaymentMethod.DIRECT, reference, now):
            escrow = escrow_service.hold_for_booking(db, booking, now)
            _notify_paid(db, booking, escrow)
        else:
            escrow = escrow_service.get_escrow(db, booking.id)
            if escrow is None:
                refunded = _refund_unpayable(db, booking, reference, charged)
    invalidate_bookings_cache(booking.participant_ids())
    if escrow is not None:
        return escrow
    if refunded:
        logger.warning(
            "Payment %s arrived for %s booking %s; credited to wallet",
            reference,
            booking.status.value,
            booking.id,
        )
        raise WalletError(
            "This booking can no longer be paid. Your payment was added to your wallet.",
            status_code=409,
        )
    raise WalletError("This booking can no longer be paid", status_code=409)


def refund_booking_to_wallet(db: Session, booking: models.Booking, now: datetime) -> Optional[models.EscrowTransaction]:
    """Return a held escrow to the client's wallet (no commit).

    Used when a paid booking is cancelled. Returns ``None`` when nothing is held.
    """
    escrow = escrow_service.get_escrow(db, booking.id)
    if escrow is None or escrow.status != EscrowStatus.HELD:
        return None
    wallet = get_or_create_wallet(db, booking.client_id, escrow.currency)
    gross = quantize(to_decimal(escrow.gross_amount))
    _credit(db, wallet, gross)
    escrow.status = EscrowStatus.REFUNDED
    escrow.refunded_at = now
    booking.payment_status = PaymentStatus.REFUNDED
    earnings_service.record_refund(db, escrow)
    db.add(
        models.ClientWalletTransaction(
            wallet_id=wallet.id,
            client_id=booking.client_id,
            type=WalletTransactionType.REFUND,
            amount=gross,
            balance_after=wallet.balance,
            status=WalletTransactionStatus.COMPLETED,
            reference=f"refund_{booking.id}_{int(time.time() * 1000)}",
            provider="wallet",
            booking_id=booking.id,
            description=f"Refund for booking #{booking.id}",
        )
    )
    return escrow
