"""Musician earnings ledger and withdrawal requests.

Net pay moves through two buckets. It enters ``pending_balance`` when a
booking's escrow is held, moves to ``available_balance`` when the escrow is
released, and leaves ``pending_balance`` again if the escrow is refunded.
Every change is a single SQL update so concurrent escrow events never lose
a write. None of the ledger helpers commit; they run inside the caller's
transaction so the escrow row and the ledger always agree.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..database import transaction
from ..models import WithdrawalStatus
from ..utils.notifications import notify
from .exceptions import EarningsError, InsufficientFundsError
from .fees import format_money, quantize, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def get_earnings(db: Session, musician_id: str) -> Optional[models.MusicianWallet]:
    return db.query(models.MusicianWallet).filter(models.MusicianWallet.musician_id == musician_id).first()


def get_or_create_earnings(db: Session, musician_id: str, currency: Optional[str] = None) -> models.MusicianWallet:
    wallet = get_earnings(db, musician_id)
    if wallet is None:
        wallet = models.MusicianWallet(
            musician_id=musician_id,
            pending_balance=ZERO,
            available_balance=ZERO,
            total_earned=ZERO,
            pending_withdrawals=ZERO,
            total_withdrawn=ZERO,
            currency=(currency or settings.DEFAULT_CURRENCY).upper(),
        )
        db.add(wallet)
        db.flush()
    return wallet


def _apply(db: Session, wallet: models.MusicianWallet, changes: dict[Any, Any]) -> None:
    db.query(models.MusicianWallet).filter(models.MusicianWallet.id == wallet.id).update(
        changes, synchronize_session=False
    )
    db.refresh(wallet)


def record_hold(db: Session, escrow: models.EscrowTransaction) -> models.MusicianWallet:
    """Net pay for a freshly held escrow becomes pending."""
    wallet = get_or_create_earnings(db, escrow.musician_id, escrow.currency)
    net = quantize(to_decimal(escrow.net_amount))
    _apply(db, wallet, {models.MusicianWallet.pending_balance: models.MusicianWallet.pending_balance + net})
    return wallet


def record_release(db: Session, escrow: models.EscrowTransaction) -> models.MusicianWallet:
    """Released net pay moves from pending to withdrawable."""
    wallet = get_or_create_earnings(db, escrow.musician_id, escrow.currency)
    net = quantize(to_decimal(escrow.net_amount))
    _apply(
        db,
        wallet,
        {
            models.MusicianWallet.pending_balance: models.MusicianWallet.pending_balance - net,
            models.MusicianWallet.available_balance: models.MusicianWallet.available_balance + net,
            models.MusicianWallet.total_earned: models.MusicianWallet.total_earned + net,
        },
    )
    logger.info("Musician %s earnings +%s available (escrow %s)", escrow.musician_id, net, escrow.id)
    return wallet


def record_refund(db: Session, escrow: models.EscrowTransaction) -> models.MusicianWallet:
    wallet = get_or_create_earnings(db, escrow.musician_id, escrow.currency)
    net = quantize(to_decimal(escrow.net_amount))
    _apply(db, wallet, {models.MusicianWallet.pending_balance: models.MusicianWallet.pending_balance - net})
    return wallet


def earnings_summary(wallet: Optional[models.MusicianWallet]) -> dict[str, Any]:
    if wallet is None:
        return {
            "pending_balance": 0.0,
            "available_balance": 0.0,
            "total_earned": 0.0,
            "pending_withdrawals": 0.0,
            "total_withdrawn": 0.0,
            "currency": settings.DEFAULT_CURRENCY,
        }
    return {
        "pending_balance": float(wallet.pending_balance or 0),
        "available_balance": float(wallet.available_balance or 0),
        "total_earned": float(wallet.total_earned or 0),
        "pending_withdrawals": float(wallet.pending_withdrawals or 0),
        "total_withdrawn": float(wallet.total_withdrawn or 0),
        "currency": wallet.currency,
    }


def list_withdrawals(db: Session, musician_id: str, limit: int = 50) -> list[models.Withdrawal]:
    return (
        db.query(models.Withdrawal)
        .filter(models.Withdrawal.musician_id == musician_id)
        .order_by(models.Withdrawal.id.desc())
        .limit(limit)
        .all()
    )


def request_withdrawal(
    db: Session,
    musician: models.UserProfile,
    amount: Any,
    bank_name: str,
    account_number: str,
    now: datetime,
) -> models.Withdrawal:
    """Reserve ``amount`` of the available balance for a payout.

    The flat ``WITHDRAWAL_FEE`` comes out of the payout, so the musician
    receives ``amount - fee``. The payout itself is sent by the operations
    team; the request stays ``pending`` until then.
    """
    try:
        value = quantize(to_decimal(amount))
    except ValueError as exc:
        raise EarningsError("Invalid amount") from exc
    if value < settings.MIN_WITHDRAWAL:
        raise EarningsError(f"Minimum withdrawal is {format_money(settings.MIN_WITHDRAWAL)}")
    wallet = get_earnings(db, musician.id)
    if wallet is None:
        raise EarningsError("Wallet not found", status_code=404)
    fee = quantize(settings.WITHDRAWAL_FEE)
    with transaction(db):
        # Conditional update so two requests cannot both spend the same balance
        updated = (
            db.query(models.MusicianWallet)
            .filter(models.MusicianWallet.id == wallet.id, models.MusicianWallet.available_balance >= value)
            .update(
                {
                    models.MusicianWallet.available_balance: models.MusicianWallet.available_balance - value,
                    models.MusicianWallet.pending_withdrawals: models.MusicianWallet.pending_withdrawals + value,
                    models.MusicianWallet.last_withdrawal_at: now,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise InsufficientFundsError("Insufficient available balance")
        withdrawal = models.Withdrawal(
            wallet_id=wallet.id,
            musician_id=musician.id,
            amount=value,
            withdrawal_fee=fee,
            net_amount=value - fee,
            currency=wallet.currency,
            status=WithdrawalStatus.PENDING,
            reference=f"WD_{musician.id[:8]}_{int(time.time() * 1000)}",
            bank_name=bank_name,
            account_number=account_number,
        )
        db.add(withdrawal)
        db.flush()
        notify(
            db,
            musician.id,
            "withdrawal_requested",
            "Withdrawal Requested",
            f"Your withdrawal of {format_money(value - fee, wallet.currency)} to {bank_name} is being processed.",
            {"withdrawal_id": withdrawal.id},
            category="payment",
        )
    db.refresh(wallet)
    logger.info("Withdrawal %s of %s requested by musician %s", withdrawal.reference, value, musician.id)
    return withdrawal
