from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MusicianWallet(BaseModel):
    """Musician earnings ledger.

    ``pending_balance`` is net pay still held in escrow; ``available_balance``
    is released pay the musician may withdraw.
    """

    __tablename__ = "musician_wallets"

    id = Column(Integer, primary_key=True, index=True)
    musician_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, unique=True, index=True)
    pending_balance = Column(Numeric(12, 2), nullable=False, default=0)
    available_balance = Column(Numeric(12, 2), nullable=False, default=0)
    total_earned = Column(Numeric(12, 2), nullable=False, default=0)
    pending_withdrawals = Column(Numeric(12, 2), nullable=False, default=0)
    total_withdrawn = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")
    last_withdrawal_at = Column(DateTime, nullable=True)

    withdrawals = relationship(
        "Withdrawal",
        back_populates="wallet",
        cascade="all, delete-orphan",
        order_by="Withdrawal.id.desc()",
    )


class Withdrawal(BaseModel):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("musician_wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    musician_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    withdrawal_fee = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    status = Column(CaseInsensitiveEnum(WithdrawalStatus), nullable=False, default=WithdrawalStatus.PENDING)
    reference = Column(String, nullable=False, unique=True, index=True)
    bank_name = Column(String, nullable=True)
    account_number = Column(String(20), nullable=True)
    failure_reason = Column(Text, nullable=True)

    wallet = relationship("MusicianWallet", back_populates="withdrawals")
