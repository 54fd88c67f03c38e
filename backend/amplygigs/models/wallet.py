from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class WalletTransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    PAYMENT = "payment"
    REFUND = "refund"


class WalletTransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ClientWallet(BaseModel):
    __tablename__ = "client_wallets"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, unique=True, index=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    total_funded = Column(Numeric(12, 2), nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    pending_payments = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")

    transactions = relationship(
        "ClientWalletTransaction",
        back_populates="wallet",
        cascade="all, delete-orphan",
        order_by="ClientWalletTransaction.id.desc()",
    )


class ClientWalletTransaction(BaseModel):
    __tablename__ = "client_wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("client_wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    type = Column(CaseInsensitiveEnum(WalletTransactionType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=True)
    status = Column(
        CaseInsensitiveEnum(WalletTransactionStatus),
        nullable=False,
        default=WalletTransactionStatus.PENDING,
    )
    reference = Column(String, nullable=False, unique=True, index=True)
    provider = Column(String, nullable=True)  # paystack|stripe|wallet
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)

    wallet = relationship("ClientWallet", back_populates="transactions")
