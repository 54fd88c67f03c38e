from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from ..models.wallet import WalletTransactionStatus, WalletTransactionType


class DepositRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Bounds are enforced by the wallet service so the message matches the UI copy
    amount: Decimal
    country_code: Optional[str] = Field(default=None, alias="countryCode", max_length=2)


class WalletTransactionResponse(BaseModel):
    id: int
    type: WalletTransactionType
    amount: Decimal
    balance_after: Optional[Decimal] = None
    status: WalletTransactionStatus
    reference: str
    provider: Optional[str] = None
    booking_id: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentOptionResponse(BaseModel):
    method: str
    enabled: bool
    reason: Optional[str] = None
