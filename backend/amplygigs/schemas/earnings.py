from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from ..models.earnings import WithdrawalStatus


class WithdrawalCreate(BaseModel):
    # Minimum and fee are applied by the earnings service
    amount: Decimal
    bank_name: str = Field(min_length=1, max_length=120)
    account_number: str = Field(pattern=r"^\d{10}$")


class WithdrawalResponse(BaseModel):
    id: int
    amount: Decimal
    withdrawal_fee: Decimal
    net_amount: Decimal
    currency: str
    status: WithdrawalStatus
    reference: str
    bank_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
