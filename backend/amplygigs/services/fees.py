from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

from ..core.config import settings

_CENT = Decimal("0.01")


@dataclass
class FeeBreakdown:
    amount: Decimal
    platform_fee: Decimal
    vat: Decimal
    musician_receives: Decimal
    currency: str

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("amount", "platform_fee", "vat", "musician_receives"):
            data[key] = float(data[key])
        return data


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def quantize(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_fee_breakdown(
    amount: Any,
    currency: str | None = None,
    *,
    platform_fee_rate: Decimal | None = None,
    vat_rate: Decimal | None = None,
) -> FeeBreakdown:
    """Split a gig amount into platform fee, VAT and the musician's share.

    Both fee and VAT are taken on the gross amount, so with the default
    10% / 7.5% rates 100000 becomes 10000 + 7500 and the musician receives
    82500.
    """
    gross = to_decimal(amount)
    if gross < 0:
        raise ValueError("Amount must not be negative")
    fee_rate = settings.PLATFORM_FEE_RATE if platform_fee_rate is None else platform_fee_rate
    vat_r = settings.VAT_RATE if vat_rate is None else vat_rate
    gross = quantize(gross)
    fee = quantize(gross * fee_rate)
    vat = quantize(gross * vat_r)
    net = gross - fee - vat
    return FeeBreakdown(
        amount=gross,
        platform_fee=fee,
        vat=vat,
        musician_receives=max(net, Decimal("0.00")),
        currency=(currency or settings.DEFAULT_CURRENCY).upper(),
    )


_CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$", "GBP": "£", "EUR": "€"}


def format_money(amount: Any, currency: str | None = None) -> str:
    code = (currency or settings.DEFAULT_CURRENCY).upper()
    value = quantize(to_decimal(amount))
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{code} {value:,.2f}"
