from decimal import Decimal

import pytest

from amplygigs.services.fees import compute_fee_breakdown, format_money


def test_default_rates_split_gross_amount():
    fees = compute_fee_breakdown(100000, "ngn")
    assert fees.amount == Decimal("100000.00")
    assert fees.platform_fee == Decimal("10000.00")
    assert fees.vat == Decimal("7500.00")
    assert fees.musician_receives == Decimal("82500.00")
    assert fees.currency == "NGN"


def test_fee_breakdown_as_dict_uses_floats():
    data = compute_fee_breakdown("8000").as_dict()
    assert data == {
        "amount": 8000.0,
        "platform_fee": 800.0,
        "vat": 600.0,
        "musician_receives": 6600.0,
        "currency": "NGN",
    }


def test_fee_rounding_is_half_up_to_cents():
    fees = compute_fee_breakdown("0.05")
    assert fees.platform_fee == Decimal("0.01")
    assert fees.vat == Decimal("0.00")
    assert fees.amount == fees.platform_fee + fees.vat + fees.musician_receives


def test_custom_rates_override_settings():
    fees = compute_fee_breakdown(1000, platform_fee_rate=Decimal("0.2"), vat_rate=Decimal("0"))
    assert fees.platform_fee == Decimal("200.00")
    assert fees.musician_receives == Decimal("800.00")


def test_negative_amount_rejected():
    with pytest.raises(ValueError):
        compute_fee_breakdown(-1)


def test_garbage_amount_rejected():
    with pytest.raises(ValueError):
        compute_fee_breakdown("lots")


def test_format_money():
    assert format_money(82500) == "₦82,500.00"
    assert format_money("12.5", "usd") == "$12.50"
    assert format_money(3, "KES") == "KES 3.00"
