"""Thin Paystack client used by wallet deposits and direct booking payments.

Only the two calls we need are wrapped: ``transaction/initialize`` and
``transaction/verify/{reference}``. Amounts cross this boundary in major
units and are converted to the provider's minor units (kobo/cents) here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx

from ..core.config import settings
from .exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 10.0


@dataclass
class PaymentInit:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class PaymentVerification:
    reference: str
    status: str
    amount: Decimal
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def successful(self) -> bool:
        return self.status == "success"


class PaystackGateway:
    name = "paystack"

    def __init__(self, secret_key: str | None = None, base_url: str | None = None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self.secret_key:
            raise PaymentGatewayError("Payment provider not configured", status_code=400)
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initialize(
        self,
        *,
        email: str,
        amount: Decimal,
        currency: str,
        reference: str,
        callback_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentInit:
        payload: dict[str, Any] = {
            "email": email,
            "amount": int((Decimal(amount) * 100).to_integral_value()),
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url
        headers = self._headers()
        try:
            with httpx.Client(timeout=TIMEOUT_SECONDS) as client:
                r = client.post(f"{self.base_url}/transaction/initialize", json=payload, headers=headers)
                r.raise_for_status()
                data = r.json().get("data") or {}
        except httpx.HTTPError as exc:
            logger.error("Paystack init error: %s", exc, exc_info=True)
            raise PaymentGatewayError("Payment initialization failed") from exc
        auth_url = data.get("authorization_url")
        if not auth_url:
            logger.error("Paystack init returned no authorization_url for %s", reference)
            raise PaymentGatewayError("Payment initialization failed")
        return PaymentInit(
            authorization_url=auth_url,
            reference=data.get("reference") or reference,
            access_code=data.get("access_code"),
        )

    def verify(self, reference: str) -> PaymentVerification:
        headers = self._headers()
        try:
            with httpx.Client(timeout=TIMEOUT_SECONDS) as client:
                r = client.get(f"{self.base_url}/transaction/verify/{reference}", headers=headers)
                r.raise_for_status()
                data = r.json().get("data") or {}
        except httpx.HTTPError as exc:
            logger.error("Paystack verify error: %s", exc, exc_info=True)
            raise PaymentGatewayError("Verification failed") from exc
        meta = data.get("metadata")
        return PaymentVerification(
            reference=str(data.get("reference") or reference),
            status=str(data.get("status", "")).lower(),
            amount=Decimal(int(data.get("amount", 0) or 0)) / 100,
            currency=str(data.get("currency") or ""),
            metadata=meta if isinstance(meta, dict) else {},
        )


def get_payment_gateway() -> PaystackGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return PaystackGateway()
