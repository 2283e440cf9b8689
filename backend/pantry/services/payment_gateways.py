# Overview: Payment provider adapters behind one small interface.

"""
Payment gateways.

Every provider exposes the same capabilities:
- create_order(amount_cents, currency, reference) -> ProviderOrder
- verify_payment(payment_id, order_reference, signature) -> bool
- refund(payment_id, amount_cents=None) -> ProviderRefund

Amounts are always integers in the currency's minor unit.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Protocol

import httpx
from flask import current_app

from ..errors import PaymentProviderError

PROVIDER_FREE = "free"
PROVIDER_RAZORPAY = "razorpay"


@dataclass(frozen=True)
class ProviderOrder:
    external_id: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class ProviderRefund:
    external_id: str | None
    status: str


class PaymentGateway(Protocol):
    name: str
    public_key: str | None

    def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder: ...

    def verify_payment(self, payment_id: str, order_reference: str, signature: str) -> bool: ...

    def refund(self, payment_id: str, amount_cents: int | None = None) -> ProviderRefund: ...


class NoPaymentGateway:
    """Settles zero-amount orders and tenants that do not take payment."""

    name = PROVIDER_FREE
    public_key = None

    def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder:
        return ProviderOrder(external_id=f"free-{reference}", amount_cents=0, currency=currency)

    def verify_payment(self, payment_id: str, order_reference: str, signature: str) -> bool:
        return True

    def refund(self, payment_id: str, amount_cents: int | None = None) -> ProviderRefund:
        return ProviderRefund(external_id=None, status="processed")


class RazorpayGateway:
    """
    Razorpay hosted checkout.

    The browser completes checkout with the provider and sends back
    (payment_id, order_id, signature); the signature is
    HMAC-SHA256(key_secret, "<order_id>|<payment_id>") in hex.
    """

    name = PROVIDER_RAZORPAY

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        api_base: str = "https://api.razorpay.com/v1",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not key_id or not key_secret:
            raise PaymentProviderError("Razorpay credentials are not configured")
        self.key_id = key_id
        self._key_secret = key_secret
        self._api_base = api_base
        self._timeout = timeout
        self._transport = transport

    @property
    def public_key(self) -> str:
        return self.key_id

    def _post(self, path: str, payload: dict) -> dict:
        try:
            with httpx.Client(
                base_url=self._api_base,
                auth=(self.key_id, self._key_secret),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.post(path, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise PaymentProviderError("Payment provider did not respond in time") from exc
        except httpx.HTTPStatusError as exc:
            raise PaymentProviderError(
                "Payment provider rejected the request",
                details={"provider_status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise PaymentProviderError("Payment provider unreachable") from exc
        return response.json()

    def create_order(self, amount_cents: int, currency: str, reference: str) -> ProviderOrder:
        data = self._post("/orders", {
            "amount": amount_cents,
            "currency": currency,
            "receipt": reference[:40],
        })
        return ProviderOrder(
            external_id=data["id"],
            amount_cents=data.get("amount", amount_cents),
            currency=data.get("currency", currency),
        )

    def expected_signature(self, payment_id: str, order_reference: str) -> str:
        message = f"{order_reference}|{payment_id}".encode("utf-8")
        return hmac.new(self._key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_payment(self, payment_id: str, order_reference: str, signature: str) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.expected_signature(payment_id, order_reference), signature)

    def refund(self, payment_id: str, amount_cents: int | None = None) -> ProviderRefund:
        payload = {"amount": amount_cents} if amount_cents is not None else {}
        data = self._post(f"/payments/{payment_id}/refund", payload)
        return ProviderRefund(external_id=data.get("id"), status=data.get("status", "processed"))


def build_gateway(provider: str | None) -> PaymentGateway:
    """Instantiate a gateway by provider name using app config for credentials."""
    if not provider or provider == PROVIDER_FREE:
        return NoPaymentGateway()

    if provider == PROVIDER_RAZORPAY:
        cfg = current_app.config
        return RazorpayGateway(
            cfg.get("RAZORPAY_KEY_ID"),
            cfg.get("RAZORPAY_KEY_SECRET"),
            api_base=cfg.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1"),
            timeout=cfg.get("PAYMENT_PROVIDER_TIMEOUT", 5.0),
            transport=current_app.extensions.get("payment_transport"),
        )

    raise PaymentProviderError(f"Unsupported payment provider: {provider}")


def get_gateway(org, total_cents: int) -> PaymentGateway:
    """Free path when the tenant does not take payment or nothing is owed."""
    if not org.require_payment or total_cents <= 0:
        return NoPaymentGateway()
    if not org.payment_provider:
        raise PaymentProviderError("Organization requires payment but has no provider configured")
    return build_gateway(org.payment_provider)
