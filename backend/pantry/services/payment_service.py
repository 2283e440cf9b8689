# Overview: Payment lifecycle for orders: initiate, verify, refund.

"""
Payment Service

STATE MACHINE (payments):
    PENDING -> COMPLETED | FAILED
    FAILED -> PENDING (re-initiate creates a fresh provider order)
    COMPLETED -> PARTIALLY_REFUNDED -> REFUNDED

Each call reaches the provider at most once. The database step around it
may be retried on contention; a retry reuses the provider order or refund
already obtained instead of asking again. A provider timeout raises
PaymentProviderError and leaves the row as it was, so the client may simply
call again.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, Organization, Payment
from ..models.orders import ORDER_STATUS_ACCEPTED, ORDER_STATUS_PENDING
from ..models.payments import (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PARTIALLY_REFUNDED,
    PAYMENT_STATUS_REFUNDED,
)
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..time_utils import utcnow
from . import event_service
from .concurrency import lock_for_update, run_with_retry
from .order_service import apply_status
from .payment_gateways import PROVIDER_FREE, build_gateway, get_gateway

PAID_STATUSES = (PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_PARTIALLY_REFUNDED, PAYMENT_STATUS_REFUNDED)
REFUNDABLE_STATUSES = (PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_PARTIALLY_REFUNDED)


def _load_order(order_id: str) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def _load_payment(order_id: str) -> Payment | None:
    return lock_for_update(db.session.query(Payment).filter_by(order_id=order_id)).first()


def _accept_if_pending(order: Order) -> bool:
    """Advance a PENDING order to ACCEPTED once it is paid. Does not commit."""
    if order.status != ORDER_STATUS_PENDING:
        return False
    apply_status(order, ORDER_STATUS_ACCEPTED)
    return True


def _initiate_response(payment: Payment, public_key: str | None = None) -> dict:
    return {
        "payment_id": payment.id,
        "provider_order_id": payment.external_order_id,
        "amount_cents": payment.amount_cents,
        "currency": payment.currency,
        "provider": payment.provider,
        "key_id": public_key,
        "status": payment.status,
        "completed": payment.status == PAYMENT_STATUS_COMPLETED,
    }


def initiate_payment(order_id: str) -> dict:
    """
    Start (or resume) settlement for an order.

    - existing PENDING payment: returned as is, no new provider order
    - existing paid/refunded payment: InvalidStateError
    - existing FAILED payment: fresh provider order, row back to PENDING
    - tenant without payment or zero total: COMPLETED immediately, order ACCEPTED
    """
    currency = current_app.config.get("PAYMENT_CURRENCY", "INR")
    obtained: dict = {}

    def _op() -> tuple[dict, Order | None]:
        order = _load_order(order_id)
        payment = _load_payment(order.id)

        if payment and payment.status in PAID_STATUSES:
            raise InvalidStateError("Order is already paid")

        org = db.session.get(Organization, order.org_id)

        if payment and payment.status == PAYMENT_STATUS_PENDING:
            public_key = None
            if payment.provider != PROVIDER_FREE:
                public_key = build_gateway(payment.provider).public_key
            return _initiate_response(payment, public_key), None

        gateway = get_gateway(org, order.total_cents)
        order_currency = org.currency or currency

        if "provider_order" not in obtained:
            obtained["provider_order"] = gateway.create_order(
                order.total_cents, order_currency, order.order_number,
            )
        provider_order = obtained["provider_order"]

        if payment is None:
            payment = Payment(order_id=order.id)
            db.session.add(payment)
        payment.provider = gateway.name
        payment.amount_cents = provider_order.amount_cents
        payment.currency = order_currency
        payment.external_payment_id = None

        if gateway.name == PROVIDER_FREE:
            # Nothing was charged; the row only records settlement
            payment.status = PAYMENT_STATUS_COMPLETED
            payment.external_order_id = None
            accepted = _accept_if_pending(order)
            db.session.commit()
            current_app.logger.info("Order %s settled without payment", order.order_number)
            return _initiate_response(payment), order if accepted else None

        payment.status = PAYMENT_STATUS_PENDING
        payment.external_order_id = provider_order.external_id
        db.session.commit()
        current_app.logger.info(
            "Payment %s initiated with %s for order %s", payment.id, gateway.name, order.order_number,
        )
        return _initiate_response(payment, gateway.public_key), None

    response, accepted_order = run_with_retry(_op)
    if accepted_order is not None:
        event_service.publish_order_event(event_service.EVENT_STATUS_UPDATE, accepted_order)
    return response


def verify_payment(order_id: str, payment_id: str, provider_order_id: str, signature: str) -> dict:
    """
    Confirm a hosted-checkout payment from the client callback.

    A mismatched provider order id or a bad signature marks the payment FAILED.
    """
    def _op() -> tuple[dict, Order | None]:
        order = _load_order(order_id)
        payment = _load_payment(order.id)
        if not payment:
            raise NotFoundError("Payment not found")

        if payment.status == PAYMENT_STATUS_COMPLETED and payment.external_payment_id == payment_id:
            return {"success": True, "payment": payment.to_dict()}, None

        if payment.status not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_FAILED):
            raise InvalidStateError(f"Payment is {payment.status}")

        gateway = build_gateway(payment.provider)
        valid = (
            payment.external_order_id is not None
            and provider_order_id == payment.external_order_id
            and gateway.verify_payment(payment_id, provider_order_id, signature)
        )
        if not valid:
            payment.status = PAYMENT_STATUS_FAILED
            db.session.commit()
            current_app.logger.warning("Payment verification failed for order %s", order.order_number)
            return None, None

        payment.status = PAYMENT_STATUS_COMPLETED
        payment.external_payment_id = payment_id
        payment.audit_metadata = {**(payment.audit_metadata or {}), "signature": signature}
        accepted = _accept_if_pending(order)
        db.session.commit()
        current_app.logger.info("Payment %s completed for order %s", payment.id, order.order_number)
        return {"success": True, "payment": payment.to_dict()}, order if accepted else None

    response, accepted_order = run_with_retry(_op)
    if response is None:
        # FAILED status is committed before the error surfaces
        raise InvalidStateError("Payment verification failed")
    if accepted_order is not None:
        event_service.publish_order_event(event_service.EVENT_STATUS_UPDATE, accepted_order)
    return response


def refund_payment(order_id: str, amount_cents: int | None = None, org_id: int | None = None) -> dict:
    """
    Refund all or part of a settled payment.

    amount_cents defaults to whatever is still refundable. The accumulator
    never exceeds the original amount. Payments settled without a provider
    collected nothing and cannot be refunded.
    """
    issued: dict = {}

    def _op() -> dict:
        order = _load_order(order_id)
        if org_id is not None and order.org_id != org_id:
            raise ForbiddenError("Order belongs to another organization")

        payment = _load_payment(order.id)
        if not payment or payment.status not in REFUNDABLE_STATUSES:
            raise InvalidStateError("No completed payment found for this order")
        if payment.provider == PROVIDER_FREE:
            raise InvalidStateError("Order was settled without payment; nothing to refund")

        if "refund" in issued:
            # Provider already accepted this refund on an earlier attempt
            amount, refund = issued["amount"], issued["refund"]
        else:
            remaining = payment.refundable_cents
            if remaining <= 0:
                raise InvalidStateError("Nothing left to refund for this order")
            amount = remaining if amount_cents is None else amount_cents
            if amount <= 0:
                raise ValidationError("Refund amount must be positive", details={"amount_cents": ["must be > 0"]})
            if amount > remaining:
                raise InvalidStateError(
                    "Refund exceeds the refundable amount",
                    details={"refundable_cents": remaining},
                )

            refund = build_gateway(payment.provider).refund(payment.external_payment_id, amount)
            issued.update(amount=amount, refund=refund)

        payment.refunded_amount_cents += amount
        payment.refunded_at = utcnow()
        if payment.refunded_amount_cents >= payment.amount_cents:
            payment.status = PAYMENT_STATUS_REFUNDED
        else:
            payment.status = PAYMENT_STATUS_PARTIALLY_REFUNDED

        refunds = list((payment.audit_metadata or {}).get("refunds", []))
        refunds.append({"id": refund.external_id, "amount_cents": amount, "status": refund.status})
        payment.audit_metadata = {**(payment.audit_metadata or {}), "refunds": refunds}

        db.session.commit()
        current_app.logger.info(
            "Refunded %s of payment %s (order %s), now %s",
            amount, payment.id, order.order_number, payment.status,
        )
        return {
            "success": True,
            "refund_id": refund.external_id,
            "refunded_cents": amount,
            "payment": payment.to_dict(),
        }

    return run_with_retry(_op)
