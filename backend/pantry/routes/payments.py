# Overview: Flask API routes for order payments (initiate, verify, refund).

from flask import Blueprint, g, jsonify, request

from ..decorators import optional_auth, require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_PANTRY
from ..services import payment_service
from ..validation import (
    parse_initiate_payment,
    parse_refund,
    parse_verify_payment,
    request_json,
)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/initiate")
@optional_auth
def initiate_payment_route():
    """
    Start settlement for an order.

    Returns provider checkout details, or completed=true when no payment is
    needed. Calling again while a payment is PENDING returns the same
    provider order.
    """
    order_id = parse_initiate_payment(request_json(request))
    return jsonify(payment_service.initiate_payment(order_id))


@payments_bp.post("/verify")
def verify_payment_route():
    """Hosted checkout callback: {"order_id", "payment_id", "provider_order_id", "signature"}."""
    data = parse_verify_payment(request_json(request))
    return jsonify(payment_service.verify_payment(**data))


@payments_bp.post("/refund/<order_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PANTRY)
def refund_payment_route(order_id: str):
    amount_cents = parse_refund(request_json(request))
    result = payment_service.refund_payment(order_id, amount_cents=amount_cents, org_id=g.org_id)
    return jsonify(result)
