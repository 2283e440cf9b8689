# Overview: Flask API routes for coupon validation and administration.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Coupon
from ..models.auth import ROLE_ADMIN
from ..services import coupon_service
from ..validation import (
    COUPON_POLICY,
    enforce_rules_coupon,
    parse_coupon_validation,
    request_json,
    validate_payload,
)

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.post("/validate")
@require_auth
def validate_coupon_route():
    """
    Preview a coupon against an order amount. Read-only.

    Body: {"code", "order_amount_cents"}
    """
    data = parse_coupon_validation(request_json(request))
    result = coupon_service.validate_coupon(
        g.org_id, data["code"], data["order_amount_cents"], user_id=g.current_user.id,
    )
    return jsonify({
        "coupon": result["coupon"].summary(),
        "discount_cents": result["discount_cents"],
        "final_amount_cents": result["final_amount_cents"],
    })


@coupons_bp.get("")
@require_auth
def list_coupons_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    coupons = coupon_service.list_coupons(g.org_id, include_inactive=include_inactive)
    return jsonify({"coupons": [c.to_dict() for c in coupons]})


@coupons_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_coupon_route():
    patch = validate_payload(model=Coupon, payload=request_json(request), policy=COUPON_POLICY, partial=False)
    enforce_rules_coupon(patch)
    coupon = coupon_service.create_coupon(g.org_id, patch)
    return jsonify({"coupon": coupon.to_dict()}), 201


@coupons_bp.get("/<int:coupon_id>")
@require_auth
def get_coupon_route(coupon_id: int):
    coupon = coupon_service.get_coupon(coupon_id, g.org_id)
    return jsonify({"coupon": coupon.to_dict()})


@coupons_bp.patch("/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_coupon_route(coupon_id: int):
    coupon = coupon_service.get_coupon(coupon_id, g.org_id)
    patch = validate_payload(model=Coupon, payload=request_json(request), policy=COUPON_POLICY, partial=True)
    current = {
        "discount_type": coupon.discount_type,
        "value": coupon.value,
        "max_discount_cents": coupon.max_discount_cents,
        "valid_from": coupon.valid_from,
        "valid_until": coupon.valid_until,
    }
    enforce_rules_coupon(patch, current)
    coupon = coupon_service.update_coupon(coupon_id, g.org_id, patch)
    return jsonify({"coupon": coupon.to_dict()})


@coupons_bp.delete("/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_coupon_route(coupon_id: int):
    """Hard delete; refused once any order used the coupon (deactivate instead)."""
    coupon_service.delete_coupon(coupon_id, g.org_id)
    return "", 204
