# Overview: Flask API routes for orders; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import optional_auth, require_auth, require_role
from ..errors import ForbiddenError
from ..models.auth import ROLE_ADMIN, ROLE_PANTRY
from ..services import order_service
from ..validation import (
    parse_create_order,
    parse_order_list_query,
    parse_status_update,
    request_json,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@optional_auth
def create_order_route():
    """
    Place an order for an active session.

    Body: {"session_id", "items": [{"item_id", "quantity", "options"?, "notes"?}],
           "coupon_code"?, "chair_number"?, "notes"?}
    """
    data = parse_create_order(request_json(request))
    user_id = g.current_user.id if g.current_user else None
    order = order_service.create_order(user_id=user_id, **data)
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PANTRY)
def list_orders_route():
    """Staff order board for the caller's organization, newest first."""
    query = parse_order_list_query(request.args)
    orders, total = order_service.list_org_orders(g.org_id, **query)
    return jsonify({
        "orders": [o.to_dict() for o in orders],
        "total": total,
        "limit": query["limit"],
        "offset": query["offset"],
    })


@orders_bp.get("/<order_id>")
@optional_auth
def get_order_route(order_id: str):
    order = order_service.get_order(order_id)
    # Staff only see their own organization's orders
    if g.current_user is not None and g.current_user.is_staff and order.org_id != g.org_id:
        raise ForbiddenError("Order belongs to another organization")
    return jsonify({"order": order.to_dict()})


@orders_bp.get("/session/<session_id>")
@optional_auth
def list_session_orders_route(session_id: str):
    orders = order_service.list_session_orders(session_id)
    return jsonify({"orders": [o.to_dict() for o in orders]})


@orders_bp.patch("/<order_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PANTRY)
def update_status_route(order_id: str):
    """Move an order along PENDING -> ACCEPTED -> PREPARING -> READY -> DELIVERED (or CANCELLED)."""
    new_status = parse_status_update(request_json(request))
    order = order_service.update_order_status(order_id, new_status, g.org_id)
    return jsonify({"order": order.to_dict()})
