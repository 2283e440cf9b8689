# Overview: Flask API routes for ordering sessions (QR scan, lookup, menu, close).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import optional_auth
from ..services import session_service
from ..validation import parse_open_session, request_json

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.post("")
@optional_auth
def open_session_route():
    """
    Open an ordering session from a scanned QR code.

    Anonymous guests are allowed; a signed-in user becomes the session owner.
    """
    data = parse_open_session(
        request_json(request),
        default_ttl=current_app.config["SESSION_DEFAULT_TTL_MINUTES"],
    )
    user_id = g.current_user.id if g.current_user else None
    session = session_service.open_session(user_id=user_id, **data)
    return jsonify({"session": session.to_dict()}), 201


@sessions_bp.get("/<session_id>")
@optional_auth
def get_session_route(session_id: str):
    session = session_service.get_session(session_id)
    return jsonify({"session": session.to_dict()})


@sessions_bp.get("/<session_id>/menu")
def session_menu_route(session_id: str):
    return jsonify(session_service.session_menu(session_id))


@sessions_bp.post("/<session_id>/close")
@optional_auth
def close_session_route(session_id: str):
    """
    Close a session.

    Signed-in guests may only close their own sessions. Staff may close any
    session in their organization.
    """
    requesting_user_id = None
    user = g.current_user
    if user is not None:
        requesting_user_id = user.id
        if user.is_staff:
            session = session_service.get_session_record(session_id)
            if session.org_id == g.org_id:
                requesting_user_id = None

    session = session_service.close_session(session_id, requesting_user_id=requesting_user_id)
    return jsonify({"session": session.to_dict()})
