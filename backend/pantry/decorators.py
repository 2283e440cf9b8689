# Overview: Authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import auth_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _set_context(context) -> None:
    g.current_user = context.user if context else None
    g.org_id = context.org_id if context else None
    g.auth_context = context


def _unauthorized(message: str):
    return jsonify({"error": {"code": "UNAUTHORIZED", "message": message}}), 401


def optional_auth(f):
    """
    Attach the caller's identity when a valid bearer token is present.

    Guest-facing routes use this. Missing or invalid tokens leave
    g.current_user = None rather than rejecting the request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        _set_context(auth_service.validate_token(token) if token else None)
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require authentication and establish tenant context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.auth_context: The full AuthContext object

    Returns 401 if there is no Authorization header or the token is invalid,
    expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return _unauthorized("Authentication required")

        context = auth_service.validate_token(token)
        if not context:
            return _unauthorized("Invalid or expired token")

        _set_context(context)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the authenticated user to hold one of `roles`.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "current_user", None) is None:
                return _unauthorized("Authentication required")

            if g.current_user.role not in roles:
                return jsonify({
                    "error": {
                        "code": "FORBIDDEN",
                        "message": "Insufficient permissions",
                        "details": {"required_roles": list(roles)},
                    }
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
