# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def _load_user():
    raw = (request.headers.get("X-User-Id") or "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_user(f):
    """
    Resolve the caller from the X-User-Id header.

    Sets g.current_user. Token issuance and verification happen upstream of
    this service; a missing, unknown or inactive user is rejected with 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _load_user()
        if user is None:
            return jsonify({"success": False, "message": "Authentication required"}), 401
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the current user to hold one of roles. Admins pass every check.

    Must be applied after @require_user.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"success": False, "message": "Authentication required"}), 401
            if user.role not in roles and user.role != "admin":
                return jsonify({
                    "success": False,
                    "message": f"Role {user.role} is not authorized to access this route",
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
