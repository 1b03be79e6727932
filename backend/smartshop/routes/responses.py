# Overview: JSON envelope helpers shared by the route modules.

from flask import current_app, jsonify

from ..errors import ShopError
from ..validation import ConflictError, ValidationError


def ok(status: int = 200, **data):
    return jsonify({"success": True, **data}), status


def fail(message: str, status: int, details: dict | None = None):
    body = {"success": False, "message": message}
    if details:
        body["details"] = details
    return jsonify(body), status


def error_response(exc: Exception):
    """Translate a service exception into the error envelope."""
    if isinstance(exc, ShopError):
        return fail(exc.message, exc.status_code, exc.details)
    if isinstance(exc, ConflictError):
        return fail(str(exc), 409)
    if isinstance(exc, ValidationError):
        return fail(str(exc), 400)
    raise exc


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return fail("Internal server error", 500)


def int_arg(args, name: str, default: int | None = None) -> int | None:
    raw = args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def bool_arg(args, name: str) -> bool:
    return (args.get(name) or "").strip().lower() in ("1", "true", "yes")
