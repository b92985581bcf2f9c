# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw.strip())


def require_auth(f):
    """
    Require an authenticated caller and expose it on Flask g.

    Authentication happens upstream: the gateway in front of this service
    validates the session and forwards the caller as headers.
    - g.user_id:   X-User-Id (positive integer) - REQUIRED
    - g.user_role: X-User-Role (defaults to "user")

    Returns 401 when X-User-Id is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_int("X-User-Id")
        if not user_id:
            return jsonify({"error": "Authentication required"}), 401

        g.user_id = user_id
        g.user_role = (request.headers.get("X-User-Role") or "user").strip().lower()

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Use after @require_auth."""
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "user_id"):
                return jsonify({"error": "Authentication required"}), 401
            if g.user_role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": sorted(allowed),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
