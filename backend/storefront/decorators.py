# Overview: Request decorators and helpers for API routes.

import hmac
from functools import wraps
from flask import request, jsonify, g, current_app


def current_user_id():
    """
    Storefront user id forwarded by the authenticating front layer.

    Returns None for guests (header missing or blank).
    """
    raw = (request.headers.get("X-User-Id") or "").strip()
    return raw or None


def require_admin(f):
    """
    Require the back-office bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token does not match ADMIN_API_TOKEN
    - ADMIN_API_TOKEN is not configured (admin API disabled)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN")
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "unauthorized"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected admin request to %s", request.path)
            return jsonify({"error": "unauthorized"}), 401

        g.is_admin = True
        return f(*args, **kwargs)

    return decorated_function
