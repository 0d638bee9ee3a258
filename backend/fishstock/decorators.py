# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


def require_principal(f):
    """
    Require an authenticated principal.

    Authentication happens upstream; the gateway forwards the principal id in
    the header named by PRINCIPAL_HEADER. Sets g.principal_id.

    Returns 401 when the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("PRINCIPAL_HEADER", "X-Principal-Id")
        principal_id = (request.headers.get(header) or "").strip()

        if not principal_id:
            return jsonify({
                "error": "unauthorized",
                "message": "Authentication required",
                "details": {"header": header},
            }), 401
        if len(principal_id) > 64:
            return jsonify({
                "error": "unauthorized",
                "message": "Invalid principal id",
                "details": {"header": header},
            }), 401

        g.principal_id = principal_id
        return f(*args, **kwargs)

    return decorated_function
