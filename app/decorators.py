"""
Custom route decorators for access control.

- admin_token_required: ensures the request carries
  "Authorization: Bearer <ADMIN_API_TOKEN>".
"""

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def admin_token_required(f):
    """Require the operator bearer token. 503 if none is configured."""

    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN")
        if not expected:
            return jsonify(error="Operator API is not configured"), 503

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(token.encode(), expected.encode()):
            return jsonify(error="Unauthorized"), 401

        return f(*args, **kwargs)

    return decorated
