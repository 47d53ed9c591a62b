"""Checkout blueprint — /api/create-checkout, /api/verify-session

Route Map:
  POST /api/create-checkout             — Stripe Checkout for a reserved slug
  GET  /api/verify-session/<session_id> — success-page check of a session
"""

import logging
import re

import stripe
from flask import Blueprint, jsonify, request

from app.extensions import limiter
from app.services.slug_service import sanitize_slug
from app.services.stripe_service import create_checkout_session, verify_checkout_session

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)

# Sanity check only, not exhaustive
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@checkout_bp.route("/create-checkout", methods=["POST"])
@limiter.limit("20 per hour")
def create_checkout():
    """Create a Stripe Checkout Session and return its URL.

    Expects: { slug, email, sessionId, templateId, intakeData, generatedContent }
    Returns: { url }

    404 if the slug has no live hold, or the hold belongs to another
    session or was already bound to a different email.
    """
    data = request.get_json(silent=True) or {}
    slug = sanitize_slug(data.get("slug"))
    email = (data.get("email") or "").strip()

    if slug is None or not email:
        return jsonify(error="Missing required fields"), 400
    if not EMAIL_RE.match(email):
        return jsonify(error="A valid email is required."), 400

    try:
        url = create_checkout_session(
            slug,
            email,
            session_id=data.get("sessionId"),
            template_id=data.get("templateId"),
            intake_data=data.get("intakeData"),
            generated_content=data.get("generatedContent"),
        )
    except ValueError as e:
        return jsonify(error=str(e)), 404
    except stripe.StripeError as e:
        logger.error(f"Checkout error for {slug}: {e}")
        return jsonify(error="Failed to create checkout session"), 502

    return jsonify(url=url)


@checkout_bp.route("/verify-session/<session_id>", methods=["GET"])
def verify_session(session_id):
    """Report whether a checkout session has been paid."""
    try:
        result = verify_checkout_session(session_id)
    except stripe.StripeError as e:
        logger.error(f"Verify session error: {e}")
        return jsonify(error="Failed to verify session"), 502

    return jsonify(result)
