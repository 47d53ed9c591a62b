"""Slugs blueprint — /api/check-slug, /api/extend-reservation, /api/suggest-slugs

Public JSON API used by the intake form to pick and hold a subdomain.

Route Map:
  POST /api/check-slug            — availability check, optional reservation
  POST /api/extend-reservation    — keep a hold alive while the user is active
  GET  /api/suggest-slugs/<name>  — available variations of a business name
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from app.extensions import limiter
from app.services.slug_service import (
    extend_reservation,
    is_slug_available,
    public_url,
    reserve_slug,
    sanitize_slug,
    suggest_slugs,
)

slugs_bp = Blueprint("slugs", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)

INVALID_SLUG_MESSAGE = (
    "Invalid slug. Must be 3-50 characters, letters, numbers, and hyphens only."
)


@slugs_bp.route("/check-slug", methods=["POST"])
@limiter.limit("60 per minute")
def check_slug():
    """Check if a slug is available and optionally reserve it.

    Expects: { slug, reserve (optional, default false), email, sessionId }
    Returns: { available, slug, url, reserved[, expiresIn] }
    """
    data = request.get_json(silent=True) or {}

    slug = sanitize_slug(data.get("slug"))
    if slug is None:
        return jsonify(
            available=False, error=INVALID_SLUG_MESSAGE, slug=None, url=None
        ), 400

    available = is_slug_available(slug)
    response = {
        "available": available,
        "slug": slug,
        "url": public_url(slug),
        "reserved": False,
    }

    if available and data.get("reserve"):
        reserved = reserve_slug(slug, data.get("email"), data.get("sessionId"))
        response["reserved"] = reserved
        if reserved:
            minutes = current_app.config["RESERVATION_HOLD_MINUTES"]
            response["expiresIn"] = f"{minutes} minutes"
        else:
            # Lost the race to another reserver between check and insert.
            response["available"] = False

    return jsonify(response)


@slugs_bp.route("/extend-reservation", methods=["POST"])
def extend():
    """Extend a slug hold for the session that owns it.

    Expects: { slug, sessionId }
    Returns: { success, slug, message }
    """
    data = request.get_json(silent=True) or {}
    slug = sanitize_slug(data.get("slug"))
    session_id = (data.get("sessionId") or "").strip()

    if slug is None or not session_id:
        return jsonify(success=False, error="Missing slug or sessionId"), 400

    extended = extend_reservation(slug, session_id)
    return jsonify(
        success=extended,
        slug=slug,
        message="Reservation extended" if extended else "Reservation not found or expired",
    )


@slugs_bp.route("/suggest-slugs/<name>", methods=["GET"])
@limiter.limit("30 per minute")
def suggest(name):
    """Suggest up to three available slugs derived from a business name."""
    base, suggestions = suggest_slugs(name)
    if base is None:
        return jsonify(error="Invalid name provided"), 400

    return jsonify(
        original=base,
        originalAvailable=is_slug_available(base),
        suggestions=[{"slug": s, "url": public_url(s)} for s in suggestions],
    )
