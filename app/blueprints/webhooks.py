"""Stripe webhook receiver: POST /api/webhook/stripe

The raw request body must reach stripe.Webhook.construct_event untouched,
so this route never parses JSON itself. Everything after verification
lives in stripe_service.handle_webhook_event, which writes the payment
ledger row before doing anything else.

Responses:
    200  event recorded (processed now, earlier, or ignored type)
    400  missing/invalid signature or unparsable payload
    409  another delivery of the event is still running; Stripe will redeliver
    500  handler failed; Stripe will redeliver
    503  webhook secret not configured
"""

import logging

import stripe
from flask import Blueprint, current_app, jsonify, request

from app.services.stripe_service import (
    IN_PROGRESS,
    handle_webhook_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhook")


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    if not current_app.config.get("STRIPE_WEBHOOK_SECRET"):
        logger.error("Stripe webhook hit but STRIPE_WEBHOOK_SECRET is unset")
        return jsonify(error="Webhooks are not configured"), 503

    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        return jsonify(error="Missing signature"), 400

    try:
        event = verify_webhook_signature(request.get_data(as_text=True), sig_header)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        return jsonify(error="Invalid signature"), 400

    event_id = event["id"]
    logger.info(f"Stripe event {event_id} ({event['type']})")

    ok, status = handle_webhook_event(event)
    if status == IN_PROGRESS:
        return jsonify(error="Event is already being processed", eventId=event_id), 409
    if not ok:
        logger.error(f"Stripe event {event_id} failed, awaiting redelivery: {status}")
        return jsonify(error=status, eventId=event_id), 500

    return jsonify(received=True, eventId=event_id, status=status)
