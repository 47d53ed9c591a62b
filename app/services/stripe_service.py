"""Stripe service — checkout sessions and webhook handling.

Responsible for:
- Creating Stripe Checkout Sessions for a reserved slug
- Verifying a completed checkout session for the success page
- Verifying webhook signatures
- Recording every webhook in the payment ledger and dispatching it
- Turning a completed checkout into a Site plus a queued deploy job

Idempotency: the ledger row is written first (insert-if-absent on the
Stripe event id), and a delivery must then win claim_event() before any
side effect. A redelivery that arrives while the first delivery is
still running loses the claim and is told to come back later, so an
event never creates a second site or deploy.

Ownership: a checkout binds the slug hold to the payer's email, and the
webhook only converts a hold that still carries that email.
"""

import logging
from datetime import timezone

import stripe
from flask import current_app

from app.extensions import db
from app.models.site import SiteStatus
from app.services import deploy_queue, payment_ledger
from app.services.site_service import (
    create_site,
    get_customer_by_stripe_id,
    get_site_by_slug,
    get_site_by_subscription_id,
    suspend_site,
    transition_site_status,
    upsert_customer,
)
from app.services.slug_service import convert_reservation, hold_for_checkout

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "starter"
DEFAULT_PLAN = "starter"

# handle_webhook_event status when another delivery holds the claim
IN_PROGRESS = "in_progress"


def _as_utc(value):
    # SQLite returns DateTime(timezone=True) columns naive
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ──────────────────────────────────────────────
# Checkout Sessions
# ──────────────────────────────────────────────

def create_checkout_session(slug, email, session_id=None, template_id=None,
                            intake_data=None, generated_content=None):
    """Create a subscription Checkout Session for a reserved slug.

    Binds the hold to the payer's email, saves the intake payload onto
    it so the webhook can build the site, and keeps it alive for as long
    as the Stripe session can be paid.

    Returns the Stripe checkout session URL.
    Raises ValueError if the slug has no live hold this payer may use.
    Raises stripe.StripeError on API failures.
    """
    reservation = hold_for_checkout(
        slug,
        email,
        session_id=session_id,
        template_id=template_id,
        intake_data=intake_data,
        generated_content=generated_content,
    )
    if reservation is None:
        raise ValueError(f"No reservation found for {slug}")

    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    client_url = current_app.config["CLIENT_URL"]

    session = stripe.checkout.Session.create(
        mode="subscription",
        payment_method_types=["card"],
        customer_email=reservation.email,
        line_items=[
            {"price": current_app.config["STRIPE_PRICE_ID"], "quantity": 1},
        ],
        success_url=f"{client_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{client_url}/building.html?canceled=true",
        metadata={
            "slug": reservation.slug,
            "template_id": template_id or reservation.template_id or DEFAULT_TEMPLATE_ID,
        },
        subscription_data={"metadata": {"slug": reservation.slug}},
        expires_at=int(_as_utc(reservation.expires_at).timestamp()),
    )

    logger.info(f"Checkout session {session.id} created for {slug}")
    return session.url


def verify_checkout_session(session_id):
    """Look up a checkout session and report whether it was paid.

    Returns a dict: {"success": True, "email", "slug", "subscriptionId"}
    or {"success": False, "status": <payment_status>}.
    Raises stripe.StripeError on API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    session = stripe.checkout.Session.retrieve(
        session_id, expand=["subscription", "customer"]
    )

    if session.get("payment_status") != "paid":
        return {"success": False, "status": session.get("payment_status")}

    subscription = session.get("subscription")
    if subscription is not None and not isinstance(subscription, str):
        subscription = subscription.get("id")

    metadata = session.get("metadata") or {}
    details = session.get("customer_details") or {}
    return {
        "success": True,
        "email": session.get("customer_email") or details.get("email"),
        "slug": metadata.get("slug"),
        "subscriptionId": subscription,
    }


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    1. Record it in the ledger (duplicates return the existing row)
    2. If already processed, stop before any side effect
    3. Claim the event; a delivery already in flight keeps it
    4. Dispatch to the event handler
    5. Mark processed, linking the customer/site the handler touched

    A handler failure rolls back, releases the claim, and leaves the
    event unprocessed, so Stripe's retry runs it again.

    Returns (success: bool, message: str). message is "in_progress"
    when another delivery of the same event holds the claim.
    """
    event_id = event["id"]
    event_type = event["type"]

    payment_ledger.record_event(event)

    if payment_ledger.is_processed(event_id):
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    if not payment_ledger.claim_event(event_id):
        if payment_ledger.is_processed(event_id):
            return True, "already_processed"
        logger.info(f"Webhook event {event_id} is being handled by another delivery")
        return False, IN_PROGRESS

    handlers = {
        "checkout.session.completed": _handle_checkout_completed,
        "invoice.payment_failed": _handle_payment_failed,
        "invoice.payment_succeeded": _handle_payment_succeeded,
        "customer.subscription.deleted": _handle_subscription_deleted,
    }

    customer_id = site_id = None
    handler = handlers.get(event_type)
    if handler:
        try:
            customer_id, site_id = handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            payment_ledger.release_claim(event_id)
            return False, str(e)
    else:
        logger.info(f"Unhandled event type: {event_type}")

    payment_ledger.mark_processed(event_id, customer_id=customer_id, site_id=site_id)
    return True, "processed"


# ──────────────────────────────────────────────
# Event Handlers
#
# Each returns (customer_id, site_id) for the ledger row; either may be None.
# ──────────────────────────────────────────────

def _handle_checkout_completed(event):
    """Handle checkout.session.completed.

    Converts the payer's hold, upserts the customer, creates the site
    from the hold's content, and queues the first deploy.

    A hold that lapsed and went to someone else is never converted; the
    event fails and stays unprocessed for an operator to refund or
    reassign.
    """
    session = event["data"]["object"]
    metadata = session.get("metadata") or {}
    slug = metadata.get("slug")

    if not slug:
        logger.warning("checkout.session.completed missing slug metadata")
        return None, None

    details = session.get("customer_details") or {}
    email = session.get("customer_email") or details.get("email")
    if not email:
        raise ValueError(f"Checkout for {slug} has no customer email")
    email = email.lower().strip()

    existing = get_site_by_slug(slug)
    if existing is not None:
        customer = upsert_customer(email, session.get("customer"))
        if existing.customer_id != customer.id:
            logger.error(
                f"Checkout {session.get('id')} paid for {slug}, which already "
                f"belongs to another customer; needs manual review"
            )
            raise ValueError(f"Site {slug} belongs to another customer")
        # A retry after a partial failure: finish the job, don't duplicate it.
        logger.warning(f"Site for {slug} already exists, not creating another")
        if existing.deploy_jobs.count() == 0:
            deploy_queue.enqueue(existing.id)
        return customer.id, existing.id

    reservation = convert_reservation(slug, email=email)
    if reservation is None:
        logger.error(
            f"Checkout {session.get('id')} paid for {slug} but the hold is gone "
            f"or held by someone else; needs manual review"
        )
        raise ValueError(f"Reservation for {slug} is not held by {email}")

    customer = upsert_customer(email, session.get("customer"))
    site = create_site(
        customer_id=customer.id,
        slug=slug,
        plan=DEFAULT_PLAN,
        template_id=reservation.template_id or metadata.get("template_id"),
        intake_data=reservation.intake_data,
        generated_content=reservation.generated_content,
        stripe_subscription_id=session.get("subscription"),
    )
    deploy_queue.enqueue(site.id)

    return customer.id, site.id


def _site_for_invoice(invoice):
    """Resolve (customer_id, site) for an invoice event."""
    customer = get_customer_by_stripe_id(invoice.get("customer"))
    site = None
    subscription_id = invoice.get("subscription")
    if subscription_id:
        site = get_site_by_subscription_id(subscription_id)
    return (customer.id if customer else None), site


def _handle_payment_failed(event):
    """Handle invoice.payment_failed.

    Links the ledger row to the site; suspension happens later, once the
    grace period has passed (see site_service.get_sites_for_suspension).
    """
    invoice = event["data"]["object"]
    customer_id, site = _site_for_invoice(invoice)

    if site is None:
        logger.warning(
            f"invoice.payment_failed: no site for subscription={invoice.get('subscription')}"
        )
        return customer_id, None

    logger.info(f"Payment failed for site {site.slug}")
    return customer_id, site.id


def _handle_payment_succeeded(event):
    """Handle invoice.payment_succeeded.

    A payment on a suspended site reactivates it and queues a redeploy,
    since suspension took the hosting project down.
    """
    invoice = event["data"]["object"]
    customer_id, site = _site_for_invoice(invoice)

    if site is None:
        return customer_id, None

    if site.status == SiteStatus.SUSPENDED:
        _, applied = transition_site_status(site.id, SiteStatus.ACTIVE)
        if applied:
            deploy_queue.enqueue(site.id)
            logger.info(f"Reactivated site {site.slug} after payment")

    return customer_id, site.id


def _handle_subscription_deleted(event):
    """Handle customer.subscription.deleted: suspend the site now."""
    subscription = event["data"]["object"]
    site = get_site_by_subscription_id(subscription.get("id"))

    if site is None:
        logger.warning(
            f"subscription.deleted: no site for sub={subscription.get('id')}"
        )
        return None, None

    if site.status == SiteStatus.ACTIVE:
        suspend_site(site.id, "subscription cancelled")
    return site.customer_id, site.id
