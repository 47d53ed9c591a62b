"""Payment ledger — idempotent record of Stripe webhook events.

Stripe delivers webhooks at least once. record_event() is insert-if-absent
on the Stripe event id, so a redelivery returns the row written the first
time instead of creating a second one. Before any side effect a
delivery must win claim_event(), a conditional update that at most one
concurrent delivery can apply. mark_processed() closes the event for
good; release_claim() hands it back after a handler failure so the next
redelivery can try again.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models.payment_event import PaymentEvent

logger = logging.getLogger(__name__)


def _to_dict(event):
    """Return a JSON-serializable copy of a Stripe event (or plain dict)."""
    if hasattr(event, "to_dict_recursive"):
        return event.to_dict_recursive()
    if hasattr(event, "to_dict"):
        return event.to_dict()
    return dict(event)


def get_event(stripe_event_id):
    """Return the ledger row for a Stripe event id, or None."""
    return PaymentEvent.query.filter_by(stripe_event_id=stripe_event_id).first()


def record_event(event):
    """Insert the event keyed by its Stripe id; on conflict return the existing row.

    The existing row is never modified by a duplicate delivery.
    """
    stripe_event_id = event["id"]

    try:
        db.session.execute(
            db.insert(PaymentEvent).values(
                stripe_event_id=stripe_event_id,
                event_type=event["type"],
                payload=_to_dict(event),
                processed=False,
            )
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Duplicate delivery of {stripe_event_id}, keeping first record")

    return get_event(stripe_event_id)


def mark_processed(stripe_event_id, customer_id=None, site_id=None):
    """Flag an event as handled and link it to its customer/site.

    Safe to call more than once; links already set are kept when the
    new call passes None. Returns the row, or None if it was never recorded.
    """
    values = {"processed": True}
    if customer_id is not None:
        values["customer_id"] = customer_id
    if site_id is not None:
        values["site_id"] = site_id

    db.session.execute(
        db.update(PaymentEvent)
        .where(PaymentEvent.stripe_event_id == stripe_event_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return get_event(stripe_event_id)


def is_processed(stripe_event_id):
    """True if the event was recorded and already handled."""
    processed = (
        db.session.query(PaymentEvent.processed)
        .filter_by(stripe_event_id=stripe_event_id)
        .scalar()
    )
    return bool(processed)


def claim_event(stripe_event_id, lease_minutes=None):
    """Take the right to run side effects for an unprocessed event.

    Succeeds for exactly one caller among concurrent deliveries. A claim
    older than lease_minutes (default WEBHOOK_CLAIM_MINUTES) belongs to a
    delivery that died mid-flight and may be taken over.

    Returns True if this caller now holds the claim.
    """
    if lease_minutes is None:
        lease_minutes = current_app.config["WEBHOOK_CLAIM_MINUTES"]

    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=lease_minutes)

    result = db.session.execute(
        db.update(PaymentEvent)
        .where(
            PaymentEvent.stripe_event_id == stripe_event_id,
            PaymentEvent.processed.is_(False),
            db.or_(
                PaymentEvent.claimed_at.is_(None),
                PaymentEvent.claimed_at < cutoff,
            ),
        )
        .values(claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    if result.rowcount != 1:
        logger.info(f"Event {stripe_event_id} is processed or claimed by another delivery")
        return False
    return True


def release_claim(stripe_event_id):
    """Drop the claim on an event that is still unprocessed."""
    db.session.execute(
        db.update(PaymentEvent)
        .where(
            PaymentEvent.stripe_event_id == stripe_event_id,
            PaymentEvent.processed.is_(False),
        )
        .values(claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
