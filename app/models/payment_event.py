"""Payment event model (webhook ledger).

Every Stripe webhook event is recorded by its Stripe event ID before
anything else happens. The unique constraint on stripe_event_id is what
makes at-least-once delivery safe: a redelivered event finds the
existing row, and processed=True short-circuits all side effects.
claimed_at marks a delivery that is being handled right now, so a
redelivery racing the first one backs off instead of running the
handler a second time.

Rows linked to a site (site_id) also drive the suspension query.
"""

import uuid
from datetime import datetime, timezone

from app.extensions import db


class PaymentEvent(db.Model):
    __tablename__ = "payment_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "invoice.payment_failed"
    payload = db.Column(db.JSON, nullable=True)
    processed = db.Column(db.Boolean, default=False, nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    site_id = db.Column(
        db.String(36), db.ForeignKey("sites.id"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_payment_events_site_type", "site_id", "event_type"),
    )

    def __repr__(self):
        return f"<PaymentEvent {self.stripe_event_id} ({self.event_type})>"
