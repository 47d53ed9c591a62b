"""Customer model.

One row per paying email address, linked to its Stripe customer.
Upserted by the checkout.session.completed webhook.
"""

import uuid
from datetime import datetime, timezone

from app.extensions import db


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(
        db.String(255), unique=True, nullable=False
    )  # always stored lowercase
    stripe_customer_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "cus_Abc..."
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # --- Relationships ---
    sites = db.relationship("Site", back_populates="customer", lazy="dynamic")

    def __repr__(self):
        return f"<Customer {self.email}>"
