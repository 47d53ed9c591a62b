"""Site model.

A paid, published website. Created from a converted slug reservation
when Stripe reports a completed checkout.

Invariant (enforced by site_service.set_site_status):
    status == active     -> suspended_at is NULL
    -> suspended         stamps suspended_at
    -> active            clears suspended_at, stamps deployed_at if unset
"""

import enum
import uuid
from datetime import datetime, timezone

from app.extensions import db


class SiteStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Site(db.Model):
    __tablename__ = "sites"

    # -- Valid status transitions (enforced in site_service) --
    VALID_TRANSITIONS = {
        SiteStatus.ACTIVE: [SiteStatus.SUSPENDED],
        SiteStatus.SUSPENDED: [SiteStatus.ACTIVE],
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=False
    )
    slug = db.Column(db.String(50), unique=True, nullable=False)
    plan = db.Column(db.String(50), nullable=True)  # starter | pro
    template_id = db.Column(db.String(50), nullable=True)
    intake_data = db.Column(db.JSON, nullable=True)
    generated_content = db.Column(db.JSON, nullable=True)
    stripe_subscription_id = db.Column(
        db.String(255), unique=True, nullable=True
    )
    cloudflare_project_id = db.Column(
        db.String(255), nullable=True
    )  # Pages project name, e.g. "llc-smith-plumbing"
    published_url = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.Enum(
            SiteStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=SiteStatus.ACTIVE,
        nullable=False,
    )
    deployed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    suspended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # --- Relationships ---
    customer = db.relationship("Customer", back_populates="sites")
    deploy_jobs = db.relationship(
        "DeployJob", back_populates="site", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Site {self.slug} ({self.status.value})>"
