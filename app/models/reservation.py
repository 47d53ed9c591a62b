"""Slug reservation model.

A reservation is a time-bounded hold on a subdomain slug while the
visitor fills in the intake form. The slug is the primary key, so two
concurrent reservers of the same slug can never both insert a row.

Lifecycle:
    free -> reserved -> converted  (paid; permanent, never swept)
                     -> expired    (deleted by cleanup_expired_reservations)
"""

from datetime import datetime, timezone

from app.extensions import db


class SlugReservation(db.Model):
    __tablename__ = "slug_reservations"

    slug = db.Column(db.String(50), primary_key=True)  # normalized lowercase
    email = db.Column(db.String(255), nullable=True)
    session_id = db.Column(
        db.String(255), nullable=True
    )  # browser session that holds the slug
    template_id = db.Column(db.String(50), nullable=True)
    intake_data = db.Column(db.JSON, nullable=True)
    generated_content = db.Column(db.JSON, nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    converted = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_slug_reservations_expiry", "expires_at", "converted"),
    )

    def __repr__(self):
        state = "converted" if self.converted else "held"
        return f"<SlugReservation {self.slug} ({state})>"
