"""Deploy job model (work queue).

One row per attempt-series to publish a site. Workers claim the oldest
pending row with SELECT ... FOR UPDATE SKIP LOCKED, so pollers never
block on each other.

    pending -> processing -> completed
                          -> failed -> pending   (retry sweep, attempts < max)
    processing -> pending                        (stale-claim reaper)
"""

import enum
import uuid
from datetime import datetime, timezone

from app.extensions import db


class DeployStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DeployJob(db.Model):
    __tablename__ = "deploy_jobs"

    # -- Valid status transitions (enforced in deploy_queue) --
    VALID_TRANSITIONS = {
        DeployStatus.PENDING: [DeployStatus.PROCESSING],
        DeployStatus.PROCESSING: [
            DeployStatus.COMPLETED,
            DeployStatus.FAILED,
            DeployStatus.PENDING,
        ],
        DeployStatus.FAILED: [DeployStatus.PENDING],
        DeployStatus.COMPLETED: [],
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    site_id = db.Column(
        db.String(36), db.ForeignKey("sites.id"), nullable=False
    )
    status = db.Column(
        db.Enum(
            DeployStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=DeployStatus.PENDING,
        nullable=False,
    )
    attempts = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_deploy_jobs_status_created", "status", "created_at"),
    )

    # --- Relationships ---
    site = db.relationship("Site", back_populates="deploy_jobs")

    @classmethod
    def can_transition(cls, old, new):
        return new in cls.VALID_TRANSITIONS.get(old, [])

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<DeployJob {self.id} site={self.site_id} ({self.status.value})>"
