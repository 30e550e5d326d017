"""
Curriculum Progress Engine
Notification domain model.

Models:
    - Notification: in-app notification for a student with read tracking.
      Created as a side effect of approval, rejection and unlocking; the
      engine never mutates one beyond marking it read.
"""

from datetime import datetime, timezone

from curriculum.models import db


# ── Constants ────────────────────────────────────────────────────────────────

COURSE_COMPLETED = "course_completed"
COURSE_REJECTED = "course_rejected"
COURSE_UNLOCKED = "course_unlocked"
SEMESTER_UNLOCKED = "semester_unlocked"

NOTIFICATION_TYPES = {COURSE_COMPLETED, COURSE_REJECTED, COURSE_UNLOCKED, SEMESTER_UNLOCKED}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_recipient_read", "recipient_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False, default="")
    payload = db.Column(db.JSON, nullable=False, default=dict, comment="courseId / semesterId / reason …")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "payload": dict(self.payload or {}),
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} → {self.recipient_id}>"
