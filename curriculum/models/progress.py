"""
Curriculum Progress Engine
Progress domain model.

Models:
    - ProgressRecord: one row per (student, course) holding raw counters and
      approval state. Created lazily; never deleted.

Lifecycle states (persisted):
    not_started → in_progress → pending_approval → completed
                                   pending_approval → rejected → in_progress

``locked`` is a view status computed by the unlock resolver. It is accepted by
``describe_status`` for rendering but can never be written to a record.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from curriculum.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
PENDING_APPROVAL = "pending_approval"
COMPLETED = "completed"
REJECTED = "rejected"
LOCKED = "locked"

PROGRESS_STATUSES = {NOT_STARTED, IN_PROGRESS, PENDING_APPROVAL, COMPLETED, REJECTED}
VIEW_STATUSES = {LOCKED, IN_PROGRESS, COMPLETED}

# Raw counters an admin or student may change.
COUNTER_FIELDS = ("completed_sessions", "projects_submitted", "project_links")

PROGRESS_TRANSITIONS = {
    NOT_STARTED:      [IN_PROGRESS],
    IN_PROGRESS:      [IN_PROGRESS, PENDING_APPROVAL],
    PENDING_APPROVAL: [COMPLETED, REJECTED, IN_PROGRESS],
    REJECTED:         [IN_PROGRESS],
    COMPLETED:        [],
}

# status → (label, badge colour). Covers every persisted status plus the
# locked overlay; keep in sync with PROGRESS_STATUSES | VIEW_STATUSES.
STATUS_BADGES = {
    NOT_STARTED:      ("Not started", "gray"),
    IN_PROGRESS:      ("In progress", "blue"),
    PENDING_APPROVAL: ("Pending approval", "amber"),
    COMPLETED:        ("Completed", "green"),
    REJECTED:         ("Rejected", "red"),
    LOCKED:           ("Locked", "slate"),
}


def validate_progress_transition(old_status, new_status):
    """Return True if moving from *old_status* to *new_status* is allowed."""
    return new_status in PROGRESS_TRANSITIONS.get(old_status, [])


def describe_status(status):
    """Return ``{"status", "label", "badge"}`` for a persisted or view status.

    Raises:
        ValueError: for a status no badge is defined for.
    """
    try:
        label, badge = STATUS_BADGES[status]
    except KeyError:
        raise ValueError(f"Unknown progress status: {status!r}") from None
    return {"status": status, "label": label, "badge": badge}


def _utcnow():
    return datetime.now(timezone.utc)


class ProgressRecord(db.Model):
    """
    Per-student, per-course progress.

    Invariants:
        - rejection_reason is set iff status == rejected
        - approved_at / approved_by are set iff status == completed
    """

    __tablename__ = "progress_records"
    __table_args__ = (
        db.UniqueConstraint("student_id", "course_id", name="uq_progress_student_course"),
        db.Index("idx_progress_status", "status"),
        db.Index("idx_progress_course_status", "course_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer, db.ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    # Raw counters
    completed_sessions = db.Column(db.Integer, nullable=False, default=0)
    projects_submitted = db.Column(db.Integer, nullable=False, default=0)
    project_links = db.Column(db.JSON, nullable=False, default=list)

    # Approval state
    status = db.Column(db.String(30), nullable=False, default=NOT_STARTED)
    rejection_reason = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(150), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @validates("status")
    def _validate_status(self, key, value):
        if value not in PROGRESS_STATUSES:
            # locked included: it is a view overlay, not a stored state
            raise ValueError(f"Cannot persist progress status {value!r}")
        return value

    @validates("completed_sessions", "projects_submitted")
    def _validate_counter(self, key, value):
        if value is None or int(value) < 0:
            raise ValueError(f"{key} must be >= 0")
        return int(value)

    @property
    def links(self):
        return list(self.project_links or [])

    @property
    def is_completed(self):
        return self.status == COMPLETED

    @property
    def is_awaiting_action(self):
        return self.status == PENDING_APPROVAL

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "completed_sessions": self.completed_sessions,
            "projects_submitted": self.projects_submitted,
            "project_links": self.links,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approved_by": self.approved_by,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProgressRecord {self.id}: student={self.student_id} course={self.course_id} {self.status}>"
