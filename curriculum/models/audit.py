"""
Curriculum Progress Engine
Audit domain model.

Models:
    - TrackingLog: immutable, append-only trail of every counter change,
      approval decision and unlock performed on a student's progress.
"""

from datetime import datetime, timezone

from curriculum.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TRACKING_ACTIONS = {
    # Counter edits
    "update_sessions",
    "update_projects",
    "add_project_link",
    "remove_project_link",
    # Approval decisions
    "approve",
    "reject",
    # Unlock propagation
    "unlock_course",
    "unlock_semester",
}


class TrackingLog(db.Model):
    """
    One row per tracked action.

    ``previous_value`` / ``new_value`` hold the JSON-serialisable before/after
    of the field the action touched (a count, a link, a status, a semester id).
    """

    __tablename__ = "tracking_logs"
    __table_args__ = (
        db.Index("idx_tracking_student_course", "student_id", "course_id"),
        db.Index("idx_tracking_action", "action"),
        db.Index("idx_tracking_ts", "performed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, nullable=False)
    course_id = db.Column(db.Integer, nullable=True)

    action = db.Column(db.String(40), nullable=False)
    previous_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)

    performed_by = db.Column(db.String(150), nullable=False, default="system")
    performed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "action": self.action,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "performed_by": self.performed_by,
            "performed_at": self.performed_at.isoformat() if self.performed_at else None,
        }

    def __repr__(self):
        return f"<TrackingLog {self.id}: {self.action} student={self.student_id} course={self.course_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_tracking_log(
    *,
    student_id: int,
    course_id: int | None,
    action: str,
    performed_by: str = "system",
    previous_value=None,
    new_value=None,
) -> TrackingLog:
    """
    Append a single tracking row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) TrackingLog instance.
    """
    if action not in TRACKING_ACTIONS:
        raise ValueError(f"Unknown tracking action: {action}")

    log = TrackingLog(
        student_id=student_id,
        course_id=course_id,
        action=action,
        previous_value=previous_value,
        new_value=new_value,
        performed_by=str(performed_by or "system"),
    )
    db.session.add(log)
    db.session.flush()
    return log
