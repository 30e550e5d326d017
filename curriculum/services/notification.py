"""
Student notifications.

Approval, rejection and unlocking each drop one message into the student's
inbox; the notification blueprint reads and acknowledges them.
"""

import logging
from datetime import datetime, timezone

from curriculum.core.exceptions import NotFoundError
from curriculum.models.notification import (
    COURSE_COMPLETED,
    COURSE_REJECTED,
    COURSE_UNLOCKED,
    SEMESTER_UNLOCKED,
)
from curriculum.stores import NotificationStore

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    def create(*, recipient_id, type, title, message="", payload=None):
        notif = NotificationStore.create(
            recipient_id=recipient_id, type=type, title=title,
            message=message, payload=payload,
        )
        logger.debug("Notified student %s: %s", recipient_id, type,
                     extra={"student_id": recipient_id})
        return notif

    # ── Workflow events ───────────────────────────────────────────────────

    @staticmethod
    def notify_course_completed(student_id, course):
        return NotificationService.create(
            recipient_id=student_id,
            type=COURSE_COMPLETED,
            title=f"Course completed: {course.title}",
            message=f"Your work on {course.title} has been approved.",
            payload={"course_id": course.id},
        )

    @staticmethod
    def notify_course_rejected(student_id, course, reason):
        return NotificationService.create(
            recipient_id=student_id,
            type=COURSE_REJECTED,
            title=f"Course needs changes: {course.title}",
            message=reason,
            payload={"course_id": course.id, "reason": reason},
        )

    @staticmethod
    def notify_course_unlocked(student_id, course):
        return NotificationService.create(
            recipient_id=student_id,
            type=COURSE_UNLOCKED,
            title=f"New course unlocked: {course.title}",
            message=f"You can now start {course.title}.",
            payload={"course_id": course.id},
        )

    @staticmethod
    def notify_semester_unlocked(student_id, semester):
        return NotificationService.create(
            recipient_id=student_id,
            type=SEMESTER_UNLOCKED,
            title=f"New semester unlocked: {semester.name}",
            message=f"{semester.name} is now open.",
            payload={"semester_id": semester.id},
        )

    # ── Inbox ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """Newest first. Returns ``(items, total)``."""
        return NotificationStore.page(
            recipient_id, unread_only=unread_only, limit=limit, offset=offset,
        )

    @staticmethod
    def unread_count(recipient_id):
        return NotificationStore.count_unread(recipient_id)

    @staticmethod
    def mark_read(notification_id):
        notif = NotificationStore.mark_read(notification_id)
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Returns how many notifications flipped to read."""
        return NotificationStore.mark_all_read(recipient_id, datetime.now(timezone.utc))
