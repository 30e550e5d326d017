"""
Approval Workflow: admin approve / reject of a progress record.

approve:
    pending_approval → completed, stamps approved_at / approved_by / completed_at,
    then propagates unlocks and notifies the student. Approving a record that
    is already completed is a no-op success (no notifications, no unlocks), so
    re-running a bulk pass is safe.

reject:
    pending_approval → rejected with a required reason. No unlock propagation.

Unlock propagation compares the resolver output for the student's program and
selected major before and after the approval. Whatever moved out of ``locked``
is reported in ``UnlockResult``; callers must not re-derive it. Propagation
runs after the approval is persisted. A failure there is logged and reported
in ``ApprovalResult.unlock_error``, and the approval stays in place.

Usage:
    from curriculum.services.approval_service import approve, reject

    result = approve(progress_id=42, admin_id="admin-1")
    result.unlock_result.unlocked_courses   # -> [13]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from curriculum.core.exceptions import (
    ENGINE_ERRORS,
    AlreadyTerminalError,
    TransitionError,
    ValidationError,
)
from curriculum.models.progress import COMPLETED, PENDING_APPROVAL, REJECTED
from curriculum.services.curriculum_views import load_snapshot, resolve_snapshot
from curriculum.services.notification import NotificationService
from curriculum.services.unlock_resolver import ItemStatus, newly_unlocked
from curriculum.stores import (
    CourseStore,
    ProgressStore,
    SemesterStore,
    StudentStore,
    TrackingLogStore,
)

logger = logging.getLogger(__name__)


@dataclass
class UnlockResult:
    unlocked_courses: list[int] = field(default_factory=list)
    unlocked_semester: int | None = None
    unlocked_major_courses: list[int] = field(default_factory=list)
    notification_ids: list[int] = field(default_factory=list)

    @property
    def has_unlocks(self) -> bool:
        return bool(self.unlocked_courses or self.unlocked_semester or self.unlocked_major_courses)

    def to_dict(self) -> dict:
        return {
            "unlocked_courses": list(self.unlocked_courses),
            "unlocked_semester": self.unlocked_semester,
            "unlocked_major_courses": list(self.unlocked_major_courses),
            "notification_ids": list(self.notification_ids),
        }


@dataclass
class ApprovalResult:
    progress: object
    unlock_result: UnlockResult = field(default_factory=UnlockResult)
    notification_created: bool = False
    already_completed: bool = False
    unlock_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "progress": self.progress.to_dict(),
            "unlock_result": self.unlock_result.to_dict(),
            "notification_created": self.notification_created,
            "already_completed": self.already_completed,
            "unlock_error": self.unlock_error,
        }


def _require_admin(admin_id) -> str:
    if admin_id is None or not str(admin_id).strip():
        raise ValidationError("admin_id is required", details={"admin_id": "required"})
    return str(admin_id).strip()


def _program_course_statuses(snapshot, resolution) -> dict:
    """``{course_id: ItemStatus}`` across the whole program, semester overlay applied."""
    statuses = {}
    for semester in snapshot.semesters:
        for course in snapshot.courses_by_semester.get(semester.id, []):
            statuses[course.id] = resolution.course_status(semester.id, course.id)
    return statuses


# ═════════════════════════════════════════════════════════════════════════════
# Approve
# ═════════════════════════════════════════════════════════════════════════════


def approve(progress_id, admin_id) -> ApprovalResult:
    """Approve a pending progress record and propagate unlocks.

    Raises:
        ValidationError: missing admin id.
        NotFoundError: record or its course does not exist.
        TransitionError: record is neither pending_approval nor completed.
        StoreError: persisting the approval failed.
    """
    admin_id = _require_admin(admin_id)
    record = ProgressStore.require(progress_id)

    if record.status == COMPLETED:
        logger.info(
            "Progress %s already completed, approve is a no-op", record.id,
            extra={"progress_id": record.id, "admin_id": admin_id},
        )
        return ApprovalResult(progress=record, already_completed=True)

    if record.status != PENDING_APPROVAL:
        raise TransitionError(record.id, "approve", record.status, "record is not awaiting approval")

    course = CourseStore.require(record.course_id)
    before_snapshot = load_snapshot(record.student_id)
    before = resolve_snapshot(before_snapshot)

    previous_status = record.status
    now = datetime.now(timezone.utc)
    record = ProgressStore.update(
        record.id,
        {
            "status": COMPLETED,
            "approved_at": now,
            "approved_by": admin_id,
            "completed_at": now,
            "rejection_reason": None,
        },
        log_entries=[{
            "student_id": record.student_id,
            "course_id": record.course_id,
            "action": "approve",
            "performed_by": admin_id,
            "previous_value": previous_status,
            "new_value": COMPLETED,
        }],
    )
    logger.info(
        "Progress %s approved by %s", record.id, admin_id,
        extra={
            "progress_id": record.id, "student_id": record.student_id,
            "course_id": record.course_id, "admin_id": admin_id,
        },
    )

    result = ApprovalResult(progress=record)

    try:
        notif = NotificationService.notify_course_completed(record.student_id, course)
        result.notification_created = True
        result.unlock_result.notification_ids.append(notif.id)
    except ENGINE_ERRORS:
        logger.exception(
            "Completion notification failed for progress %s", record.id,
            extra={"progress_id": record.id},
        )

    try:
        _propagate_unlocks(record, before_snapshot, before, admin_id, result.unlock_result)
    except ENGINE_ERRORS as exc:
        logger.exception(
            "Unlock propagation failed after approving progress %s", record.id,
            extra={"progress_id": record.id, "student_id": record.student_id},
        )
        result.unlock_error = str(exc)

    return result


def _propagate_unlocks(record, before_snapshot, before, admin_id, unlock: UnlockResult) -> None:
    after_snapshot = load_snapshot(record.student_id)
    after = resolve_snapshot(after_snapshot)
    student_id = record.student_id

    program_after = _program_course_statuses(after_snapshot, after)
    unlock.unlocked_courses = newly_unlocked(
        _program_course_statuses(before_snapshot, before), program_after,
    )
    if before_snapshot.major_id == after_snapshot.major_id:
        unlock.unlocked_major_courses = newly_unlocked(before.major, after.major)
    semesters = newly_unlocked(before.semesters, after.semesters)
    unlock.unlocked_semester = semesters[0] if semesters else None

    # A course takes its status from the sequence that unlocked it. The major
    # sequence may still show a program-unlocked course as locked.
    targets = {cid: program_after.get(cid, ItemStatus.IN_PROGRESS) for cid in unlock.unlocked_courses}
    for cid in unlock.unlocked_major_courses:
        targets.setdefault(cid, after.major.get(cid, ItemStatus.IN_PROGRESS))

    for course_id, status in targets.items():
        ProgressStore.get_or_create(student_id, course_id)
        TrackingLogStore.append(
            student_id=student_id,
            course_id=course_id,
            action="unlock_course",
            performed_by=admin_id,
            previous_value=ItemStatus.LOCKED.value,
            new_value=status.value,
        )
        course = after_snapshot.courses_by_id.get(course_id) or CourseStore.require(course_id)
        if status == ItemStatus.IN_PROGRESS:
            notif = NotificationService.notify_course_unlocked(student_id, course)
            unlock.notification_ids.append(notif.id)
        logger.info(
            "Course %s unlocked for student %s", course_id, student_id,
            extra={"student_id": student_id, "course_id": course_id, "progress_id": record.id},
        )

    if unlock.unlocked_semester is not None:
        semester = SemesterStore.require(unlock.unlocked_semester)
        previous_semester = after_snapshot.student.current_semester_id
        StudentStore.update_current_semester(student_id, semester.id)
        TrackingLogStore.append(
            student_id=student_id,
            course_id=None,
            action="unlock_semester",
            performed_by=admin_id,
            previous_value=previous_semester,
            new_value=semester.id,
        )
        notif = NotificationService.notify_semester_unlocked(student_id, semester)
        unlock.notification_ids.append(notif.id)
        logger.info(
            "Semester %s unlocked for student %s", semester.id, student_id,
            extra={"student_id": student_id, "progress_id": record.id},
        )


# ═════════════════════════════════════════════════════════════════════════════
# Reject
# ═════════════════════════════════════════════════════════════════════════════


def reject(progress_id, reason, admin_id) -> dict:
    """Reject a pending progress record with a reason.

    Returns:
        The updated record as a dict.

    Raises:
        ValidationError: empty reason or missing admin id.
        NotFoundError: record does not exist.
        AlreadyTerminalError: record is completed.
        TransitionError: record is not pending_approval.
    """
    reason = reason.strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("rejection reason required", details={"reason": "required"})
    admin_id = _require_admin(admin_id)

    record = ProgressStore.require(progress_id)
    if record.status == COMPLETED:
        raise AlreadyTerminalError(record.id, "reject")
    if record.status != PENDING_APPROVAL:
        raise TransitionError(record.id, "reject", record.status, "record is not awaiting approval")

    previous_status = record.status
    record = ProgressStore.update(
        record.id,
        {"status": REJECTED, "rejection_reason": reason},
        log_entries=[{
            "student_id": record.student_id,
            "course_id": record.course_id,
            "action": "reject",
            "performed_by": admin_id,
            "previous_value": previous_status,
            "new_value": {"status": REJECTED, "reason": reason},
        }],
    )
    logger.info(
        "Progress %s rejected by %s", record.id, admin_id,
        extra={
            "progress_id": record.id, "student_id": record.student_id,
            "course_id": record.course_id, "admin_id": admin_id,
        },
    )

    try:
        course = CourseStore.require(record.course_id)
        NotificationService.notify_course_rejected(record.student_id, course, reason)
    except ENGINE_ERRORS:
        logger.exception("Rejection notification failed for progress %s", record.id,
                         extra={"progress_id": record.id})

    return record.to_dict()
