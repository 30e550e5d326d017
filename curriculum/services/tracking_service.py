"""
Progress Tracking Service.

Single write path for a progress record's raw counters (sessions, projects,
project links). Used by the admin inline editor and by the student actions
``record_session`` / ``submit_project``.

Each update:
  - validates with the same validators the inline editor runs
  - writes one TrackingLog row per changed field (one per added/removed link)
  - moves the status along the progress machine:
        not_started / rejected → in_progress → pending_approval (when it can pass)
        pending_approval → in_progress (when it no longer can)
    ``completed`` is terminal: counters may still be corrected, status stays.

The read of the record and the write of the new counters/status are separate
store calls with no transaction around them. Two concurrent writers race and
the last write wins.

Usage:
    from curriculum.services.tracking_service import update_progress

    result = update_progress(42, {"completed_sessions": 5}, performed_by="admin-1")
    result["status_changed"]   # -> True
"""

from __future__ import annotations

import logging

from curriculum.core.exceptions import ValidationError
from curriculum.models.progress import COUNTER_FIELDS, PENDING_APPROVAL, REJECTED
from curriculum.services.curriculum_views import course_access_status
from curriculum.services.progress_status import (
    check_pass_condition,
    derive_status,
    project_count_error,
    project_link_error,
    project_links_error,
    session_count_error,
    status_path,
)
from curriculum.services.unlock_resolver import ItemStatus
from curriculum.stores import (
    CourseStore,
    ProgressStore,
    StudentStore,
    TrackingLogStore,
)

logger = logging.getLogger(__name__)


def _normalize_links(links) -> list[str]:
    return [link.strip() for link in links]


def _validate_changes(changes: dict, course) -> dict:
    """Return ``{field: error}`` for every invalid value in *changes*."""
    errors = {}
    if "completed_sessions" in changes:
        err = session_count_error(changes["completed_sessions"], course.required_sessions)
        if err:
            errors["completed_sessions"] = err
    if "projects_submitted" in changes:
        err = project_count_error(changes["projects_submitted"], course.required_projects)
        if err:
            errors["projects_submitted"] = err
    if "project_links" in changes:
        err = project_links_error(changes["project_links"])
        if err:
            errors["project_links"] = err
    return errors


# ═════════════════════════════════════════════════════════════════════════════
# Counter updates
# ═════════════════════════════════════════════════════════════════════════════


def update_progress(progress_id, changes: dict, performed_by: str = "system") -> dict:
    """Apply counter *changes* to a progress record.

    Args:
        progress_id: ProgressRecord PK.
        changes: subset of ``completed_sessions``, ``projects_submitted``,
            ``project_links``.
        performed_by: actor recorded on the tracking rows.

    Returns:
        ``{"progress": dict, "status_changed": bool, "previous_status": str}``

    Raises:
        NotFoundError: record or its course does not exist.
        ValidationError: unknown field or an invalid value.
    """
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes given")
    unknown = sorted(set(changes) - set(COUNTER_FIELDS))
    if unknown:
        raise ValidationError(
            f"Fields cannot be edited: {', '.join(unknown)}",
            details={f: "not editable" for f in unknown},
        )

    record = ProgressStore.require(progress_id)
    course = CourseStore.require(record.course_id)

    errors = _validate_changes(changes, course)
    if errors:
        raise ValidationError(next(iter(errors.values())), details=errors)

    fields: dict = {}
    log_entries: list[dict] = []
    log_base = {
        "student_id": record.student_id,
        "course_id": record.course_id,
        "performed_by": performed_by,
    }

    sessions = record.completed_sessions
    if "completed_sessions" in changes and changes["completed_sessions"] != sessions:
        fields["completed_sessions"] = changes["completed_sessions"]
        log_entries.append({
            **log_base, "action": "update_sessions",
            "previous_value": sessions, "new_value": changes["completed_sessions"],
        })

    projects = record.projects_submitted
    if "projects_submitted" in changes and changes["projects_submitted"] != projects:
        fields["projects_submitted"] = changes["projects_submitted"]
        log_entries.append({
            **log_base, "action": "update_projects",
            "previous_value": projects, "new_value": changes["projects_submitted"],
        })

    old_links = record.links
    if "project_links" in changes:
        new_links = _normalize_links(changes["project_links"])
        if new_links != old_links:
            fields["project_links"] = new_links
            for link in new_links:
                if link not in old_links:
                    log_entries.append({**log_base, "action": "add_project_link", "new_value": link})
            for link in old_links:
                if link not in new_links:
                    log_entries.append({**log_base, "action": "remove_project_link", "previous_value": link})

    previous_status = record.status
    if not fields:
        return {"progress": record.to_dict(), "status_changed": False, "previous_status": previous_status}

    pass_condition = check_pass_condition(
        fields.get("completed_sessions", sessions),
        fields.get("projects_submitted", projects),
        fields.get("project_links", old_links),
        course.required_sessions,
        course.required_projects,
    )
    path = status_path(previous_status, pass_condition)
    if path:
        fields["status"] = path[-1]
        if previous_status == REJECTED:
            fields["rejection_reason"] = None

    record = ProgressStore.update(record.id, fields, log_entries=log_entries)

    status_changed = record.status != previous_status
    if status_changed:
        logger.info(
            "Progress %s: %s → %s",
            record.id, previous_status, record.status,
            extra={"progress_id": record.id, "student_id": record.student_id, "course_id": record.course_id},
        )
        if record.status == PENDING_APPROVAL:
            logger.info("Progress %s queued for approval", record.id, extra={"progress_id": record.id})

    return {"progress": record.to_dict(), "status_changed": status_changed, "previous_status": previous_status}


# ═════════════════════════════════════════════════════════════════════════════
# Student actions
# ═════════════════════════════════════════════════════════════════════════════


def _open_record_for_student(student_id, course_id):
    StudentStore.require(student_id)
    course = CourseStore.require(course_id)
    if course_access_status(student_id, course) == ItemStatus.LOCKED:
        raise ValidationError(
            f"Course {course.title} is locked",
            details={"course_id": course.id, "status": ItemStatus.LOCKED.value},
        )
    record, created = ProgressStore.get_or_create(student_id, course.id)
    if created:
        logger.info(
            "Progress record created for student %s course %s", student_id, course.id,
            extra={"progress_id": record.id, "student_id": student_id, "course_id": course.id},
        )
    return record, course


def record_session(student_id, course_id) -> dict:
    """Count one completed session, capped at the course requirement."""
    record, course = _open_record_for_student(student_id, course_id)
    sessions = min(record.completed_sessions + 1, course.required_sessions)
    return update_progress(record.id, {"completed_sessions": sessions}, performed_by=f"student:{student_id}")


def submit_project(student_id, course_id, link) -> dict:
    """Attach a project link and count the submission, capped at the requirement."""
    err = project_link_error(link)
    if err:
        raise ValidationError(err, details={"link": err})
    record, course = _open_record_for_student(student_id, course_id)

    link = link.strip()
    if link in record.links:
        raise ValidationError("Project link already submitted", details={"link": link})

    changes = {
        "project_links": record.links + [link],
        "projects_submitted": min(record.projects_submitted + 1, course.required_projects),
    }
    return update_progress(record.id, changes, performed_by=f"student:{student_id}")


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def get_pass_condition_status(progress_id) -> dict:
    record = ProgressStore.require(progress_id)
    course = CourseStore.require(record.course_id)
    result = derive_status(record, course)
    return {
        "progress_id": record.id,
        "status": record.status,
        "awaiting_action": record.is_awaiting_action,
        **result.to_dict(),
    }


def list_pending_approval(course_id=None) -> list[dict]:
    """Records in the admin approval queue, oldest update first."""
    records = ProgressStore.find_by_status(PENDING_APPROVAL, course_id=course_id)
    courses = CourseStore.find_by_ids(r.course_id for r in records)
    items = []
    for record in records:
        course = courses.get(record.course_id)
        item = record.to_dict()
        item["course"] = course.to_dict() if course else None
        item["pass_condition"] = derive_status(record, course).to_dict() if course else None
        items.append(item)
    return items


def list_tracking_logs(progress_id) -> list[dict]:
    record = ProgressStore.require(progress_id)
    return [log.to_dict() for log in TrackingLogStore.find(record.student_id, record.course_id)]
