"""
Persistence collaborators.

The engine reads and writes records only through these stores. Each store is a
stateless class of static methods over ``db.session``; writes commit
immediately and there is no transaction spanning a read and a later write
(read-modify-write, last write wins).

Failure translation:
    SQLAlchemyError  → session rollback + StoreError (original chained)
    model ValueError → ValidationError (e.g. a negative counter)
    missing row      → None from ``get``/``find_*``; NotFoundError from ``require``

Usage:
    from curriculum.stores import ProgressStore

    record = ProgressStore.require(progress_id)
    ProgressStore.update(record.id, {"status": "completed"})
"""

from __future__ import annotations

import functools
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from curriculum.core.exceptions import NotFoundError, StoreError, ValidationError
from curriculum.models import db
from curriculum.models.audit import TrackingLog, write_tracking_log
from curriculum.models.curriculum import Course, MajorCourse, Semester, Student
from curriculum.models.notification import Notification
from curriculum.models.progress import ProgressRecord

logger = logging.getLogger(__name__)

# Fields ``ProgressStore.update`` accepts. Anything else is a programming error.
_PROGRESS_WRITABLE = {
    "completed_sessions",
    "projects_submitted",
    "project_links",
    "status",
    "rejection_reason",
    "approved_at",
    "approved_by",
    "completed_at",
}


def _as_int(value):
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _store_op(operation: str):
    """Wrap a store call so driver errors surface as StoreError."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error("Store operation failed: %s", operation, exc_info=True)
                raise StoreError(operation, exc) from exc
        return wrapper
    return decorator


# ═════════════════════════════════════════════════════════════════════════════
# Progress
# ═════════════════════════════════════════════════════════════════════════════


class ProgressStore:
    """Progress records keyed by id and by (student_id, course_id)."""

    @staticmethod
    @_store_op("progress.get")
    def get(progress_id) -> ProgressRecord | None:
        pk = _as_int(progress_id)
        if pk is None:
            return None
        return db.session.get(ProgressRecord, pk)

    @staticmethod
    def require(progress_id) -> ProgressRecord:
        record = ProgressStore.get(progress_id)
        if record is None:
            raise NotFoundError("ProgressRecord", progress_id)
        return record

    @staticmethod
    @_store_op("progress.find_by_student_and_course")
    def find_by_student_and_course(student_id: int, course_id: int) -> ProgressRecord | None:
        return db.session.execute(
            select(ProgressRecord).where(
                ProgressRecord.student_id == student_id,
                ProgressRecord.course_id == course_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    @_store_op("progress.find_by_student_id")
    def find_by_student_id(student_id: int) -> list[ProgressRecord]:
        return list(db.session.execute(
            select(ProgressRecord)
            .where(ProgressRecord.student_id == student_id)
            .order_by(ProgressRecord.id)
        ).scalars())

    @staticmethod
    @_store_op("progress.find_by_course")
    def find_by_course(course_id: int) -> list[ProgressRecord]:
        return list(db.session.execute(
            select(ProgressRecord)
            .where(ProgressRecord.course_id == course_id)
            .order_by(ProgressRecord.id)
        ).scalars())

    @staticmethod
    @_store_op("progress.find_by_status")
    def find_by_status(status: str, course_id: int | None = None) -> list[ProgressRecord]:
        stmt = select(ProgressRecord).where(ProgressRecord.status == status)
        if course_id is not None:
            stmt = stmt.where(ProgressRecord.course_id == course_id)
        return list(db.session.execute(stmt.order_by(ProgressRecord.updated_at, ProgressRecord.id)).scalars())

    @staticmethod
    @_store_op("progress.create")
    def create(student_id: int, course_id: int, **fields) -> ProgressRecord:
        try:
            record = ProgressRecord(
                student_id=student_id,
                course_id=course_id,
                completed_sessions=fields.get("completed_sessions", 0),
                projects_submitted=fields.get("projects_submitted", 0),
                project_links=list(fields.get("project_links") or []),
                status=fields.get("status", "not_started"),
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        db.session.add(record)
        db.session.commit()
        return record

    @staticmethod
    def get_or_create(student_id: int, course_id: int) -> tuple[ProgressRecord, bool]:
        """Return ``(record, created)`` for the pair, creating a not_started row."""
        existing = ProgressStore.find_by_student_and_course(student_id, course_id)
        if existing is not None:
            return existing, False
        return ProgressStore.create(student_id, course_id), True

    @staticmethod
    @_store_op("progress.update")
    def update(progress_id, fields: dict, log_entries: list[dict] | None = None) -> ProgressRecord:
        """Apply a partial field update and commit.

        ``log_entries`` are TrackingLog rows written in the same commit, so a
        status change and its audit row land together or not at all.

        Raises:
            NotFoundError: no record with that id.
            ValidationError: a field value the model refuses.
        """
        unknown = set(fields) - _PROGRESS_WRITABLE
        if unknown:
            raise ValueError(f"Not writable on ProgressRecord: {sorted(unknown)}")

        record = ProgressStore.require(progress_id)
        try:
            for key, value in fields.items():
                if key == "project_links":
                    value = list(value or [])
                setattr(record, key, value)
        except ValueError as exc:
            db.session.rollback()
            raise ValidationError(str(exc)) from exc
        for entry in log_entries or ():
            write_tracking_log(**entry)
        db.session.commit()
        return record


# ═════════════════════════════════════════════════════════════════════════════
# Curriculum (read-only lookups)
# ═════════════════════════════════════════════════════════════════════════════


class CourseStore:
    @staticmethod
    @_store_op("course.get")
    def get(course_id) -> Course | None:
        pk = _as_int(course_id)
        return db.session.get(Course, pk) if pk is not None else None

    @staticmethod
    def require(course_id) -> Course:
        course = CourseStore.get(course_id)
        if course is None:
            raise NotFoundError("Course", course_id)
        return course

    @staticmethod
    @_store_op("course.find_by_semester")
    def find_by_semester(semester_id: int) -> list[Course]:
        """Active courses of a semester in unlock order."""
        return Course.ordered(
            Course.query.filter_by(semester_id=semester_id, is_active=True)
        ).all()

    @staticmethod
    @_store_op("course.find_by_ids")
    def find_by_ids(course_ids) -> dict[int, Course]:
        ids = {i for i in course_ids if i is not None}
        if not ids:
            return {}
        rows = Course.query.filter(Course.id.in_(ids)).all()
        return {c.id: c for c in rows}


class SemesterStore:
    @staticmethod
    @_store_op("semester.get")
    def get(semester_id) -> Semester | None:
        pk = _as_int(semester_id)
        return db.session.get(Semester, pk) if pk is not None else None

    @staticmethod
    def require(semester_id) -> Semester:
        semester = SemesterStore.get(semester_id)
        if semester is None:
            raise NotFoundError("Semester", semester_id)
        return semester

    @staticmethod
    @_store_op("semester.find_active")
    def find_active() -> list[Semester]:
        """Active semesters in program order."""
        return Semester.ordered(Semester.query.filter_by(is_active=True)).all()


class MajorCourseStore:
    @staticmethod
    @_store_op("major_course.get_major_courses")
    def get_major_courses(major_id: int) -> list[MajorCourse]:
        """A major's curriculum in unlock order."""
        return MajorCourse.ordered(MajorCourse.query.filter_by(major_id=major_id)).all()


class StudentStore:
    @staticmethod
    @_store_op("student.get")
    def get(student_id) -> Student | None:
        pk = _as_int(student_id)
        return db.session.get(Student, pk) if pk is not None else None

    @staticmethod
    def require(student_id) -> Student:
        student = StudentStore.get(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        return student

    @staticmethod
    @_store_op("student.update_current_semester")
    def update_current_semester(student_id: int, semester_id: int) -> Student:
        student = StudentStore.require(student_id)
        student.current_semester_id = semester_id
        db.session.commit()
        return student


# ═════════════════════════════════════════════════════════════════════════════
# Side-effect sinks
# ═════════════════════════════════════════════════════════════════════════════


class NotificationStore:
    @staticmethod
    @_store_op("notification.create")
    def create(*, recipient_id: int, type: str, title: str, message: str = "",
               payload: dict | None = None) -> Notification:
        notif = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title[:200],
            message=message[:1000],
            payload=dict(payload or {}),
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    @_store_op("notification.page")
    def page(recipient_id: int, *, unread_only: bool = False, limit: int = 50,
             offset: int = 0) -> tuple[list[Notification], int]:
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter(Notification.is_read.is_(False))
        newest_first = q.order_by(Notification.created_at.desc(), Notification.id.desc())
        return newest_first.offset(offset).limit(limit).all(), q.count()

    @staticmethod
    @_store_op("notification.count_unread")
    def count_unread(recipient_id: int) -> int:
        return Notification.query.filter(
            Notification.recipient_id == recipient_id, Notification.is_read.is_(False),
        ).count()

    @staticmethod
    @_store_op("notification.mark_read")
    def mark_read(notification_id) -> Notification | None:
        pk = _as_int(notification_id)
        notif = db.session.get(Notification, pk) if pk is not None else None
        if notif is not None and not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    @_store_op("notification.mark_all_read")
    def mark_all_read(recipient_id: int, read_at) -> int:
        changed = (
            Notification.query
            .filter(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": read_at}, synchronize_session="fetch")
        )
        db.session.commit()
        return changed


class TrackingLogStore:
    @staticmethod
    @_store_op("tracking_log.append")
    def append(**kwargs) -> TrackingLog:
        log = write_tracking_log(**kwargs)
        db.session.commit()
        return log

    @staticmethod
    @_store_op("tracking_log.find")
    def find(student_id: int, course_id: int | None = None) -> list[TrackingLog]:
        q = TrackingLog.query.filter_by(student_id=student_id)
        if course_id is not None:
            q = q.filter_by(course_id=course_id)
        return q.order_by(TrackingLog.performed_at.desc(), TrackingLog.id.desc()).all()
