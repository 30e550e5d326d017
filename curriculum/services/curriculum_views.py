"""
Student-facing curriculum views.

Each view is built in two steps:
    1. ``load_snapshot`` reads everything one student's views need through the
       stores (semesters, their active courses, the optional major curriculum and
       the student's progress records) into an id-indexed ``CurriculumSnapshot``.
    2. Pure projections turn the snapshot into resolutions and JSON-ready dicts.

The progress map is rebuilt per call; nothing here is cached across requests.

Program gating:
    - semesters are resolved as one sequence;
    - inside a semester the courses are resolved as their own sequence;
    - a locked semester overlays ``locked`` on all its courses, so the first
      course of a semester is gated by the previous semester's completion.
The major curriculum is an independent sequence and is not overlaid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from curriculum.core.exceptions import NotFoundError, ValidationError
from curriculum.models.progress import NOT_STARTED, describe_status
from curriculum.services.major_guard import check_major_selection_required
from curriculum.services.progress_status import derive_status
from curriculum.services.unlock_resolver import (
    ItemStatus,
    build_progress_map,
    resolve_major,
    resolve_semester_courses,
    resolve_semesters,
)
from curriculum.stores import (
    CourseStore,
    MajorCourseStore,
    ProgressStore,
    SemesterStore,
    StudentStore,
)

logger = logging.getLogger(__name__)


@dataclass
class CurriculumSnapshot:
    student: object
    semesters: list = field(default_factory=list)
    courses_by_semester: dict = field(default_factory=dict)
    progress_map: dict = field(default_factory=dict)
    major_id: int | None = None
    major_courses: list = field(default_factory=list)
    courses_by_id: dict = field(default_factory=dict)

    @property
    def student_id(self):
        return self.student.id


@dataclass
class SequenceResolution:
    """Resolved statuses of the three sequences for one snapshot."""
    semesters: dict = field(default_factory=dict)
    semester_courses: dict = field(default_factory=dict)  # semester_id → {course_id: ItemStatus}
    major: dict = field(default_factory=dict)

    def course_status(self, semester_id, course_id):
        """Course status inside the program, with the semester overlay applied."""
        if self.semesters.get(semester_id) == ItemStatus.LOCKED:
            return ItemStatus.LOCKED
        return self.semester_courses.get(semester_id, {}).get(course_id, ItemStatus.LOCKED)


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════════


def load_snapshot(student_id, major_id=None) -> CurriculumSnapshot:
    """Read one student's curriculum and progress.

    ``major_id`` defaults to the student's selected major (may be None).
    """
    student = StudentStore.require(student_id)
    semesters = SemesterStore.find_active()
    courses_by_semester = {s.id: CourseStore.find_by_semester(s.id) for s in semesters}

    courses_by_id = {}
    for courses in courses_by_semester.values():
        for course in courses:
            courses_by_id[course.id] = course

    major_id = major_id if major_id is not None else student.selected_major_id
    major_courses = MajorCourseStore.get_major_courses(major_id) if major_id else []
    missing = [mc.course_id for mc in major_courses if mc.course_id not in courses_by_id]
    if missing:
        courses_by_id.update(CourseStore.find_by_ids(missing))

    return CurriculumSnapshot(
        student=student,
        semesters=semesters,
        courses_by_semester=courses_by_semester,
        progress_map=build_progress_map(ProgressStore.find_by_student_id(student.id)),
        major_id=major_id,
        major_courses=major_courses,
        courses_by_id=courses_by_id,
    )


def resolve_snapshot(snapshot: CurriculumSnapshot) -> SequenceResolution:
    pm = snapshot.progress_map
    return SequenceResolution(
        semesters=resolve_semesters(snapshot.semesters, snapshot.courses_by_semester, pm),
        semester_courses={
            sem_id: resolve_semester_courses(courses, pm)
            for sem_id, courses in snapshot.courses_by_semester.items()
        },
        major=resolve_major(snapshot.major_courses, pm),
    )


def calculate_major_progress(completed: int, total: int) -> int:
    """Whole-number completion percentage, rounded half-up; 0 for an empty major."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (2 * total)


# ═════════════════════════════════════════════════════════════════════════════
# Projections
# ═════════════════════════════════════════════════════════════════════════════


def _course_entry(course, record, status: ItemStatus) -> dict:
    entry = {
        "course_id": course.id if course is not None else None,
        "course": course.to_dict() if course is not None else None,
        "status": status.value,
        "badge": describe_status(status.value),
        "progress_status": record.status if record is not None else NOT_STARTED,
        "progress": record.to_dict() if record is not None else None,
    }
    if course is not None:
        entry["pass_condition"] = derive_status(record, course).to_dict()
    return entry


def project_semester(snapshot: CurriculumSnapshot, resolution: SequenceResolution, semester) -> dict:
    courses = snapshot.courses_by_semester.get(semester.id, [])
    status = resolution.semesters.get(semester.id, ItemStatus.LOCKED)
    entries = [
        _course_entry(c, snapshot.progress_map.get(c.id), resolution.course_status(semester.id, c.id))
        for c in courses
    ]
    guard = check_major_selection_required(snapshot.student, semester)
    return {
        "semester": semester.to_dict(),
        "status": status.value,
        "is_current": snapshot.student.current_semester_id == semester.id,
        "requires_major_selection": guard.requires_selection,
        "completed_courses": sum(1 for e in entries if e["status"] == ItemStatus.COMPLETED.value),
        "total_courses": len(entries),
        "courses": entries,
    }


def project_major(snapshot: CurriculumSnapshot, resolution: SequenceResolution) -> dict:
    entries = []
    for mc in snapshot.major_courses:
        course = snapshot.courses_by_id.get(mc.course_id)
        entry = _course_entry(course, snapshot.progress_map.get(mc.course_id), resolution.major[mc.course_id])
        entry["course_id"] = mc.course_id
        entry["order"] = mc.order
        entry["is_required"] = mc.is_required
        entries.append(entry)

    completed = sum(1 for e in entries if e["status"] == ItemStatus.COMPLETED.value)
    return {
        "major_id": snapshot.major_id,
        "completed_count": completed,
        "total_count": len(entries),
        "progress_percentage": calculate_major_progress(completed, len(entries)),
        "courses": entries,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════════════


def program_view(student_id) -> dict:
    snapshot = load_snapshot(student_id)
    resolution = resolve_snapshot(snapshot)
    return {
        "student_id": snapshot.student_id,
        "current_semester_id": snapshot.student.current_semester_id,
        "semesters": [project_semester(snapshot, resolution, s) for s in snapshot.semesters],
    }


def semester_course_view(student_id, semester_id) -> dict:
    snapshot = load_snapshot(student_id)
    semester = next((s for s in snapshot.semesters if s.id == semester_id), None)
    if semester is None:
        raise NotFoundError("Semester", semester_id)
    return project_semester(snapshot, resolve_snapshot(snapshot), semester)


def major_view(student_id, major_id=None) -> dict:
    snapshot = load_snapshot(student_id, major_id=major_id)
    if not snapshot.major_id:
        raise ValidationError(
            "Student has not selected a major",
            details={"student_id": snapshot.student_id},
        )
    return project_major(snapshot, resolve_snapshot(snapshot))


def course_access_status(student_id, course) -> ItemStatus:
    """Program-level status of *course* for a student, honoring the major gate.

    A course in a semester the student may not enter yet (no major selected) is
    reported as locked.
    """
    snapshot = load_snapshot(student_id)
    semester = next((s for s in snapshot.semesters if s.id == course.semester_id), None)
    if semester is None:
        return ItemStatus.LOCKED
    guard = check_major_selection_required(snapshot.student, semester)
    if guard.requires_selection:
        logger.info(
            "Course %s blocked: major selection required",
            course.id, extra={"student_id": snapshot.student_id, "course_id": course.id},
        )
        return ItemStatus.LOCKED
    return resolve_snapshot(snapshot).course_status(semester.id, course.id)
