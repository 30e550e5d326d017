"""
Shared pytest fixtures for the Curriculum Progress Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - program: a two-semester program with a major and one student
    - make_progress: factory for ProgressRecord rows at any status

Program layout used across the suite:

    Semester 1 (order 1): c11 "Foundations", c12 "Data Structures", c13 "Algorithms"
    Semester 2 (order 2): c21 "Databases", c22 "Distributed Systems"
    Major "Data Engineering": c21 → c22 → c13
    Every course requires 5 sessions and 1 project.
"""

from types import SimpleNamespace

import pytest

from curriculum import create_app
from curriculum.models import db as _db
from curriculum.models.curriculum import Course, Major, MajorCourse, Semester, Student
from curriculum.models.progress import ProgressRecord
from curriculum.services.bulk_pass_service import clear_jobs

LINK = "https://github.com/ada/project"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        clear_jobs()
        yield
        clear_jobs()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


def _course(semester, title, order, required_sessions=5, required_projects=1):
    c = Course(
        semester_id=semester.id,
        title=title,
        order=order,
        required_sessions=required_sessions,
        required_projects=required_projects,
    )
    _db.session.add(c)
    _db.session.flush()
    return c


@pytest.fixture()
def program():
    """Create the standard two-semester program and return its rows."""
    s1 = Semester(name="Semester 1", order=1)
    s2 = Semester(name="Semester 2", order=2)
    _db.session.add_all([s1, s2])
    _db.session.flush()

    c11 = _course(s1, "Foundations", 1)
    c12 = _course(s1, "Data Structures", 2)
    c13 = _course(s1, "Algorithms", 3)
    c21 = _course(s2, "Databases", 1)
    c22 = _course(s2, "Distributed Systems", 2)

    major = Major(name="Data Engineering")
    _db.session.add(major)
    _db.session.flush()
    for order, course in enumerate((c21, c22, c13), start=1):
        _db.session.add(MajorCourse(major_id=major.id, course_id=course.id, order=order))

    student = Student(
        display_name="Ada",
        email="ada@example.com",
        selected_major_id=major.id,
        current_semester_id=s1.id,
    )
    _db.session.add(student)
    _db.session.commit()

    return SimpleNamespace(
        s1=s1, s2=s2, c11=c11, c12=c12, c13=c13, c21=c21, c22=c22,
        major=major, student=student,
    )


@pytest.fixture()
def make_progress():
    """Factory: create a ProgressRecord at an arbitrary status (bypasses the workflow)."""

    def _make(student, course, status="not_started", sessions=0, projects=0, links=None):
        record = ProgressRecord(
            student_id=student.id,
            course_id=course.id,
            status=status,
            completed_sessions=sessions,
            projects_submitted=projects,
            project_links=list(links or []),
        )
        _db.session.add(record)
        _db.session.commit()
        return record

    return _make


@pytest.fixture()
def make_pending(make_progress):
    """Factory: a record that satisfies every condition and awaits approval."""

    def _make(student, course):
        return make_progress(
            student, course, status="pending_approval",
            sessions=course.required_sessions, projects=course.required_projects,
            links=[LINK],
        )

    return _make


@pytest.fixture()
def make_completed(make_progress):
    """Factory: a record already approved."""

    def _make(student, course):
        return make_progress(
            student, course, status="completed",
            sessions=course.required_sessions, projects=course.required_projects,
            links=[LINK],
        )

    return _make
