"""
Curriculum Progress Engine
Curriculum domain models.

Models:
    - Semester:     ordered top-level unit of the program
    - Course:       ordered unit inside a semester, carries completion requirements
    - Major:        a specialization with its own ordered curriculum
    - MajorCourse:  join row placing a Course at a position inside a Major
    - Student:      the minimal learner row the engine needs (major, current semester)

Architecture:
    Semester ──1:N──▶ Course
    Major ──1:N──▶ MajorCourse ──N:1──▶ Course
    Student ──N:1──▶ Major (selected_major_id)

Relations are id-indexed; sequences are always read through ``ordered()`` so that
equal ``order`` values still produce a deterministic total order.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from curriculum.models import db


DEFAULT_REQUIRED_SESSIONS = 10
DEFAULT_REQUIRED_PROJECTS = 1


def _utcnow():
    return datetime.now(timezone.utc)


class Semester(db.Model):
    """A semester of the program. ``order`` is its position in the program."""

    __tablename__ = "semesters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0, index=True)
    requires_major_selection = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Students must pick a major before entering this semester",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    courses = db.relationship("Course", back_populates="semester", lazy="select")

    @classmethod
    def ordered(cls, query=None):
        q = query if query is not None else cls.query
        return q.order_by(cls.order.asc(), cls.id.asc())

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "requires_major_selection": self.requires_major_selection,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Semester {self.id}: {self.name} (order={self.order})>"


class Course(db.Model):
    """A course inside a semester with its completion requirements."""

    __tablename__ = "courses"
    __table_args__ = (
        db.Index("idx_course_semester_order", "semester_id", "order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    semester_id = db.Column(
        db.Integer, db.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    required_sessions = db.Column(db.Integer, nullable=False, default=DEFAULT_REQUIRED_SESSIONS)
    required_projects = db.Column(db.Integer, nullable=False, default=DEFAULT_REQUIRED_PROJECTS)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    semester = db.relationship("Semester", back_populates="courses")

    @validates("required_sessions")
    def _validate_required_sessions(self, key, value):
        if value is None or int(value) < 1:
            raise ValueError("required_sessions must be a positive integer")
        return int(value)

    @validates("required_projects")
    def _validate_required_projects(self, key, value):
        if value is None or int(value) < 0:
            raise ValueError("required_projects must be a non-negative integer")
        return int(value)

    @classmethod
    def ordered(cls, query=None):
        q = query if query is not None else cls.query
        return q.order_by(cls.order.asc(), cls.id.asc())

    def to_dict(self):
        return {
            "id": self.id,
            "semester_id": self.semester_id,
            "title": self.title,
            "order": self.order,
            "required_sessions": self.required_sessions,
            "required_projects": self.required_projects,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Course {self.id}: {self.title[:40]} (order={self.order})>"


class Major(db.Model):
    """A specialization track."""

    __tablename__ = "majors"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Major {self.id}: {self.name}>"


class MajorCourse(db.Model):
    """
    Places a course inside a major's curriculum.

    ``order`` is independent of the course's semester order. ``is_required``
    is informational only and never affects unlock gating.
    """

    __tablename__ = "major_courses"
    __table_args__ = (
        db.UniqueConstraint("major_id", "course_id", name="uq_major_course"),
    )

    id = db.Column(db.Integer, primary_key=True)
    major_id = db.Column(
        db.Integer, db.ForeignKey("majors.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @classmethod
    def ordered(cls, query=None):
        q = query if query is not None else cls.query
        return q.order_by(cls.order.asc(), cls.id.asc())

    def to_dict(self):
        return {
            "id": self.id,
            "major_id": self.major_id,
            "course_id": self.course_id,
            "order": self.order,
            "is_required": self.is_required,
        }

    def __repr__(self):
        return f"<MajorCourse major={self.major_id} course={self.course_id} order={self.order}>"


class Student(db.Model):
    """Learner row. Authentication and profile data live elsewhere."""

    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(200), nullable=False, default="")
    email = db.Column(db.String(254), nullable=True, unique=True)
    selected_major_id = db.Column(
        db.Integer, db.ForeignKey("majors.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    current_semester_id = db.Column(
        db.Integer, db.ForeignKey("semesters.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "selected_major_id": self.selected_major_id,
            "current_semester_id": self.current_semester_id,
        }

    def __repr__(self):
        return f"<Student {self.id}: {self.display_name}>"
