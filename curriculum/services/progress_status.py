"""
Status Deriver: completion eligibility for a progress record.

Pure functions only: nothing here reads the database or mutates a record.
The admin tracking views, the student course views and the counter-update
path all call ``derive_status`` so the same inputs always produce the same
eligibility.

Canonical completion conditions (independent, jointly necessary):
    1. completed_sessions >= required_sessions
    2. projects_submitted >= required_projects
    3. at least one project link

Usage:
    from curriculum.services.progress_status import derive_status

    result = derive_status(record, course)
    result.can_pass              # -> bool
    result.missing_conditions    # -> ["2 more sessions needed"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlsplit

from curriculum.models.progress import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    PENDING_APPROVAL,
    REJECTED,
    validate_progress_transition,
)

ALLOWED_LINK_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class CourseRequirements:
    required_sessions: int
    required_projects: int

    @classmethod
    def of(cls, course) -> "CourseRequirements":
        return cls(int(course.required_sessions), int(course.required_projects))


@dataclass
class PassCondition:
    """Result of checking a record against its course requirements."""
    can_pass: bool
    missing_conditions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"can_pass": self.can_pass, "missing_conditions": list(self.missing_conditions)}


# ═════════════════════════════════════════════════════════════════════════════
# Completion test
# ═════════════════════════════════════════════════════════════════════════════


def check_pass_condition(
    completed_sessions: int,
    projects_submitted: int,
    project_links,
    required_sessions: int,
    required_projects: int,
) -> PassCondition:
    """Check the three completion conditions.

    Missing conditions are listed in the fixed order sessions → projects → links.
    """
    missing: list[str] = []

    if completed_sessions < required_sessions:
        missing.append(f"{required_sessions - completed_sessions} more sessions needed")

    if projects_submitted < required_projects:
        missing.append(f"{required_projects - projects_submitted} more projects needed")

    if len(project_links or []) < 1:
        missing.append("at least 1 project link required")

    return PassCondition(can_pass=not missing, missing_conditions=missing)


def derive_status(record, course) -> PassCondition:
    """Eligibility of *record* for approval under *course*'s requirements.

    A missing record (``None``) is evaluated as all-zero counters.
    """
    req = CourseRequirements.of(course)
    if record is None:
        return check_pass_condition(0, 0, [], req.required_sessions, req.required_projects)
    return check_pass_condition(
        record.completed_sessions or 0,
        record.projects_submitted or 0,
        record.project_links or [],
        req.required_sessions,
        req.required_projects,
    )


def is_awaiting_action(record) -> bool:
    """True when the record sits in the admin approval queue."""
    return record is not None and record.status == PENDING_APPROVAL


# ═════════════════════════════════════════════════════════════════════════════
# Counter validation (shared by the tracking service and the inline editor)
# ═════════════════════════════════════════════════════════════════════════════


def session_count_error(value, required_sessions: int) -> str | None:
    if not isinstance(value, int) or isinstance(value, bool):
        return "Session count must be an integer"
    if value < 0:
        return "Session count cannot be negative"
    if value > required_sessions:
        return f"Session count cannot exceed {required_sessions}"
    return None


def project_count_error(value, required_projects: int) -> str | None:
    if not isinstance(value, int) or isinstance(value, bool):
        return "Project count must be an integer"
    if value < 0:
        return "Project count cannot be negative"
    if value > required_projects:
        return f"Project count cannot exceed {required_projects}"
    return None


def project_link_error(url) -> str | None:
    """Return an error message unless *url* is an absolute http/https URL."""
    if not isinstance(url, str) or not url.strip():
        return f"Invalid project link: {url!r}"
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return f"Invalid project link: {url}"
    if parts.scheme not in ALLOWED_LINK_SCHEMES:
        return "Project links must use http or https"
    if not parts.netloc:
        return f"Invalid project link: {url}"
    return None


def project_links_error(links) -> str | None:
    if not isinstance(links, (list, tuple)):
        return "Project links must be a list"
    for link in links:
        err = project_link_error(link)
        if err:
            return err
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Status movement on counter change
# ═════════════════════════════════════════════════════════════════════════════


def status_path(current: str, pass_condition: PassCondition) -> list[str]:
    """Statuses a record passes through after its counters changed.

    Returns the sequence of new statuses (empty when nothing moves):
        not_started / rejected → in_progress  (always, on a counter change)
        in_progress → pending_approval         (when the record can pass)
        pending_approval → in_progress         (when it no longer can)
    ``completed`` is terminal and never moves.
    """
    path: list[str] = []
    status = current

    if status == COMPLETED:
        return path

    if status in (NOT_STARTED, REJECTED):
        status = IN_PROGRESS
        path.append(status)

    if status == IN_PROGRESS and pass_condition.can_pass:
        status = PENDING_APPROVAL
        path.append(status)
    elif status == PENDING_APPROVAL and not pass_condition.can_pass:
        status = IN_PROGRESS
        path.append(status)

    prev = current
    for nxt in path:
        if not validate_progress_transition(prev, nxt):
            raise RuntimeError(f"status machine has no edge {prev} -> {nxt}")
        prev = nxt
    return path
