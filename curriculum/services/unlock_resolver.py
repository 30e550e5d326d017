"""
Sequential Unlock Resolver.

Assigns a view status (locked | in_progress | completed) to every item of an
ordered sequence: item *i* is reachable only once item *i-1* is completed.
The same fold serves courses-in-semester, semesters-in-program and
courses-in-major; callers parameterize it with the ordered items, a key
function and a per-item completion predicate.

Rules:
    - The running "previous satisfied" flag is seeded True, so the head of a
      sequence is never locked by a predecessor.
    - Once an item is locked, every later item is locked.
    - An unlocked item is ``completed`` if its own predicate holds, else
      ``in_progress`` (not-started and started are not distinguished here).

Usage:
    from curriculum.services.unlock_resolver import resolve_sequence

    statuses = resolve_sequence(courses, lambda c: c.id in done)
    # -> {11: ItemStatus.COMPLETED, 12: ItemStatus.IN_PROGRESS, 13: ItemStatus.LOCKED}
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable

from curriculum.models.progress import COMPLETED


class ItemStatus(str, Enum):
    LOCKED = "locked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _default_key(item):
    return item.id


def resolve_sequence(
    items: Iterable,
    is_complete: Callable[[object], bool],
    key: Callable[[object], object] | None = None,
) -> dict:
    """Left fold over *items* (already in order) → ``{key(item): ItemStatus}``.

    The returned dict preserves the input order.
    """
    key = key or _default_key
    statuses: dict = {}
    previous_satisfied = True

    for item in items:
        if not previous_satisfied:
            status = ItemStatus.LOCKED
        elif is_complete(item):
            status = ItemStatus.COMPLETED
        else:
            status = ItemStatus.IN_PROGRESS
        statuses[key(item)] = status
        previous_satisfied = status == ItemStatus.COMPLETED

    return statuses


def newly_unlocked(before: dict, after: dict) -> list:
    """Keys locked in *before* and reachable in *after*, in *after*'s order."""
    return [
        k for k, status in after.items()
        if status != ItemStatus.LOCKED and before.get(k) == ItemStatus.LOCKED
    ]


def sort_by_order(items: Iterable, order_of: Callable[[object], int] | None = None) -> list:
    """Sort by ``order`` with ``id`` as tie-break; gaps in ``order`` are fine."""
    order_of = order_of or (lambda item: item.order)
    return sorted(items, key=lambda item: (order_of(item), item.id))


# ═════════════════════════════════════════════════════════════════════════════
# Completion predicates over a progress snapshot
# ═════════════════════════════════════════════════════════════════════════════


def build_progress_map(records: Iterable) -> dict:
    """Project progress records to ``{course_id: record}`` for one student."""
    return {r.course_id: r for r in records}


def course_is_complete(progress_map: dict, course_id) -> bool:
    record = progress_map.get(course_id)
    return record is not None and record.status == COMPLETED


def semester_is_complete(courses: list, progress_map: dict) -> bool:
    """A semester is complete iff it has courses and all of them are completed."""
    if not courses:
        return False
    return all(course_is_complete(progress_map, c.id) for c in courses)


def resolve_semester_courses(courses: list, progress_map: dict) -> dict:
    """``{course_id: ItemStatus}`` for one semester's ordered courses."""
    return resolve_sequence(courses, lambda c: course_is_complete(progress_map, c.id))


def resolve_semesters(semesters: list, courses_by_semester: dict, progress_map: dict) -> dict:
    """``{semester_id: ItemStatus}`` for the program's ordered semesters."""
    return resolve_sequence(
        semesters,
        lambda s: semester_is_complete(courses_by_semester.get(s.id, []), progress_map),
    )


def resolve_major(major_courses: list, progress_map: dict) -> dict:
    """``{course_id: ItemStatus}`` for a major's ordered curriculum."""
    return resolve_sequence(
        major_courses,
        lambda mc: course_is_complete(progress_map, mc.course_id),
        key=lambda mc: mc.course_id,
    )
