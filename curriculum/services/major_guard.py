"""
Major selection gate.

A semester flagged ``requires_major_selection`` cannot be entered by a student
who has not picked a major yet. The views surface the flag so the UI can send
the student to the major picker; student actions on such a semester are
refused.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class MajorGuardResult:
    requires_selection: bool
    semester_id: int | None = None
    message: str = ""

    def to_dict(self):
        return {
            "requires_selection": self.requires_selection,
            "semester_id": self.semester_id,
            "message": self.message,
        }


def check_major_selection_required(student, semester) -> MajorGuardResult:
    if semester is None:
        return MajorGuardResult(requires_selection=False)
    if semester.requires_major_selection and not student.selected_major_id:
        return MajorGuardResult(
            requires_selection=True,
            semester_id=semester.id,
            message=f"Select a major before starting {semester.name}",
        )
    return MajorGuardResult(requires_selection=False, semester_id=semester.id)
