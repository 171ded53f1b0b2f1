from __future__ import annotations

from dataclasses import dataclass

from ..models import StudentProgress, User, utc_now_iso
from ..ports import ClassroomRepoProtocol
from .errors import MissingOrganizationError


@dataclass
class RecordProgressInput:
    student: User
    lesson_id: str
    completed: bool
    time_spent: int


class RecordProgressUseCase:
    def __init__(self, repo: ClassroomRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: RecordProgressInput) -> StudentProgress:
        """Upsert the caller's progress row for one lesson.

        Behavior:
            - A student without organization raises MissingOrganizationError.
            - Missing lesson raises LookupError; a lesson of another
              organization raises PermissionError.
            - One row per (student, lesson); the latest values win.
            - `completed_at` is set on the first completion and kept while the
              lesson stays completed.
            - The transition to completed awards the lesson's XP once and logs
              a `lesson_completed` event. Repeating the call changes nothing.
        """
        student = req.student
        if not student.organization_id:
            raise MissingOrganizationError("no_organization")
        scope = self._repo.get_scope("lesson", req.lesson_id)
        if scope is None:
            raise LookupError("lesson_not_found")
        if scope.organization_id != student.organization_id:
            raise PermissionError("cross_tenant")

        previous = self._repo.get_progress(student.id, req.lesson_id)
        was_completed = bool(previous and previous.completed)
        if req.completed:
            completed_at = previous.completed_at if was_completed and previous.completed_at else utc_now_iso()
        else:
            completed_at = None

        row = self._repo.update_progress(
            student_id=student.id,
            lesson_id=req.lesson_id,
            completed=req.completed,
            completed_at=completed_at,
            time_spent=req.time_spent,
        )

        if req.completed and not was_completed:
            lesson = self._repo.get_lesson(req.lesson_id)
            xp = lesson.xp_reward if lesson else 0
            if xp:
                self._repo.add_xp(student.id, xp)
            self._repo.log_event(
                user_id=student.id,
                organization_id=student.organization_id,
                event_type="lesson_completed",
                event_data={"lessonId": req.lesson_id, "timeSpent": req.time_spent, "xpAwarded": xp},
            )
        return row
