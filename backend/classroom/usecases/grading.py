from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import logging

from ..models import AssignmentSubmission, User, utc_now_iso
from ..ports import ClassroomRepoProtocol
from .errors import MissingOrganizationError

logger = logging.getLogger("amali.classroom.grading")


@dataclass
class SubmitAssignmentInput:
    assignment_id: str
    student: User
    content: Optional[str]


class SubmitAssignmentUseCase:
    def __init__(self, repo: ClassroomRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: SubmitAssignmentInput) -> AssignmentSubmission:
        """Record a submission for an assignment in the caller's organization.

        Behavior:
            - A student without organization raises MissingOrganizationError.
            - Missing assignment raises LookupError.
            - Assignment owned by another organization raises PermissionError.
            - The new row starts in status `submitted` with `submitted_at` = now.
        """
        if not req.student.organization_id:
            raise MissingOrganizationError("no_organization")
        scope = self._repo.get_scope("assignment", req.assignment_id)
        if scope is None:
            raise LookupError("assignment_not_found")
        if scope.organization_id != req.student.organization_id:
            raise PermissionError("cross_tenant")
        return self._repo.create_submission(
            assignment_id=req.assignment_id,
            student_id=req.student.id,
            content=req.content,
            status="submitted",
            submitted_at=utc_now_iso(),
        )


@dataclass
class GradeSubmissionInput:
    submission_id: str
    grader: User
    score: int
    feedback: Optional[str]


class GradeSubmissionUseCase:
    def __init__(self, repo: ClassroomRepoProtocol) -> None:
        self._repo = repo

    def execute(self, req: GradeSubmissionInput) -> AssignmentSubmission:
        """Grade a submission after checking tenancy and ownership.

        Intent:
            The submission's organization is resolved by joining submission ->
            assignment -> course. The grader must belong to that organization;
            a teacher must additionally own the assignment. Admins bypass the
            ownership check, never the organization check.

        Behavior:
            - A grader without organization raises MissingOrganizationError.
            - Missing submission raises LookupError.
            - Any tenancy or ownership mismatch raises PermissionError and leaves
              the submission untouched.
            - Re-grading an already graded submission is allowed; it is logged
              and the analytics event records the previous status.
        """
        grader = req.grader
        if not grader.organization_id:
            raise MissingOrganizationError("no_organization")
        scope = self._repo.get_scope("submission", req.submission_id)
        if scope is None:
            raise LookupError("submission_not_found")
        if scope.organization_id != grader.organization_id:
            raise PermissionError("cross_tenant")
        if grader.role == "teacher" and scope.teacher_id != grader.id:
            raise PermissionError("not_assignment_owner")

        previous = self._repo.get_submission(req.submission_id)
        previous_status = previous.status if previous else None
        if previous_status == "graded":
            logger.info("Re-grading submission %s (grader=%s)", req.submission_id, grader.id)

        graded = self._repo.grade_submission(req.submission_id, score=req.score, feedback=req.feedback)
        if graded is None:
            raise LookupError("submission_not_found")
        self._repo.log_event(
            user_id=grader.id,
            organization_id=grader.organization_id,
            event_type="submission_graded",
            event_data={
                "submissionId": graded.id,
                "score": graded.score,
                "previousStatus": previous_status,
            },
        )
        return graded
