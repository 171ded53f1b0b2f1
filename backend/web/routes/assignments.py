"""
Assignments API: authoring, submission and grading.

Submission state machine: a submission is created as `submitted`; grading
moves it to `graded` without a prior-status guard, so re-grading is allowed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Request
from pydantic import Field

from classroom.usecases import (
    GradeSubmissionInput,
    GradeSubmissionUseCase,
    MissingOrganizationError,
    SubmitAssignmentInput,
    SubmitAssignmentUseCase,
)

from ..repo_wiring import get_repo
from ..responses import forbidden, json_private, no_organization, not_found, private_error, to_api
from ..schemas import PG_INT_MAX, CamelModel
from ..tenancy import current_user, scope_error

assignments_router = APIRouter(tags=["Assignments"])


class AssignmentCreatePayload(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    course_id: str = Field(min_length=1)
    unit_id: Optional[str] = None
    due_date: Optional[datetime] = None
    total_points: int = Field(default=100, ge=0, le=PG_INT_MAX)
    status: Literal["draft", "published", "closed"] = "draft"
    xp_reward: int = Field(default=20, ge=0, le=PG_INT_MAX)


class SubmissionPayload(CamelModel):
    content: str = Field(min_length=1)


class GradePayload(CamelModel):
    score: int = Field(ge=0, le=PG_INT_MAX)
    feedback: Optional[str] = None


@assignments_router.post("/api/assignments")
async def create_assignment(request: Request, payload: AssignmentCreatePayload):
    """
    Create an assignment on a course of the caller's organization.

    Behavior:
        - `teacherId` is always the caller.
        - An optional `unitId` must belong to the same course (400 otherwise).
    """
    user = current_user(request)
    error = scope_error("course", payload.course_id, user)
    if error:
        return error
    repo = get_repo()
    if payload.unit_id:
        unit = repo.get_course_unit(payload.unit_id)
        if unit is None or unit.course_id != payload.course_id:
            return private_error("bad_request", status_code=400, detail="unit_not_in_course")
    due = payload.due_date.isoformat() if payload.due_date else None
    assignment = repo.create_assignment(
        title=payload.title,
        description=payload.description,
        course_id=payload.course_id,
        unit_id=payload.unit_id,
        teacher_id=user.id,
        due_date=due,
        total_points=payload.total_points,
        status=payload.status,
        xp_reward=payload.xp_reward,
    )
    return json_private(to_api(assignment), status_code=201)


@assignments_router.get("/api/assignments")
async def list_own_assignments(request: Request):
    user = current_user(request)
    return json_private(to_api(get_repo().get_assignments_by_teacher(user.id)))


@assignments_router.get("/api/assignments/pending-grading")
async def pending_grading(request: Request):
    """Submissions in status `submitted` on the caller's assignments (empty for non-authors)."""
    user = current_user(request)
    return json_private(to_api(get_repo().get_pending_grading(user.id)))


@assignments_router.post("/api/assignments/{assignment_id}/submit")
async def submit_assignment(request: Request, assignment_id: str, payload: SubmissionPayload):
    user = current_user(request)
    usecase = SubmitAssignmentUseCase(get_repo())
    try:
        submission = usecase.execute(
            SubmitAssignmentInput(assignment_id=assignment_id, student=user, content=payload.content)
        )
    except MissingOrganizationError:
        return no_organization()
    except LookupError:
        return not_found()
    except PermissionError:
        return forbidden()
    return json_private(to_api(submission), status_code=201)


@assignments_router.get("/api/submissions")
async def list_own_submissions(request: Request):
    """The caller's submissions, newest first."""
    user = current_user(request)
    return json_private(to_api(get_repo().get_student_submissions(user.id)))


@assignments_router.put("/api/submissions/{submission_id}/grade")
async def grade_submission(request: Request, submission_id: str, payload: GradePayload):
    """
    Grade a submission.

    Permissions:
        teacher or admin (capability table); the submission must belong to the
        caller's organization, and a teacher must own the assignment.
    """
    user = current_user(request)
    usecase = GradeSubmissionUseCase(get_repo())
    try:
        graded = usecase.execute(
            GradeSubmissionInput(
                submission_id=submission_id, grader=user, score=payload.score, feedback=payload.feedback
            )
        )
    except MissingOrganizationError:
        return no_organization()
    except LookupError:
        return not_found()
    except PermissionError:
        return forbidden()
    return json_private(to_api(graded))
