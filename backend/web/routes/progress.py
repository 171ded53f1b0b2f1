"""Lesson progress API."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Request
from pydantic import Field

from classroom.usecases import MissingOrganizationError, RecordProgressInput, RecordProgressUseCase

from ..repo_wiring import get_repo
from ..responses import forbidden, json_private, no_organization, not_found, to_api
from ..schemas import PG_INT_MAX, CamelModel
from ..tenancy import current_user, scope_error

progress_router = APIRouter(tags=["Progress"])


class ProgressPayload(CamelModel):
    lesson_id: str = Field(min_length=1)
    completed: bool = False
    time_spent: int = Field(default=0, ge=0, le=PG_INT_MAX)


@progress_router.post("/api/progress")
async def record_progress(request: Request, payload: ProgressPayload):
    """
    Upsert the caller's progress for a lesson.

    Behavior:
        - One row per (caller, lesson); repeated calls overwrite it.
        - Moving the lesson to completed awards its XP and logs `lesson_completed`.
    """
    user = current_user(request)
    usecase = RecordProgressUseCase(get_repo())
    try:
        row = usecase.execute(
            RecordProgressInput(
                student=user,
                lesson_id=payload.lesson_id,
                completed=payload.completed,
                time_spent=payload.time_spent,
            )
        )
    except MissingOrganizationError:
        return no_organization()
    except LookupError:
        return not_found()
    except PermissionError:
        return forbidden()
    return json_private(to_api(row))


@progress_router.get("/api/progress")
async def list_progress(request: Request, course_id: Optional[str] = Query(default=None, alias="courseId")):
    user = current_user(request)
    if course_id:
        error = scope_error("course", course_id, user)
        if error:
            return error
    return json_private(to_api(get_repo().get_student_progress(user.id, course_id)))
