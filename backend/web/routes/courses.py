"""
Courses API: courses, units, lessons and enrollments.

Role checks happen in the capability table (`web.policy`). Handlers here only
resolve organization scope: an entity addressed by id must belong to the
caller's organization (404 when missing, 403 when foreign).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import Field

from ..repo_wiring import get_repo
from ..responses import json_private, no_organization, to_api
from ..schemas import PG_INT_MAX, CamelModel
from ..tenancy import current_user, scope_error

courses_router = APIRouter(tags=["Courses"])


class CourseCreatePayload(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    subject: Optional[str] = Field(default=None, max_length=100)


class UnitCreatePayload(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    order_index: int = Field(default=0, ge=0, le=PG_INT_MAX)


class LessonCreatePayload(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    content: Optional[str] = None
    order_index: int = Field(default=0, ge=0, le=PG_INT_MAX)
    xp_reward: int = Field(default=10, ge=0, le=PG_INT_MAX)


@courses_router.post("/api/courses")
async def create_course(request: Request, payload: CourseCreatePayload):
    """
    Create a course in the caller's organization, owned by the caller.

    Permissions:
        teacher or admin (capability table). Caller must belong to an organization.
    """
    user = current_user(request)
    if not user.organization_id:
        return no_organization()
    repo = get_repo()
    course = repo.create_course(
        title=payload.title,
        description=payload.description,
        subject=payload.subject,
        organization_id=user.organization_id,
        teacher_id=user.id,
    )
    repo.log_event(
        user_id=user.id,
        organization_id=user.organization_id,
        event_type="course_created",
        event_data={"courseId": course.id, "title": course.title},
    )
    return json_private(to_api(course), status_code=201)


@courses_router.get("/api/courses")
async def list_courses(request: Request):
    """
    List courses visible to the caller.

    admin -> all courses of the organization; teacher -> own courses;
    student -> enrolled courses; parent -> empty list.
    """
    user = current_user(request)
    repo = get_repo()
    if user.role == "admin":
        items = repo.get_courses_by_organization(user.organization_id) if user.organization_id else []
    elif user.role == "teacher":
        items = repo.get_courses_by_teacher(user.id)
    elif user.role == "student":
        items = repo.get_enrolled_courses(user.id)
    else:
        items = []
    return json_private(to_api(items))


@courses_router.post("/api/courses/{course_id}/units")
async def create_unit(request: Request, course_id: str, payload: UnitCreatePayload):
    user = current_user(request)
    error = scope_error("course", course_id, user)
    if error:
        return error
    unit = get_repo().create_course_unit(
        course_id=course_id,
        title=payload.title,
        description=payload.description,
        order_index=payload.order_index,
    )
    return json_private(to_api(unit), status_code=201)


@courses_router.get("/api/courses/{course_id}/units")
async def list_units(request: Request, course_id: str):
    """Units of a course ordered by `orderIndex` (ties in creation order)."""
    error = scope_error("course", course_id, current_user(request))
    if error:
        return error
    return json_private(to_api(get_repo().get_course_units(course_id)))


@courses_router.post("/api/courses/{course_id}/enroll")
async def enroll(request: Request, course_id: str):
    """
    Enroll the caller in a course of their organization.

    Repeated calls insert additional enrollment rows.
    """
    user = current_user(request)
    error = scope_error("course", course_id, user)
    if error:
        return error
    enrollment = get_repo().enroll_student(course_id, user.id)
    return json_private(to_api(enrollment), status_code=201)


@courses_router.get("/api/courses/{course_id}/enrollments")
async def list_enrollments(request: Request, course_id: str):
    error = scope_error("course", course_id, current_user(request))
    if error:
        return error
    return json_private(to_api(get_repo().get_enrollments(course_id)))


@courses_router.get("/api/courses/{course_id}/assignments")
async def list_course_assignments(request: Request, course_id: str):
    error = scope_error("course", course_id, current_user(request))
    if error:
        return error
    return json_private(to_api(get_repo().get_assignments_by_course(course_id)))


@courses_router.post("/api/units/{unit_id}/lessons")
async def create_lesson(request: Request, unit_id: str, payload: LessonCreatePayload):
    user = current_user(request)
    error = scope_error("unit", unit_id, user)
    if error:
        return error
    lesson = get_repo().create_lesson(
        unit_id=unit_id,
        title=payload.title,
        content=payload.content,
        order_index=payload.order_index,
        xp_reward=payload.xp_reward,
    )
    return json_private(to_api(lesson), status_code=201)


@courses_router.get("/api/units/{unit_id}/lessons")
async def list_lessons(request: Request, unit_id: str):
    error = scope_error("unit", unit_id, current_user(request))
    if error:
        return error
    return json_private(to_api(get_repo().get_lessons_by_unit(unit_id)))
