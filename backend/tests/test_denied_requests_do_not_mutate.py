"""
Denied requests leave no trace.

Every mutating or admin-only route is called by each role the capability
table refuses. The response must be 403 and the repository (entities and
the analytics event log) must be exactly as before.
"""
from __future__ import annotations

import copy

import pytest

from web.repo_wiring import get_repo
from utils.auth import client_for, login, make_org, make_user

pytestmark = pytest.mark.anyio("asyncio")

TEACHING_ONLY_DENIED = ("student", "parent")
ADMIN_ONLY_DENIED = ("student", "parent", "teacher")


def _seed():
    repo = get_repo()
    org = make_org()
    teacher = make_user(org, "teacher")
    student = make_user(org, "student")
    course = repo.create_course(
        title="Biology", description=None, subject=None, organization_id=org.id, teacher_id=teacher.id
    )
    unit = repo.create_course_unit(course_id=course.id, title="Cells", description=None, order_index=0)
    lesson = repo.create_lesson(unit_id=unit.id, title="Membranes", content=None, order_index=0, xp_reward=10)
    assignment = repo.create_assignment(
        title="Diagram",
        description=None,
        course_id=course.id,
        unit_id=unit.id,
        teacher_id=teacher.id,
        due_date=None,
        total_points=100,
        status="published",
        xp_reward=20,
    )
    submission = repo.create_submission(
        assignment_id=assignment.id, student_id=student.id, content="x", status="submitted", submitted_at=None
    )
    repo.enroll_student(course.id, student.id)
    repo.update_progress(student_id=student.id, lesson_id=lesson.id, completed=False, completed_at=None, time_spent=3)
    repo.log_event(user_id=teacher.id, organization_id=org.id, event_type="course_created", event_data={"courseId": course.id})
    return {
        "org": org.id,
        "course": course.id,
        "unit": unit.id,
        "submission": submission.id,
        "student": student.id,
    }


def _snapshot():
    repo = get_repo()
    return copy.deepcopy(
        {
            "organizations": repo.organizations,
            "users": repo.users,
            "courses": repo.courses,
            "units": repo.units,
            "lessons": repo.lessons,
            "assignments": repo.assignments,
            "submissions": repo.submissions,
            "enrollments": repo.enrollments,
            "progress": repo.progress,
            "events": repo.events,
        }
    )


RESTRICTED_ROUTES = [
    ("POST", "/api/courses", lambda ids: {"title": "Hijacked"}, TEACHING_ONLY_DENIED),
    ("POST", "/api/courses/{course}/units", lambda ids: {"title": "Extra unit"}, TEACHING_ONLY_DENIED),
    ("POST", "/api/units/{unit}/lessons", lambda ids: {"title": "Extra lesson"}, TEACHING_ONLY_DENIED),
    ("POST", "/api/assignments", lambda ids: {"title": "Extra", "courseId": ids["course"]}, TEACHING_ONLY_DENIED),
    ("PUT", "/api/submissions/{submission}/grade", lambda ids: {"score": 100, "feedback": "self"}, TEACHING_ONLY_DENIED),
    ("PUT", "/api/users/{student}/role", lambda ids: {"role": "admin"}, ADMIN_ONLY_DENIED),
    ("GET", "/api/organizations/{org}/users", lambda ids: None, ADMIN_ONLY_DENIED),
]

CASES = [
    pytest.param(method, path, body, role, id=f"{role}-{method}-{path}")
    for method, path, body, denied in RESTRICTED_ROUTES
    for role in denied
]


@pytest.mark.anyio
@pytest.mark.parametrize("method,path,body,role", CASES)
async def test_denied_role_gets_403_and_changes_nothing(method, path, body, role):
    ids = _seed()
    repo = get_repo()
    caller = login(make_user(repo.get_organization(ids["org"]), role))
    before = _snapshot()

    async with client_for(caller) as client:
        resp = await client.request(method, path.format(**ids), json=body(ids))

    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"
    assert resp.headers["Cache-Control"] == "private, no-store"
    assert _snapshot() == before
