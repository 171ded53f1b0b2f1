"""
Assignments, submissions and grading.

Focus:
- Submissions start as `submitted` and grading moves them to `graded`
- Grading is bound to the caller's organization (and to the assignment
  author for teachers); a rejected grade leaves the submission untouched
- Pending-grading lists only submitted work on the caller's assignments
"""
from __future__ import annotations

import pytest

from web.repo_wiring import get_repo
from utils.auth import client_for, login_new, make_org

pytestmark = pytest.mark.anyio("asyncio")


async def _course_with_assignment(teacher, **overrides):
    async with client_for(teacher) as client:
        course = (await client.post("/api/courses", json={"title": "Chemistry"})).json()
        payload = {"title": "Lab report", "courseId": course["id"], **overrides}
        resp = await client.post("/api/assignments", json=payload)
    assert resp.status_code == 201, resp.text
    return course, resp.json()


@pytest.mark.anyio
async def test_create_assignment_defaults_and_owner():
    teacher = login_new(make_org(), "teacher")
    course, assignment = await _course_with_assignment(teacher)
    assert assignment["teacherId"] == teacher.user.id
    assert assignment["courseId"] == course["id"]
    assert assignment["status"] == "draft"
    assert assignment["totalPoints"] == 100
    assert assignment["xpReward"] == 20
    assert assignment["unitId"] is None


@pytest.mark.anyio
async def test_create_assignment_with_unit_and_due_date():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        course = (await client.post("/api/courses", json={"title": "Art"})).json()
        unit = (await client.post(f"/api/courses/{course['id']}/units", json={"title": "Color"})).json()
        resp = await client.post(
            "/api/assignments",
            json={
                "title": "Palette",
                "courseId": course["id"],
                "unitId": unit["id"],
                "dueDate": "2030-01-31T12:00:00Z",
                "status": "published",
                "totalPoints": 50,
            },
        )
    assert resp.status_code == 201
    body = resp.json()
    assert body["unitId"] == unit["id"]
    assert body["status"] == "published"
    assert body["dueDate"].startswith("2030-01-31T12:00:00")


@pytest.mark.anyio
async def test_create_assignment_rejects_unit_of_other_course():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        c1 = (await client.post("/api/courses", json={"title": "C1"})).json()
        c2 = (await client.post("/api/courses", json={"title": "C2"})).json()
        unit = (await client.post(f"/api/courses/{c2['id']}/units", json={"title": "U"})).json()
        resp = await client.post("/api/assignments", json={"title": "X", "courseId": c1["id"], "unitId": unit["id"]})
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_create_assignment_on_foreign_course_is_forbidden():
    teacher_a = login_new(make_org("A"), "teacher")
    teacher_b = login_new(make_org("B"), "teacher")
    async with client_for(teacher_a) as client:
        course = (await client.post("/api/courses", json={"title": "Mine"})).json()
    async with client_for(teacher_b) as client:
        resp = await client.post("/api/assignments", json={"title": "X", "courseId": course["id"]})
    assert resp.status_code == 403
    assert get_repo().get_assignments_by_course(course["id"]) == []


@pytest.mark.anyio
async def test_invalid_assignment_status_is_400():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        course = (await client.post("/api/courses", json={"title": "C"})).json()
        resp = await client.post("/api/assignments", json={"title": "X", "courseId": course["id"], "status": "open"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid_input"


@pytest.mark.anyio
async def test_submit_then_grade_flow():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    _, assignment = await _course_with_assignment(teacher)

    async with client_for(student) as client:
        sub = await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "My answer"})
    assert sub.status_code == 201
    submission = sub.json()
    assert submission["status"] == "submitted"
    assert submission["studentId"] == student.user.id
    assert submission["submittedAt"]

    async with client_for(teacher) as client:
        pending = (await client.get("/api/assignments/pending-grading")).json()
        graded = await client.put(
            f"/api/submissions/{submission['id']}/grade", json={"score": 87, "feedback": "Good"}
        )
        pending_after = (await client.get("/api/assignments/pending-grading")).json()

    assert [p["id"] for p in pending] == [submission["id"]]
    assert graded.status_code == 200
    body = graded.json()
    assert body["status"] == "graded"
    assert body["score"] == 87
    assert body["feedback"] == "Good"
    assert body["gradedAt"]
    assert pending_after == []

    events = [e for e in get_repo().events if e.event_type == "submission_graded"]
    assert events[-1].event_data == {"submissionId": submission["id"], "score": 87, "previousStatus": "submitted"}


@pytest.mark.anyio
async def test_regrading_overwrites_score_and_records_previous_status():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    _, assignment = await _course_with_assignment(teacher)
    async with client_for(student) as client:
        submission = (await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "v1"})).json()
    async with client_for(teacher) as client:
        await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 50})
        again = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 70})
    assert again.status_code == 200
    assert again.json()["score"] == 70
    events = [e for e in get_repo().events if e.event_type == "submission_graded"]
    assert events[-1].event_data["previousStatus"] == "graded"


@pytest.mark.anyio
async def test_cross_tenant_grade_is_forbidden_and_leaves_submission_untouched():
    org_a = make_org("A")
    teacher_a = login_new(org_a, "teacher")
    student_a = login_new(org_a, "student")
    admin_b = login_new(make_org("B"), "admin")
    teacher_b = login_new(get_repo().get_organization(admin_b.user.organization_id), "teacher")
    _, assignment = await _course_with_assignment(teacher_a)
    async with client_for(student_a) as client:
        submission = (await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})).json()

    for who in (teacher_b, admin_b):
        async with client_for(who) as client:
            resp = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 0, "feedback": "pwned"})
        assert resp.status_code == 403

    stored = get_repo().get_submission(submission["id"])
    assert stored.status == "submitted"
    assert stored.score is None
    assert stored.feedback is None
    assert not [e for e in get_repo().events if e.event_type == "submission_graded"]


@pytest.mark.anyio
async def test_teacher_cannot_grade_colleagues_assignment_but_admin_can():
    org = make_org()
    author = login_new(org, "teacher")
    colleague = login_new(org, "teacher")
    admin = login_new(org, "admin")
    student = login_new(org, "student")
    _, assignment = await _course_with_assignment(author)
    async with client_for(student) as client:
        submission = (await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})).json()

    async with client_for(colleague) as client:
        denied = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 10})
    async with client_for(admin) as client:
        allowed = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 90})
    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert get_repo().get_submission(submission["id"]).score == 90


@pytest.mark.anyio
async def test_student_cannot_grade():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    _, assignment = await _course_with_assignment(teacher)
    async with client_for(student) as client:
        submission = (await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})).json()
        resp = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 100})
    assert resp.status_code == 403
    assert get_repo().get_submission(submission["id"]).status == "submitted"


@pytest.mark.anyio
async def test_grading_unknown_submission_is_404():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        resp = await client.put("/api/submissions/missing/grade", json={"score": 1})
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_negative_score_is_rejected():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        resp = await client.put("/api/submissions/any/grade", json={"score": -1})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "score"


@pytest.mark.anyio
async def test_submitting_to_foreign_or_missing_assignment():
    teacher_a = login_new(make_org("A"), "teacher")
    student_b = login_new(make_org("B"), "student")
    _, assignment = await _course_with_assignment(teacher_a)
    async with client_for(student_b) as client:
        foreign = await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})
        missing = await client.post("/api/assignments/nope/submit", json={"content": "x"})
    assert foreign.status_code == 403
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_own_submissions_and_assignments_lists():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    other = login_new(org, "student")
    _, assignment = await _course_with_assignment(teacher)
    async with client_for(student) as client:
        await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "one"})
        await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "two"})
        mine = (await client.get("/api/submissions")).json()
    async with client_for(other) as client:
        theirs = (await client.get("/api/submissions")).json()
    async with client_for(teacher) as client:
        authored = (await client.get("/api/assignments")).json()
        by_course = (await client.get(f"/api/courses/{assignment['courseId']}/assignments")).json()

    assert [s["content"] for s in mine] == ["two", "one"]
    assert theirs == []
    assert [a["id"] for a in authored] == [assignment["id"]]
    assert [a["id"] for a in by_course] == [assignment["id"]]


@pytest.mark.anyio
async def test_grading_or_submitting_without_organization_is_400():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    _, assignment = await _course_with_assignment(teacher)
    async with client_for(student) as client:
        submission = (await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})).json()

    orphan_teacher = login_new(None, "teacher")
    orphan_student = login_new(None, "student")
    async with client_for(orphan_teacher) as client:
        graded = await client.put(f"/api/submissions/{submission['id']}/grade", json={"score": 5})
    async with client_for(orphan_student) as client:
        submitted = await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "y"})

    for resp in (graded, submitted):
        assert resp.status_code == 400
        assert resp.json()["detail"] == "no_organization"
    stored = get_repo().get_submission(submission["id"])
    assert stored.status == "submitted"
    assert stored.score is None
    assert get_repo().get_student_submissions(orphan_student.user.id) == []
