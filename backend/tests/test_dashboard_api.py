"""
Dashboard stats are role dependent and scoped to the caller's organization.
"""
from __future__ import annotations

import pytest

from web.repo_wiring import get_repo
from utils.auth import client_for, login_new, make_org

pytestmark = pytest.mark.anyio("asyncio")


@pytest.mark.anyio
async def test_empty_org_admin_stats_are_zero():
    admin = login_new(make_org(), "admin")
    async with client_for(admin) as client:
        resp = await client.get("/api/dashboard/stats")
    assert resp.status_code == 200
    assert resp.json() == {"totalUsers": 1, "activeUsers": 1, "totalCourses": 0, "avgEngagementRate": 0}


@pytest.mark.anyio
async def test_admin_stats_count_org_members_only():
    org = make_org()
    admin = login_new(org, "admin")
    teacher = login_new(org, "teacher")
    inactive = login_new(org, "student")
    get_repo().users[inactive.user.id].is_active = False
    login_new(make_org("Other"), "teacher")

    async with client_for(teacher) as client:
        await client.post("/api/courses", json={"title": "C"})
    async with client_for(admin) as client:
        stats = (await client.get("/api/dashboard/stats")).json()
    assert stats["totalUsers"] == 3
    assert stats["activeUsers"] == 2
    assert stats["totalCourses"] == 1


@pytest.mark.anyio
async def test_teacher_stats():
    org = make_org()
    teacher = login_new(org, "teacher")
    s1 = login_new(org, "student")
    s2 = login_new(org, "student")
    async with client_for(teacher) as client:
        course = (await client.post("/api/courses", json={"title": "C"})).json()
        assignment = (await client.post("/api/assignments", json={"title": "A", "courseId": course["id"]})).json()
        await client.post("/api/courses", json={"title": "Empty"})
    for student in (s1, s2):
        async with client_for(student) as client:
            await client.post(f"/api/courses/{course['id']}/enroll")
            await client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "x"})

    async with client_for(teacher) as client:
        stats = (await client.get("/api/dashboard/stats")).json()
    assert stats == {"pendingGrading": 2, "totalCourses": 2, "totalStudents": 2}


@pytest.mark.anyio
async def test_student_stats_and_zero_defaults():
    org = make_org()
    teacher = login_new(org, "teacher")
    student = login_new(org, "student")
    async with client_for(student) as client:
        empty = (await client.get("/api/dashboard/stats")).json()
    assert empty == {"completedLessons": 0, "totalXP": 0, "currentStreak": 0}

    async with client_for(teacher) as client:
        course = (await client.post("/api/courses", json={"title": "C"})).json()
        unit = (await client.post(f"/api/courses/{course['id']}/units", json={"title": "U"})).json()
        lesson = (await client.post(f"/api/units/{unit['id']}/lessons", json={"title": "L", "xpReward": 40})).json()
        other = (await client.post(f"/api/units/{unit['id']}/lessons", json={"title": "L2"})).json()
    async with client_for(student) as client:
        await client.post("/api/progress", json={"lessonId": lesson["id"], "completed": True})
        await client.post("/api/progress", json={"lessonId": other["id"], "completed": False})
        stats = (await client.get("/api/dashboard/stats")).json()
    assert stats == {"completedLessons": 1, "totalXP": 40, "currentStreak": 0}


@pytest.mark.anyio
async def test_parent_stats_are_empty():
    parent = login_new(make_org(), "parent")
    async with client_for(parent) as client:
        resp = await client.get("/api/dashboard/stats")
    assert resp.status_code == 200
    assert resp.json() == {}


@pytest.mark.anyio
async def test_caller_without_organization_gets_400():
    admin = login_new(None, "admin")
    async with client_for(admin) as client:
        resp = await client.get("/api/dashboard/stats")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "no_organization"
