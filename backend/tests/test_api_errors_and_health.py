"""
Error envelope and health check.

- Validation failures -> 400 `invalid_input` with per-field errors
- Unhandled exceptions -> 500 `internal_error` without internals
- GET /api/health is public, uncached and reports the environment
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from web import main
from web.repo_wiring import get_repo
from utils.auth import client_for, login_new, make_org

pytestmark = pytest.mark.anyio("asyncio")


@pytest.mark.anyio
async def test_health_reports_status_and_environment():
    async with client_for() as client:
        resp = await client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "dev"
    assert body["timestamp"]
    assert resp.headers["Cache-Control"] == "private, no-store"


@pytest.mark.anyio
async def test_health_reflects_environment_override():
    main.SETTINGS.override_environment("prod")
    async with client_for() as client:
        resp = await client.get("/api/health")
    assert resp.json()["environment"] == "prod"


@pytest.mark.anyio
async def test_validation_errors_list_fields():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        resp = await client.post("/api/courses", json={"title": "", "subject": "x" * 101})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "bad_request"
    assert body["detail"] == "invalid_input"
    fields = {err["field"] for err in body["errors"]}
    assert fields == {"title", "subject"}
    assert all(err["message"] for err in body["errors"])
    assert resp.headers["Cache-Control"] == "private, no-store"


@pytest.mark.anyio
async def test_malformed_json_is_400():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        resp = await client.post(
            "/api/courses", content=b"{not json", headers={"Content-Type": "application/json"}
        )
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_unhandled_error_returns_generic_500(monkeypatch: pytest.MonkeyPatch):
    teacher = login_new(make_org(), "teacher")

    def boom(*args, **kwargs):
        raise RuntimeError("database exploded with secret details")

    monkeypatch.setattr(get_repo(), "get_courses_by_teacher", boom)
    transport = ASGITransport(app=main.app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.cookies.set("sid", teacher.cookie)
        resp = await client.get("/api/courses")
    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_error"}
    assert "secret" not in resp.text


PG_INT_OVERFLOW = 2**31


@pytest.mark.anyio
@pytest.mark.parametrize(
    "role,path,payload,field",
    [
        ("teacher", "/api/courses/c/units", {"title": "U", "orderIndex": PG_INT_OVERFLOW}, "orderIndex"),
        ("teacher", "/api/units/u/lessons", {"title": "L", "orderIndex": PG_INT_OVERFLOW}, "orderIndex"),
        ("teacher", "/api/units/u/lessons", {"title": "L", "xpReward": PG_INT_OVERFLOW}, "xpReward"),
        ("teacher", "/api/assignments", {"title": "A", "courseId": "c", "xpReward": PG_INT_OVERFLOW}, "xpReward"),
        ("teacher", "/api/assignments", {"title": "A", "courseId": "c", "totalPoints": PG_INT_OVERFLOW}, "totalPoints"),
        ("student", "/api/progress", {"lessonId": "l", "timeSpent": PG_INT_OVERFLOW}, "timeSpent"),
    ],
)
async def test_integers_beyond_column_range_are_400(role: str, path: str, payload: dict, field: str):
    caller = login_new(make_org(), role)
    async with client_for(caller) as client:
        resp = await client.post(path, json=payload)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "invalid_input"
    assert [e["field"] for e in resp.json()["errors"]] == [field]


@pytest.mark.anyio
async def test_grade_score_beyond_column_range_is_400():
    teacher = login_new(make_org(), "teacher")
    async with client_for(teacher) as client:
        too_big = await client.put("/api/submissions/s/grade", json={"score": PG_INT_OVERFLOW})
        at_limit = await client.put("/api/submissions/s/grade", json={"score": PG_INT_OVERFLOW - 1})
    assert too_big.status_code == 400
    assert too_big.json()["errors"][0]["field"] == "score"
    # Within range the payload validates and the missing submission is reported.
    assert at_limit.status_code == 404
