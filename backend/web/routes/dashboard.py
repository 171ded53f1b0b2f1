"""Dashboard aggregates API."""

from __future__ import annotations

from fastapi import APIRouter, Request

from classroom.usecases import DashboardStatsUseCase, MissingOrganizationError

from ..repo_wiring import get_repo
from ..responses import json_private, no_organization
from ..tenancy import current_user

dashboard_router = APIRouter(tags=["Dashboard"])


@dashboard_router.get("/api/dashboard/stats")
async def dashboard_stats(request: Request):
    """
    Return role-dependent aggregates for the caller.

    Responses:
        admin: {totalUsers, activeUsers, totalCourses, avgEngagementRate}
        teacher: {pendingGrading, totalCourses, totalStudents}
        student: {completedLessons, totalXP, currentStreak}
        parent: {}
        400 when the caller has no organization.
    """
    try:
        stats = DashboardStatsUseCase(get_repo()).execute(current_user(request))
    except MissingOrganizationError:
        return no_organization()
    return json_private(stats)
