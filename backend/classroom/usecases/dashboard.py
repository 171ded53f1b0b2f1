from __future__ import annotations

from typing import Any, Dict

from ..models import User
from ..ports import ClassroomRepoProtocol
from .errors import MissingOrganizationError


class DashboardStatsUseCase:
    def __init__(self, repo: ClassroomRepoProtocol) -> None:
        self._repo = repo

    def execute(self, user: User) -> Dict[str, Any]:
        """Return role-dependent dashboard aggregates.

        admin -> organization stats, teacher -> teaching insights,
        student -> learning insights, parent -> empty mapping.
        """
        if not user.organization_id:
            raise MissingOrganizationError("no_organization")
        if user.role == "admin":
            return self._repo.get_dashboard_stats(user.organization_id)
        if user.role == "teacher":
            return self._repo.get_teacher_insights(user.id)
        if user.role == "student":
            return self._repo.get_student_insights(user.id)
        return {}
