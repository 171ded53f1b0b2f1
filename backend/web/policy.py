"""
Capability table for the HTTP API.

Every `/api/*` route is listed once with the roles allowed to call it. The
auth middleware evaluates the table before any handler runs. Routes missing
from the table are denied.

Organization scoping is a per-entity concern and stays in the handlers
(via `repo.get_scope`); this table only answers "may this role call this route".
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Pattern
import re

from identity_access.domain import ALLOWED_ROLES, TEACHING_ROLES

ANY_ROLE = ALLOWED_ROLES
ADMIN_ONLY = frozenset({"admin"})

PUBLIC_PATHS = frozenset({"/api/health", "/api/login", "/api/callback", "/api/logout"})


def _compile(template: str) -> Pattern[str]:
    parts = re.split(r"(\{[A-Za-z_][A-Za-z0-9_]*\})", template)
    regex = "".join("[^/]+" if p.startswith("{") else re.escape(p) for p in parts)
    return re.compile(f"^{regex}$")


@dataclass(frozen=True)
class Capability:
    method: str
    path: str
    roles: frozenset
    allow_missing_user: bool = False
    pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", _compile(self.path))

    def matches(self, method: str, path: str) -> bool:
        return self.method == method.upper() and bool(self.pattern.match(path))


CAPABILITIES: tuple[Capability, ...] = (
    Capability("GET", "/api/auth/user", ANY_ROLE, allow_missing_user=True),
    Capability("GET", "/api/dashboard/stats", ANY_ROLE),
    # Courses, units, lessons
    Capability("GET", "/api/courses", ANY_ROLE),
    Capability("POST", "/api/courses", TEACHING_ROLES),
    Capability("GET", "/api/courses/{course_id}/units", ANY_ROLE),
    Capability("POST", "/api/courses/{course_id}/units", TEACHING_ROLES),
    Capability("POST", "/api/courses/{course_id}/enroll", ANY_ROLE),
    Capability("GET", "/api/courses/{course_id}/enrollments", TEACHING_ROLES),
    Capability("GET", "/api/courses/{course_id}/assignments", ANY_ROLE),
    Capability("GET", "/api/units/{unit_id}/lessons", ANY_ROLE),
    Capability("POST", "/api/units/{unit_id}/lessons", TEACHING_ROLES),
    # Assignments and grading
    Capability("GET", "/api/assignments", TEACHING_ROLES),
    Capability("POST", "/api/assignments", TEACHING_ROLES),
    Capability("GET", "/api/assignments/pending-grading", ANY_ROLE),
    Capability("POST", "/api/assignments/{assignment_id}/submit", ANY_ROLE),
    Capability("GET", "/api/submissions", ANY_ROLE),
    Capability("PUT", "/api/submissions/{submission_id}/grade", TEACHING_ROLES),
    # Progress
    Capability("GET", "/api/progress", ANY_ROLE),
    Capability("POST", "/api/progress", ANY_ROLE),
    # Organization administration
    Capability("GET", "/api/organizations/{org_id}/users", ADMIN_ONLY),
    Capability("PUT", "/api/users/{user_id}/role", ADMIN_ONLY),
)


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS


def find_capability(method: str, path: str, table: Iterable[Capability] = CAPABILITIES) -> Optional[Capability]:
    for cap in table:
        if cap.matches(method, path):
            return cap
    return None


def is_allowed(method: str, path: str, role: Optional[str]) -> bool:
    """Return True when `role` may call `method path`; unknown routes are denied.

    `role=None` stands for an authenticated identity without a user row; only
    routes flagged `allow_missing_user` accept it.
    """
    cap = find_capability(method, path)
    if cap is None:
        return False
    if role is None:
        return cap.allow_missing_user
    return role in cap.roles
