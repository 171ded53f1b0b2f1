"""
Identity domain constants and simple helpers.

Roles are a closed set shared by the capability table in the web adapter,
first-login provisioning and the admin role-update endpoint.
"""

from __future__ import annotations

ALLOWED_ROLES = frozenset({"student", "teacher", "admin", "parent"})

# Roles that may author course content and grade submissions.
TEACHING_ROLES = frozenset({"teacher", "admin"})

# Role assigned to a user created by their first OIDC login.
FIRST_LOGIN_ROLE = "teacher"

# Fixed identity used when AUTH_MODE=demo.
DEMO_CLAIMS = {
    "sub": "demo-user-123",
    "email": "admin@amali-demo.com",
    "first_name": "Demo",
    "last_name": "Admin",
}


def is_valid_role(value: object) -> bool:
    return isinstance(value, str) and value in ALLOWED_ROLES


__all__ = ["ALLOWED_ROLES", "TEACHING_ROLES", "FIRST_LOGIN_ROLE", "DEMO_CLAIMS", "is_valid_role"]
