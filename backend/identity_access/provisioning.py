"""
User provisioning from identity claims.

The first login of an unknown `sub` creates a personal organization and a user
with the teacher role. Later logins refresh profile fields only; role and
organization are never taken from the identity provider.
"""
from __future__ import annotations

from typing import Mapping, Optional
import logging

from classroom.models import User
from classroom.ports import ClassroomRepoProtocol

from .domain import FIRST_LOGIN_ROLE

logger = logging.getLogger("amali.identity_access.provisioning")


def _claim(claims: Mapping[str, object], *names: str) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def profile_from_claims(claims: Mapping[str, object]) -> dict:
    """Normalize standard and provider-specific claim names into profile fields."""
    return {
        "email": _claim(claims, "email"),
        "first_name": _claim(claims, "first_name", "given_name"),
        "last_name": _claim(claims, "last_name", "family_name"),
        "profile_image_url": _claim(claims, "profile_image_url", "picture"),
    }


def organization_name_for(profile: Mapping[str, Optional[str]]) -> str:
    owner = profile.get("first_name") or profile.get("email") or "User"
    return f"{owner}'s Organization"


def provision_user(
    repo: ClassroomRepoProtocol,
    claims: Mapping[str, object],
    *,
    first_login_role: str = FIRST_LOGIN_ROLE,
) -> User:
    """Create or refresh the user row for the given identity claims.

    Parameters
    ----------
    repo:
        Classroom repository.
    claims:
        Verified identity claims; `sub` is required.
    first_login_role:
        Role for a user created by this call (teacher for OIDC logins).

    Raises
    ------
    ValueError:
        When `sub` is missing.
    """
    sub = _claim(claims, "sub")
    if not sub:
        raise ValueError("missing_sub")
    profile = profile_from_claims(claims)
    existing = repo.get_user(sub)
    if existing is not None:
        return repo.upsert_user(
            id=sub,
            organization_id=existing.organization_id,
            role=existing.role,
            **profile,
        )

    org = repo.create_organization(name=organization_name_for(profile), domain=f"org-{sub}")
    user = repo.upsert_user(id=sub, organization_id=org.id, role=first_login_role, **profile)
    logger.info("Provisioned user %s with organization %s", sub, org.id)
    return user
