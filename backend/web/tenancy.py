"""
Organization scoping for API handlers.

Handlers that act on an entity by id resolve the entity's owning organization
through `repo.get_scope` and compare it with the caller's organization.
"""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from classroom.models import User

from .repo_wiring import get_repo
from .responses import forbidden, no_organization, not_found

logger = logging.getLogger("amali.web.tenancy")


def current_user(request: Request) -> User:
    """Return the caller's user row attached by the auth middleware."""
    return request.state.user


def scope_error(kind: str, entity_id: str, user: User) -> JSONResponse | None:
    """Return the error response for an out-of-scope entity, else None.

    400 when the caller has no organization, 404 when the entity is missing,
    403 when it belongs to another organization.
    """
    if not user.organization_id:
        return no_organization()
    scope = get_repo().get_scope(kind, entity_id)
    if scope is None:
        return not_found()
    if scope.organization_id != user.organization_id:
        logger.warning("Cross-tenant %s access denied (user=%s, id=%s)", kind, user.id, entity_id)
        return forbidden()
    return None
