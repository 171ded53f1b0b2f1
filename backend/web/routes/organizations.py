"""
Organization administration API (admin only).

Admins may only read or change users of their own organization.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Request

from ..repo_wiring import get_repo
from ..responses import forbidden, json_private, not_found, to_api
from ..schemas import CamelModel
from ..tenancy import current_user

organizations_router = APIRouter(tags=["Organizations"])
logger = logging.getLogger("amali.web.organizations")


class RoleUpdatePayload(CamelModel):
    role: Literal["student", "teacher", "admin", "parent"]


@organizations_router.get("/api/organizations/{org_id}/users")
async def list_organization_users(request: Request, org_id: str):
    """
    List users of an organization.

    Permissions:
        admin (capability table) of the same organization; other orgs -> 403.
    """
    user = current_user(request)
    if user.organization_id != org_id:
        return forbidden()
    return json_private(to_api(get_repo().get_users_by_organization(org_id)))


@organizations_router.put("/api/users/{user_id}/role")
async def update_user_role(request: Request, user_id: str, payload: RoleUpdatePayload):
    """
    Change the role of a user in the caller's organization.

    Behavior:
        - 404 when the target does not exist, 403 when it belongs to another org.
        - An admin cannot change their own role (403 `cannot_change_own_role`).
        - The target's sessions are ended; the new role applies from their next login.
    """
    from web import main

    admin = current_user(request)
    repo = get_repo()
    target = repo.get_user(user_id)
    if target is None:
        return not_found()
    if not admin.organization_id or target.organization_id != admin.organization_id:
        return forbidden()
    if target.id == admin.id:
        return forbidden("cannot_change_own_role")
    updated = repo.update_user_role(user_id, payload.role)
    if updated is None:
        return not_found()
    ended = main.SESSION_STORE.delete_by_sub(user_id)
    logger.info(
        "Role of user %s changed from %s to %s by %s (%d sessions ended)",
        user_id,
        target.role,
        payload.role,
        admin.id,
        ended,
    )
    return json_private(to_api(updated))
