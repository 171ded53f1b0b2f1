"""Operations endpoints (orchestrator health checks)."""

from __future__ import annotations

from fastapi import APIRouter

from classroom.models import utc_now_iso

from ..responses import json_private

operations_router = APIRouter(tags=["Operations"])


@operations_router.get("/api/health")
async def health_check():
    """
    Liveness check reporting status, server time and deployment environment.

    Permissions:
        Public; the payload carries no tenant data and is never cached.
    """
    from web import main

    return json_private({"status": "healthy", "timestamp": utc_now_iso(), "environment": main.SETTINGS.environment})
