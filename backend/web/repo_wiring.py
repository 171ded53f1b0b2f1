"""
Classroom repository wiring for the web adapter.

Prefers the Postgres repository; falls back to the in-memory repository when
no DSN is configured or psycopg is unavailable. The repository is built on
first access.
"""
from __future__ import annotations

import logging

from classroom.ports import ClassroomRepoProtocol
from classroom.repo_memory import MemoryClassroomRepo

logger = logging.getLogger("amali.web.repo_wiring")

_REPO: ClassroomRepoProtocol | None = None


def _build_default_repo() -> ClassroomRepoProtocol:
    try:
        from classroom.repo_db import DBClassroomRepo

        return DBClassroomRepo()
    except RuntimeError as exc:
        logger.warning("Classroom repo unavailable (%s); using in-memory fallback", exc)
        return MemoryClassroomRepo()


def get_repo() -> ClassroomRepoProtocol:
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def set_repo(repo: ClassroomRepoProtocol | None) -> None:
    """Allow tests to swap the classroom repository implementation."""
    global _REPO
    _REPO = repo
