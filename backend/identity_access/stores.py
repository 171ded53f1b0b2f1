"""
In-memory stores: StateStore (login flow) and SessionStore (sessions).

Cookies carry only an opaque, signed session id. Identity claims stay
server-side. Use `stores_db.DBSessionStore` when sessions must survive
restarts or be shared across instances.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import secrets
import time

STATE_TTL_SECONDS = 900
SESSION_TTL_SECONDS = 7 * 24 * 3600


def _now() -> int:
    return int(time.time())


@dataclass
class StateRecord:
    state: str
    code_verifier: str
    redirect: Optional[str]
    expires_at: int
    nonce: Optional[str] = None
    redirect_uri: Optional[str] = None


class StateStore:
    def __init__(self):
        self._data: Dict[str, StateRecord] = {}

    def create(
        self,
        *,
        code_verifier: str,
        ttl_seconds: int = STATE_TTL_SECONDS,
        redirect: Optional[str] = None,
        nonce: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ) -> StateRecord:
        state = secrets.token_urlsafe(24)
        rec = StateRecord(
            state=state,
            code_verifier=code_verifier,
            redirect=redirect,
            expires_at=_now() + ttl_seconds,
            nonce=nonce,
            redirect_uri=redirect_uri,
        )
        self._data[state] = rec
        return rec

    def pop_valid(self, state: str) -> Optional[StateRecord]:
        rec = self._data.pop(state, None)
        if not rec:
            return None
        if rec.expires_at < _now():
            return None
        return rec


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    claims: Dict[str, object] = field(default_factory=dict)
    expires_at: Optional[int] = None
    ttl_seconds: int = SESSION_TTL_SECONDS


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(
        self,
        *,
        sub: str,
        claims: Optional[Dict[str, object]] = None,
        ttl_seconds: int = SESSION_TTL_SECONDS,
    ) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(
            session_id=sid,
            sub=sub,
            claims=dict(claims or {}),
            expires_at=_now() + ttl_seconds,
            ttl_seconds=ttl_seconds,
        )
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def delete_by_sub(self, sub: str) -> int:
        """End every session of `sub`; returns how many were removed."""
        doomed = [sid for sid, rec in self._data.items() if rec.sub == sub]
        for sid in doomed:
            self._data.pop(sid, None)
        return len(doomed)
