"""
Database-backed SessionStore (Postgres).

Persists sessions in the `sessions` table (`sid`, `sess` jsonb, `expire`) so
they survive restarts and can be shared across instances. Only the opaque
`sid` travels in the cookie; identity claims stay in `sess`.

Enabled via `SESSIONS_BACKEND=db`. Tests use the in-memory store or a fake
psycopg driver.
"""
from __future__ import annotations

from typing import Dict, Optional
import os
import re
import secrets
import time

try:
    import psycopg
    from psycopg.types.json import Json
    HAVE_PSYCOPG = True
except ImportError:  # pragma: no cover - optional in minimal dev setups
    psycopg = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from .stores import SESSION_TTL_SECONDS, SessionRecord

_TABLE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def _now() -> int:
    return int(time.time())


class DBSessionStore:
    """Postgres-backed session store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Defaults to SESSION_DATABASE_URL, then
        DATABASE_URL.
    table:
        Table name, optionally schema-qualified. Defaults to `public.sessions`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.sessions") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBSessionStore")
        self._dsn = dsn or os.getenv("SESSION_DATABASE_URL") or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBSessionStore")
        if not _TABLE_PATTERN.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table

    def create(
        self,
        *,
        sub: str,
        claims: Optional[Dict[str, object]] = None,
        ttl_seconds: int = SESSION_TTL_SECONDS,
    ) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        expires_at = _now() + ttl_seconds
        sess = {"sub": sub, "claims": dict(claims or {})}
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (sid, sess, expire) values (%s, %s, to_timestamp(%s))",
                    (sid, Json(sess), expires_at),
                )
        return SessionRecord(
            session_id=sid,
            sub=sub,
            claims=dict(claims or {}),
            expires_at=expires_at,
            ttl_seconds=ttl_seconds,
        )

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select sid, sess, extract(epoch from expire)::bigint "
                    f"from {self._table} where sid = %s and expire > now()",
                    (session_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        sess = row[1] if isinstance(row[1], dict) else {}
        sub = sess.get("sub")
        if not isinstance(sub, str) or not sub:
            return None
        claims = sess.get("claims") if isinstance(sess.get("claims"), dict) else {}
        return SessionRecord(
            session_id=row[0],
            sub=sub,
            claims=claims,
            expires_at=int(row[2]) if row[2] is not None else None,
        )

    def delete(self, session_id: str) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where sid = %s", (session_id,))

    def delete_by_sub(self, sub: str) -> int:
        """End every session of `sub` (e.g. after a role change); returns the row count."""
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where sess->>'sub' = %s", (sub,))
                return int(getattr(cur, "rowcount", 0) or 0)

    def purge_expired(self) -> int:
        """Delete expired sessions; returns the number of removed rows."""
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where expire <= now()")
                return int(getattr(cur, "rowcount", 0) or 0)
