"""
Authentication strategies behind one interface.

- `SessionAuthStrategy` resolves the caller from the signed session cookie
  and the server-side session store (the OIDC login path).
- `DemoAuthStrategy` resolves every request to a fixed demo identity. It is
  selected only by explicit configuration (`AUTH_MODE=demo`) and is refused
  at startup in production-like environments.

Strategies are framework independent: they receive the raw cookie value.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol
import logging

from itsdangerous import BadSignature, Signer

from .domain import DEMO_CLAIMS

logger = logging.getLogger("amali.identity_access.strategies")

AUTH_MODES = frozenset({"oidc", "demo"})


@dataclass(frozen=True)
class Identity:
    sub: str
    claims: Dict[str, object] = field(default_factory=dict)
    session_id: Optional[str] = None


class SessionLookup(Protocol):
    def get(self, session_id: str): ...


class AuthStrategy(Protocol):
    name: str

    def authenticate(self, cookie_value: Optional[str]) -> Optional[Identity]: ...


class SessionCookieSigner:
    """Signs opaque session ids for the `sid` cookie."""

    def __init__(self, secret: str, salt: str = "amali.sid") -> None:
        self._signer = Signer(secret, salt=salt)

    def sign(self, session_id: str) -> str:
        return self._signer.sign(session_id.encode("utf-8")).decode("utf-8")

    def unsign(self, value: str) -> Optional[str]:
        try:
            return self._signer.unsign(value.encode("utf-8")).decode("utf-8")
        except BadSignature:
            return None


class SessionAuthStrategy:
    name = "oidc"

    def __init__(self, store: SessionLookup, signer: SessionCookieSigner) -> None:
        self.store = store
        self.signer = signer

    def authenticate(self, cookie_value: Optional[str]) -> Optional[Identity]:
        if not cookie_value:
            return None
        sid = self.signer.unsign(cookie_value)
        if sid is None:
            logger.warning("Rejected session cookie with invalid signature")
            return None
        rec = self.store.get(sid)
        if not rec:
            return None
        return Identity(sub=rec.sub, claims=dict(rec.claims or {}), session_id=rec.session_id)


class DemoAuthStrategy:
    name = "demo"

    def __init__(self, role: str = "admin", claims: Optional[Dict[str, object]] = None) -> None:
        self.role = role
        self.claims = dict(claims or DEMO_CLAIMS)

    def authenticate(self, cookie_value: Optional[str]) -> Optional[Identity]:
        return Identity(sub=str(self.claims["sub"]), claims=dict(self.claims))
