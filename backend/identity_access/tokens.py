"""
ID token verification for the OIDC login.

The provider's signing keys are fetched from the `jwks_uri` named in the
discovery document and cached per URI, indexed by key id. A token signed with
a key id the cache does not know triggers one refetch (key rotation) before
it is rejected.

Checks: RS/ES signature, issuer, audience (= client id), `exp`/`iat`/`nbf`
with a few seconds of skew, and a non-empty `sub`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import time

import requests
from jose import jwt
from jose.exceptions import JOSEError

from .oidc import HTTP_TIMEOUT_SECONDS, OIDCConfig, ProviderMetadata

MAX_CLOCK_SKEW_SECONDS = 5


class IDTokenVerificationError(Exception):
    """Raised when the ID token fails verification; `code` names the check."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass
class _KeySet:
    keys: Dict[str, Dict[str, object]] = field(default_factory=dict)
    fetched_at: float = 0.0


class JWKSCache:
    """Signing keys per `jwks_uri`, refreshed after `ttl_seconds`."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._sets: Dict[str, _KeySet] = {}

    def get(self, jwks_uri: str, *, refresh: bool = False) -> Dict[str, Dict[str, object]]:
        """Return `{kid: jwk}` for the URI, fetching when stale or when asked to."""
        cached = self._sets.get(jwks_uri)
        now = time.time()
        if cached and not refresh and now - cached.fetched_at < self.ttl_seconds:
            return cached.keys
        keys = _index_by_kid(_download_jwks(jwks_uri))
        self._sets[jwks_uri] = _KeySet(keys=keys, fetched_at=now)
        return keys

    def key_for(self, jwks_uri: str, kid: str) -> Optional[Dict[str, object]]:
        key = self.get(jwks_uri).get(kid)
        if key is None:
            key = self.get(jwks_uri, refresh=True).get(kid)
        return key


def _download_jwks(jwks_uri: str) -> Dict[str, object]:
    try:
        resp = requests.get(jwks_uri, timeout=HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        raise IDTokenVerificationError("jwks_fetch_failed") from exc
    if resp.status_code != 200:
        raise IDTokenVerificationError("jwks_fetch_failed")
    try:
        doc = resp.json()
    except ValueError as exc:
        raise IDTokenVerificationError("jwks_invalid") from exc
    if not isinstance(doc, dict) or not isinstance(doc.get("keys"), list):
        raise IDTokenVerificationError("jwks_invalid")
    return doc


def _index_by_kid(doc: Dict[str, object]) -> Dict[str, Dict[str, object]]:
    return {k["kid"]: k for k in doc["keys"] if isinstance(k, dict) and k.get("kid")}


JWKS_CACHE = JWKSCache()


def verify_id_token(
    *,
    id_token: str,
    cfg: OIDCConfig,
    metadata: ProviderMetadata,
    cache: JWKSCache | None = None,
) -> Dict[str, object]:
    """Verify `id_token` against the provider keys and return its claims.

    Raises IDTokenVerificationError with codes such as `missing_kid`,
    `unknown_kid`, `invalid_id_token`, `missing_sub` or a JWKS fetch code.
    """
    cache = cache or JWKS_CACHE
    try:
        kid = jwt.get_unverified_header(id_token).get("kid")
    except JOSEError as exc:
        raise IDTokenVerificationError("invalid_id_token") from exc
    if not kid:
        raise IDTokenVerificationError("missing_kid")
    key = cache.key_for(metadata.jwks_uri, kid)
    if key is None:
        raise IDTokenVerificationError("unknown_kid")

    try:
        # Temporal claims are checked below with explicit skew.
        claims = jwt.decode(
            id_token,
            key,
            algorithms=[key.get("alg", "RS256")],
            audience=cfg.client_id,
            issuer=metadata.issuer,
            options={"verify_exp": False, "verify_iat": False, "verify_nbf": False, "verify_at_hash": False},
        )
    except JOSEError as exc:
        raise IDTokenVerificationError("invalid_id_token") from exc

    check_token_times(claims)
    if not claims.get("sub"):
        raise IDTokenVerificationError("missing_sub")
    return claims


def check_token_times(claims: Dict[str, object], now: float | None = None) -> None:
    """Require a numeric `exp` in the future; `iat`/`nbf` must not lie ahead."""
    now = time.time() if now is None else now
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise IDTokenVerificationError("invalid_id_token")
    for name in ("iat", "nbf"):
        value = claims.get(name)
        if isinstance(value, (int, float)) and value - MAX_CLOCK_SKEW_SECONDS > now:
            raise IDTokenVerificationError("invalid_id_token")
