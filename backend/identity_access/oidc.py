"""
Minimal OIDC client with provider discovery.

The web adapter (FastAPI) calls into this module to build the authorization
URL and to exchange the authorization code for tokens. Provider endpoints are
read from the issuer's discovery document, which is memoized for one hour.

Security: Uses PKCE (S256) parameters; the caller stores state, nonce and
code_verifier server-side (see `stores.StateStore`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import base64
import hashlib
import logging
import os
import time
from urllib.parse import urlencode

# Small indirection to ease monkeypatching in tests
import requests as http

logger = logging.getLogger("amali.identity_access.oidc")

DEFAULT_SCOPE = "openid email profile offline_access"
DEFAULT_PROMPT = "login consent"
HTTP_TIMEOUT_SECONDS = 5


def http_get(url: str):
    return http.get(url, timeout=HTTP_TIMEOUT_SECONDS)


def http_post(url: str, data: Dict[str, str], headers: Dict[str, str]):
    return http.post(url, data=data, headers=headers, timeout=HTTP_TIMEOUT_SECONDS)


class OIDCDiscoveryError(Exception):
    """Raised when the provider metadata cannot be fetched or is incomplete."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class OIDCConfig:
    issuer_url: str  # e.g., https://replit.com/oidc
    client_id: str
    client_secret: Optional[str] = None
    scope: str = DEFAULT_SCOPE


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str


@dataclass
class _DiscoveryEntry:
    metadata: ProviderMetadata
    expires_at: float


class DiscoveryCache:
    """Memoizes provider metadata per issuer URL for `ttl_seconds`."""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, _DiscoveryEntry] = {}

    def get(self, issuer_url: str) -> ProviderMetadata:
        key = issuer_url.rstrip("/")
        now = time.time()
        entry = self._entries.get(key)
        if entry and entry.expires_at > now:
            return entry.metadata
        metadata = self._fetch(key)
        self._entries[key] = _DiscoveryEntry(metadata=metadata, expires_at=now + self.ttl_seconds)
        return metadata

    def clear(self) -> None:
        self._entries.clear()

    def _fetch(self, issuer_url: str) -> ProviderMetadata:
        url = f"{issuer_url}/.well-known/openid-configuration"
        try:
            resp = http_get(url)
        except http.RequestException as exc:
            logger.warning("OIDC discovery request failed: %s", exc.__class__.__name__)
            raise OIDCDiscoveryError("discovery_failed") from exc
        if resp.status_code != 200:
            raise OIDCDiscoveryError("discovery_failed")
        try:
            doc = resp.json()
        except ValueError as exc:
            raise OIDCDiscoveryError("discovery_invalid") from exc
        if not isinstance(doc, dict):
            raise OIDCDiscoveryError("discovery_invalid")
        required = ("authorization_endpoint", "token_endpoint", "jwks_uri")
        if any(not isinstance(doc.get(k), str) or not doc.get(k) for k in required):
            raise OIDCDiscoveryError("discovery_invalid")
        return ProviderMetadata(
            issuer=str(doc.get("issuer") or issuer_url),
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            jwks_uri=doc["jwks_uri"],
        )


DISCOVERY_CACHE = DiscoveryCache()


class OIDCClient:
    def __init__(self, config: OIDCConfig, discovery: DiscoveryCache | None = None):
        self.cfg = config
        self._discovery = discovery or DISCOVERY_CACHE

    @property
    def metadata(self) -> ProviderMetadata:
        return self._discovery.get(self.cfg.issuer_url)

    @staticmethod
    def generate_code_verifier(length: int = 64) -> str:
        """Generate a high-entropy URL-safe code_verifier (43..128 chars)."""
        return base64.urlsafe_b64encode(os.urandom(length)).decode("ascii").rstrip("=")

    @staticmethod
    def code_challenge_s256(code_verifier: str) -> str:
        """Derive S256 code challenge from verifier."""
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def build_authorization_url(
        self,
        *,
        redirect_uri: str,
        state: str,
        code_challenge: str,
        nonce: Optional[str] = None,
        prompt: str = DEFAULT_PROMPT,
    ) -> str:
        """Return the provider authorization URL for this client.

        Parameters
        - redirect_uri: Per-domain callback, e.g. https://lms.example.org/api/callback
        - state: Opaque anti-CSRF token stored server-side
        - code_challenge: The S256 code challenge derived from the verifier
        - nonce: OIDC replay protection value
        """
        params = {
            "response_type": "code",
            "client_id": self.cfg.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.cfg.scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if prompt:
            params["prompt"] = prompt
        if nonce:
            params["nonce"] = nonce
        return f"{self.metadata.authorization_endpoint}?{urlencode(params)}"

    def exchange_code_for_tokens(self, *, code: str, code_verifier: str, redirect_uri: str) -> Dict[str, str]:
        """Exchange authorization code for tokens at the token endpoint.

        Returns the token dict on success; raises ValueError on failure.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.cfg.client_id,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        if self.cfg.client_secret:
            data["client_secret"] = self.cfg.client_secret
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        resp = http_post(self.metadata.token_endpoint, data=data, headers=headers)
        if resp.status_code != 200:
            raise ValueError("token_exchange_failed")
        return resp.json()
