"""
Authentication-related FastAPI routes (router-only module).

Notes:
    - This module imports `web.main` inside functions to reuse the shared OIDC
      client, state/session stores and cookie helpers. The OIDC callback stays
      in `main.py` next to the stores it writes.
    - In `AUTH_MODE=demo` login and logout are no-ops that redirect home.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from identity_access.oidc import OIDCClient, OIDCDiscoveryError

from .. import config
from ..auth_utils import SESSION_COOKIE_NAME, cookie_opts, is_inapp_path
from ..repo_wiring import get_repo
from ..responses import PRIVATE_HEADERS, json_private, not_found, private_error, to_api

auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("amali.web.auth")


def _request_host(request: Request) -> str:
    """Return the lowercased request host, honoring X-Forwarded-Host behind a trusted proxy."""
    import os
    host = (request.url.hostname or "").lower()
    if (os.getenv("AMALI_TRUST_PROXY", "false") or "").lower() == "true":
        xf_host = (request.headers.get("x-forwarded-host") or "").split(",")[0].strip()
        if xf_host:
            host = xf_host.rsplit(":", 1)[0].lower()
    return host


def callback_url_for(request: Request) -> str:
    """Pick the per-domain callback URL for this request.

    Hosts listed in APP_DOMAINS get `https://<host>/api/callback`; other hosts
    fall back to the first configured domain. Without APP_DOMAINS the request
    origin is used (local development).
    """
    domains = config.app_domains()
    host = _request_host(request)
    if domains:
        domain = host if host in domains else domains[0]
        return f"https://{domain}/api/callback"
    base = f"{request.url.scheme}://{request.url.netloc}"
    return f"{base}/api/callback"


@auth_router.get("/api/login")
async def auth_login(request: Request, redirect: str | None = None):
    """
    Start the OIDC flow with PKCE, nonce and server-side state; redirect to the IdP.

    Behavior:
        - Accepts an optional in-app `redirect` path; external URLs are ignored.
        - Requests scopes `openid email profile offline_access` with
          `prompt=login consent`.
        - 503 when OIDC is not configured, 502 when discovery fails.
    Permissions:
        Public.
    """
    from web import main

    safe_redirect = redirect if is_inapp_path(redirect) else None
    if config.auth_mode() == "demo":
        return RedirectResponse(url=safe_redirect or "/", status_code=302, headers=dict(PRIVATE_HEADERS))
    if main.OIDC is None:
        logger.error("Login requested but OIDC_ISSUER_URL/OIDC_CLIENT_ID are not configured")
        return private_error("oidc_unconfigured", status_code=503)

    code_verifier = OIDCClient.generate_code_verifier()
    code_challenge = OIDCClient.code_challenge_s256(code_verifier)
    nonce = secrets.token_urlsafe(16)
    redirect_uri = callback_url_for(request)
    rec = main.STATE_STORE.create(
        code_verifier=code_verifier, redirect=safe_redirect, nonce=nonce, redirect_uri=redirect_uri
    )
    try:
        url = main.OIDC.build_authorization_url(
            redirect_uri=redirect_uri, state=rec.state, code_challenge=code_challenge, nonce=nonce
        )
    except OIDCDiscoveryError as exc:
        logger.warning("OIDC discovery failed during login: %s", exc.code)
        return private_error("idp_unavailable", status_code=502)
    return RedirectResponse(url=url, status_code=302, headers=dict(PRIVATE_HEADERS))


@auth_router.get("/api/logout")
async def auth_logout(request: Request):
    """
    Clear the app session and redirect to "/".

    Behavior:
        - Deletes the server-side session if the cookie signature is valid.
        - Expires the `sid` cookie.
        - The IdP session is left alone (no end-session redirect, no revocation).
    Permissions:
        Public.
    """
    from web import main

    raw = request.cookies.get(SESSION_COOKIE_NAME)
    sid = main.COOKIE_SIGNER.unsign(raw) if raw else None
    if sid:
        main.SESSION_STORE.delete(sid)

    resp = RedirectResponse(url="/", status_code=302, headers=dict(PRIVATE_HEADERS))
    opts = cookie_opts()
    resp.delete_cookie(SESSION_COOKIE_NAME, path="/", secure=opts["secure"], httponly=True, samesite=opts["samesite"])
    return resp


@auth_router.get("/api/auth/user")
async def get_auth_user(request: Request):
    """
    Return the caller's user record with their organization embedded.

    Permissions:
        Any authenticated caller. 404 when the identity has no user row.
    """
    user = getattr(request.state, "user", None)
    if user is None:
        return not_found()
    org = get_repo().get_organization(user.organization_id) if user.organization_id else None
    body = to_api(user)
    body["organization"] = to_api(org)
    return json_private(body)
