"Amali LMS backend"
from __future__ import annotations

import logging
import os
import secrets

import requests
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse, Response

from identity_access.oidc import OIDCClient, OIDCConfig, OIDCDiscoveryError
from identity_access.provisioning import profile_from_claims, provision_user
from identity_access.stores import SessionStore, StateStore
from identity_access.strategies import (
    AuthStrategy,
    DemoAuthStrategy,
    SessionAuthStrategy,
    SessionCookieSigner,
)
from identity_access.tokens import IDTokenVerificationError, verify_id_token

from web import config as _cfg
from web import policy
from web.auth_utils import SESSION_COOKIE_NAME, cookie_opts
from web.repo_wiring import get_repo
from web.responses import PRIVATE_HEADERS, private_error


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via AMALI_ENABLE_DOTENV (default true outside pytest).
    """
    import sys
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("AMALI_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Fail fast on insecure production configuration
_cfg.ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------


class AppSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return _cfg.current_environment()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("amali.web")
SETTINGS = AppSettings()

app = FastAPI(title="Amali LMS", description="Multi-tenant learning management backend", version="1.0.0")

from web.routes.assignments import assignments_router
from web.routes.auth import auth_router
from web.routes.courses import courses_router
from web.routes.dashboard import dashboard_router
from web.routes.operations import operations_router
from web.routes.organizations import organizations_router
from web.routes.progress import progress_router
from web.routes.security import _is_same_origin

# --- OIDC, Stores & Cookie Signing ---------------------------------------------


def load_oidc_config() -> OIDCConfig | None:
    issuer = (os.getenv("OIDC_ISSUER_URL") or "").strip()
    client_id = (os.getenv("OIDC_CLIENT_ID") or "").strip()
    if not issuer or not client_id:
        return None
    return OIDCConfig(
        issuer_url=issuer.rstrip("/"),
        client_id=client_id,
        client_secret=os.getenv("OIDC_CLIENT_SECRET") or None,
    )


OIDC_CFG = load_oidc_config()
OIDC: OIDCClient | None = OIDCClient(OIDC_CFG) if OIDC_CFG else None
STATE_STORE = StateStore()


def _under_pytest() -> bool:
    import sys
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


if (not _under_pytest()) and os.getenv("SESSIONS_BACKEND", "memory").lower() == "db":
    from identity_access.stores_db import DBSessionStore

    SESSION_STORE = DBSessionStore()
else:
    SESSION_STORE = SessionStore()


def _session_secret() -> str:
    secret = (os.getenv("SESSION_SECRET") or "").strip()
    if secret:
        return secret
    if not _under_pytest():
        logger.warning("SESSION_SECRET is not set; using an ephemeral secret (sessions end on restart)")
    return secrets.token_urlsafe(32)


COOKIE_SIGNER = SessionCookieSigner(_session_secret())

# --- Auth Helpers & Middleware --------------------------------------------------


def _auth_strategy() -> AuthStrategy:
    if _cfg.auth_mode() == "demo":
        role = (os.getenv("DEMO_USER_ROLE") or "admin").strip().lower()
        return DemoAuthStrategy(role=role)
    return SessionAuthStrategy(SESSION_STORE, COOKIE_SIGNER)


def sign_session_id(session_id: str) -> str:
    return COOKIE_SIGNER.sign(session_id)


def _set_session_cookie(response: Response, session_id: str, *, max_age: int | None = None) -> None:
    opts = cookie_opts()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=sign_session_id(session_id),
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


_UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Authenticate, load the caller's user row and evaluate the capability table."""
    path = request.url.path
    if not path.startswith("/api/") or policy.is_public_path(path):
        return await call_next(request)

    strategy = _auth_strategy()
    identity = None
    try:
        identity = strategy.authenticate(request.cookies.get(SESSION_COOKIE_NAME))
    except Exception as exc:
        logger.warning("Session lookup failed: %s", exc.__class__.__name__)
    if identity is None:
        return private_error("unauthenticated", status_code=401)

    repo = get_repo()
    user = repo.get_user(identity.sub)
    if user is None and isinstance(strategy, DemoAuthStrategy):
        user = provision_user(repo, identity.claims, first_login_role=strategy.role)

    request.state.identity = identity
    request.state.user = user

    if not policy.is_allowed(request.method, path, user.role if user else None):
        return private_error("forbidden", status_code=403)
    if request.method in _UNSAFE_METHODS and not _is_same_origin(request):
        return private_error("forbidden", status_code=403, detail="csrf_violation")
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    if request.url.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", PRIVATE_HEADERS["Cache-Control"])
    return response


# --- Error Handlers -------------------------------------------------------------


def _error_field(loc) -> str:
    parts = list(loc or ())
    if parts and parts[0] in ("body", "query", "path", "header", "cookie"):
        parts = parts[1:]
    return ".".join(str(p) for p in parts)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": _error_field(err.get("loc")), "message": err.get("msg", "")} for err in exc.errors()]
    return private_error("bad_request", status_code=400, detail="invalid_input", errors=errors)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return private_error("internal_error", status_code=500)


# --- Routers --------------------------------------------------------------------

app.include_router(auth_router)
app.include_router(courses_router)
app.include_router(assignments_router)
app.include_router(progress_router)
app.include_router(dashboard_router)
app.include_router(organizations_router)
app.include_router(operations_router)


@app.get("/api/callback")
async def auth_callback(request: Request, code: str | None = None, state: str | None = None):
    """Complete the OIDC login: verify tokens, provision the user, start a session."""
    if _cfg.auth_mode() == "demo":
        return RedirectResponse(url="/", status_code=302, headers=dict(PRIVATE_HEADERS))
    if OIDC is None or OIDC_CFG is None:
        return private_error("oidc_unconfigured", status_code=503)
    if not code or not state:
        return private_error("invalid_code_or_state", status_code=400)
    rec = STATE_STORE.pop_valid(state)
    if not rec:
        return private_error("invalid_code_or_state", status_code=400)
    try:
        tokens = OIDC.exchange_code_for_tokens(
            code=code, code_verifier=rec.code_verifier, redirect_uri=rec.redirect_uri or ""
        )
    except (ValueError, requests.RequestException, OIDCDiscoveryError) as exc:
        logger.warning("Token exchange failed: %s", exc.__class__.__name__)
        return private_error("token_exchange_failed", status_code=400)
    id_token = tokens.get("id_token")
    if not id_token or not isinstance(id_token, str):
        return private_error("invalid_id_token", status_code=400)
    try:
        claims = verify_id_token(id_token=id_token, cfg=OIDC_CFG, metadata=OIDC.metadata)
    except (IDTokenVerificationError, OIDCDiscoveryError) as exc:
        logger.warning("ID token verification failed: %s", exc.code)
        return private_error("invalid_id_token", status_code=400)
    if rec.nonce and claims.get("nonce") != rec.nonce:
        return private_error("invalid_nonce", status_code=400)

    user = provision_user(get_repo(), claims)
    sess = SESSION_STORE.create(sub=user.id, claims=profile_from_claims(claims))
    resp = RedirectResponse(url=rec.redirect or "/", status_code=302, headers=dict(PRIVATE_HEADERS))
    _set_session_cookie(resp, sess.session_id, max_age=sess.ttl_seconds)
    return resp

