"""
Configuration and startup security checks for the Amali LMS backend.

A single guard enforces minimal production safety constraints without
burdening local development. The function reads environment variables and
raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from identity_access.domain import is_valid_role

_PLACEHOLDER_SECRETS = {"", "dev-secret", "change_me", "changeme", "dummy_do_not_use"}


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_environment() -> str:
    return (os.getenv("AMALI_ENV", "dev") or "dev").lower()


def auth_mode() -> str:
    """Return the configured authentication mode (`oidc` unless set to `demo`)."""
    return (os.getenv("AUTH_MODE", "oidc") or "oidc").strip().lower()


def app_domains() -> list[str]:
    """Parse APP_DOMAINS (comma-separated hostnames) into a normalized list."""
    raw = os.getenv("APP_DOMAINS", "") or ""
    items = [part.strip().lower() for part in raw.split(",")]
    return [item for item in items if item]


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - AUTH_MODE must be `oidc`; the demo identity is never allowed.
    - SESSION_SECRET must be set and not a known placeholder.
    - OIDC_ISSUER_URL and OIDC_CLIENT_ID must be set; the issuer must use https.
    - DATABASE_URL must be set and must not disable TLS.

    An unknown AUTH_MODE (or, in demo mode, an unknown DEMO_USER_ROLE) aborts
    startup in every environment.
    """
    mode = auth_mode()
    if mode not in ("oidc", "demo"):
        raise SystemExit(f"Refusing to start: unknown AUTH_MODE={mode!r} (expected 'oidc' or 'demo').")
    demo_role = (os.getenv("DEMO_USER_ROLE", "admin") or "admin").strip().lower()
    if mode == "demo" and not is_valid_role(demo_role):
        raise SystemExit(f"Refusing to start: DEMO_USER_ROLE={demo_role!r} is not a known role.")

    if not _is_prod_like(current_environment()):
        return

    if mode != "oidc":
        raise SystemExit(f"Refusing to start: AUTH_MODE={mode} is not allowed in production/staging.")

    secret = (os.getenv("SESSION_SECRET", "") or "").strip()
    if secret.lower() in _PLACEHOLDER_SECRETS or secret.upper().startswith("CHANGE_ME"):
        raise SystemExit("Refusing to start: SESSION_SECRET is unset or a placeholder in production.")

    issuer = (os.getenv("OIDC_ISSUER_URL", "") or "").strip()
    client_id = (os.getenv("OIDC_CLIENT_ID", "") or "").strip()
    if not issuer or not client_id:
        raise SystemExit("Refusing to start: OIDC_ISSUER_URL and OIDC_CLIENT_ID are required in production.")
    if issuer.lower().startswith("http://"):
        raise SystemExit("Refusing to start: OIDC_ISSUER_URL must use https in production (got http).")

    dsn = os.getenv("DATABASE_URL", "") or ""
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is required in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )
