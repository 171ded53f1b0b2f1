"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, keep `backend/` importable and
reset the module-level singletons (repository, stores, settings) per test so
state never leaks between cases.
"""
import os
import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

# Import-time guard runs in web.main; keep the default env dev/oidc.
os.environ.pop("AMALI_ENV", None)
os.environ.pop("AUTH_MODE", None)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles that may leak across tests.

    Behavior:
        - Default environment (`dev`) and auth mode (`oidc`) unless a test opts in.
        - No proxy trust, no configured domains, no demo role override.
    """
    for var in (
        "AMALI_ENV",
        "AUTH_MODE",
        "DEMO_USER_ROLE",
        "AMALI_TRUST_PROXY",
        "APP_DOMAINS",
        "SESSIONS_BACKEND",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_classroom_repo():
    """Use a fresh in-memory repository for every test."""
    from classroom.repo_memory import MemoryClassroomRepo
    from web.repo_wiring import set_repo

    set_repo(MemoryClassroomRepo())
    yield
    set_repo(None)


@pytest.fixture(autouse=True)
def _reset_auth_stores(monkeypatch: pytest.MonkeyPatch):
    """Reset STATE_STORE, SESSION_STORE and the OIDC client to defaults per test.

    Why:
        Auth tests share the `main` singletons; PKCE state and sessions must
        not leak across tests, and monkeypatched OIDC clients must not outlive
        the test that installed them.
    """
    from identity_access.oidc import OIDCClient
    from identity_access.stores import SessionStore, StateStore
    from web import main

    monkeypatch.setattr(main, "STATE_STORE", StateStore())
    monkeypatch.setattr(main, "SESSION_STORE", SessionStore())
    cfg = main.load_oidc_config()
    monkeypatch.setattr(main, "OIDC_CFG", cfg)
    monkeypatch.setattr(main, "OIDC", OIDCClient(cfg) if cfg else None)
    yield


@pytest.fixture(autouse=True)
def _reset_settings_environment_override():
    """Reset main.SETTINGS.override_environment between tests."""
    from web import main

    main.SETTINGS.override_environment(None)
    yield
    main.SETTINGS.override_environment(None)
