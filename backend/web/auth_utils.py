"""
Shared authentication utilities for the web adapter.

Cookie policy and in-app redirect validation, shared by `main` and the auth
router.
"""

from __future__ import annotations

import re

SESSION_COOKIE_NAME = "sid"

# Absolute in-app paths only: no scheme/host, no "//", no "..", no query or fragment.
INAPP_PATH_PATTERN = re.compile(r"^(?!.*//)(?!.*\.\.)/[A-Za-z0-9._\-/]*$")
MAX_INAPP_REDIRECT_LEN = 256


def cookie_opts() -> dict:
    """Return hardened cookie flags, identical in every environment.

    SameSite=Lax: the cookie must survive the top-level redirect back from
    the identity provider.
    """
    return {"secure": True, "samesite": "lax"}


def is_inapp_path(value: object) -> bool:
    """Return True if value is an absolute in-app path, e.g. "/", "/courses/1"."""
    if not isinstance(value, str) or not value:
        return False
    if len(value) > MAX_INAPP_REDIRECT_LEN:
        return False
    return bool(INAPP_PATH_PATTERN.match(value))
