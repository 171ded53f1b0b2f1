from __future__ import annotations


class MissingOrganizationError(Exception):
    """Raised when a caller without organization asks for org-scoped data."""
