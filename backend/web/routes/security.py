"""
Shared web security helpers for the API routers.

Contains the CSRF same-origin check applied by the auth middleware to every
unsafe request under /api/.
"""
from __future__ import annotations

import os
from urllib.parse import urlparse

from fastapi import Request


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else (443 if scheme == "https" else 80)
    return scheme, p.hostname.lower(), int(port)


def _server_origin(request: Request) -> tuple[str, str, int]:
    trust_proxy = (os.getenv("AMALI_TRUST_PROXY", "false") or "").lower() == "true"
    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else None
    if trust_proxy:
        xf_proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or "").split(",")[0].strip()
        if xf_proto:
            scheme = xf_proto.lower()
        if xf_host:
            if ":" in xf_host:
                host_only, port_str = xf_host.rsplit(":", 1)
                host = host_only.lower()
                port = int(port_str) if port_str.isdigit() else None
            else:
                host, port = xf_host.lower(), None
        xf_port = (request.headers.get("x-forwarded-port") or "").split(",")[0].strip()
        if xf_port.isdigit():
            port = int(xf_port)
    if port is None:
        port = 443 if scheme == "https" else 80
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow to not break non-browser clients.
    Proxy awareness: X-Forwarded-* is trusted only when AMALI_TRUST_PROXY=true.
    """
    server = _server_origin(request)
    candidate = request.headers.get("origin") or request.headers.get("referer")
    if not candidate:
        return True
    try:
        return _parse_origin(candidate) == server
    except ValueError:
        return False
