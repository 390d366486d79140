"""Client IP extraction for logging and rate limiting.

Proxy headers are only honoured when TRUST_PROXY is set, because webhook
and auth-event endpoints are reachable by anyone who knows the URL.
On Cloud Run the Google front end appends the caller to X-Forwarded-For,
so the first hop is the original client.
"""

from __future__ import annotations

import os
from typing import Optional

from fastapi import Request

TRUST_PROXY = os.environ.get("TRUST_PROXY", "").lower() in ("1", "true", "yes")
PROXY_HEADERS = ("X-Forwarded-For", "X-Real-IP")


def _first_hop(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    hop = value.split(",")[0].strip()
    return hop or None


def get_client_ip(request: Request) -> str:
    """Best-effort caller address ("unknown" when the transport hides it)."""
    if TRUST_PROXY:
        for header in PROXY_HEADERS:
            ip = _first_hop(request.headers.get(header))
            if ip:
                return ip

    if request.client:
        return request.client.host

    return "unknown"
