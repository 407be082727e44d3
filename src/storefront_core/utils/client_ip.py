"""Client address resolution for requests arriving through proxies."""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request

FALLBACK_IP = "127.0.0.1"


def ip_from_headers(headers: Mapping[str, str]) -> str | None:
    """Return the originating client IP advertised by proxy headers.

    The first non-empty entry of ``X-Forwarded-For`` wins, followed by
    ``X-Real-IP`` and ``CF-Connecting-IP``.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        for candidate in forwarded.split(","):
            candidate = candidate.strip()
            if candidate:
                return candidate

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = (headers.get(header) or "").strip()
        if value:
            return value
    return None


def get_client_ip(request: Request) -> str:
    """Resolve the client IP of a request, falling back to the socket peer."""
    ip = ip_from_headers(request.headers)
    if ip:
        return ip
    if request.client and request.client.host:
        return request.client.host
    return FALLBACK_IP
