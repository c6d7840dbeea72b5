"""
Shared request dependencies.
"""

from typing import Optional

from fastapi import Header, Request

from gigflow.core.config import get_settings

settings = get_settings()


def idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, max_length=100),
) -> Optional[str]:
    """Caller-supplied `Idempotency-Key`; retries with the same key never double-apply."""
    return idempotency_key


def client_ip(request: Request) -> Optional[str]:
    """
    Address recorded on signatures.

    The socket peer, unless the peer is a configured proxy: then the
    nearest X-Forwarded-For hop that is not itself a trusted proxy.
    """
    peer = request.client.host if request.client else None
    trusted = set(settings.TRUSTED_PROXIES)
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded or peer not in trusted:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")
