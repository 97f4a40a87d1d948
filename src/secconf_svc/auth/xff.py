"""Caller address resolution behind trusted reverse proxies."""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from starlette.requests import Request

from .snapshot import ConfigSnapshot

logger = logging.getLogger(__name__)


@lru_cache(maxsize=16)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def resolve_remote_address(request: Request, snapshot: ConfigSnapshot) -> tuple[str | None, bool]:
    """
    Return ``(caller_address, xff_done)``.

    The remote-IP header is only honoured when the direct peer matches the
    internal proxies pattern. The caller is the right-most header entry that
    is not itself an internal proxy.
    """
    peer = request.client.host if request.client else None
    if not snapshot.xff_enabled or peer is None:
        return peer, False

    proxies = _compile(snapshot.internal_proxies)
    if not proxies.fullmatch(peer):
        return peer, False

    header = request.headers.get(snapshot.remote_ip_header)
    if not header:
        return peer, False

    hops = [hop.strip() for hop in header.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not proxies.fullmatch(hop):
            logger.debug(f"Resolved caller {hop} via trusted proxy {peer}")
            return hop, True
    return (hops[0] if hops else peer), True
