"""FastAPI dependency injection functions for authentication."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from .authenticator import AuthResult
from .chain import AuthChain
from .holder import DynamicConfigHolder
from .snapshot import ConfigSnapshot

logger = logging.getLogger(__name__)

# Global chain instance (set by _bootstrap during startup)
_chain: AuthChain | None = None

# Cached singleton for the fast path (no chain configured)
_ANONYMOUS_RESULT = AuthResult.anonymous()


def set_auth_chain(chain: AuthChain | None) -> None:
    """Set the global auth chain instance."""
    global _chain
    _chain = chain


def get_auth_chain() -> AuthChain | None:
    """Get the global auth chain instance."""
    return _chain


def get_config_holder() -> DynamicConfigHolder:
    """FastAPI dependency returning the config holder behind the chain."""
    if _chain is None:
        raise HTTPException(status_code=503, detail="Security configuration not initialised")
    return _chain.holder


def get_snapshot(
    holder: Annotated[DynamicConfigHolder, Depends(get_config_holder)],
) -> ConfigSnapshot:
    """FastAPI dependency returning the currently published snapshot."""
    return holder.current


async def get_auth_result(request: Request) -> AuthResult:
    """
    FastAPI dependency that performs authentication.

    Returns AuthResult (success, failure, or anonymous).
    """
    if _chain is None:
        return _ANONYMOUS_RESULT

    return await _chain.authenticate(request)


async def require_auth(
    auth_result: Annotated[AuthResult, Depends(get_auth_result)],
) -> AuthResult:
    """
    FastAPI dependency that requires a successful authentication.

    Anonymous results pass when anonymous auth is enabled; blocked clients
    get 429, everything else that failed gets 401 with the challenges.
    """
    if auth_result.blocked:
        raise HTTPException(status_code=429, detail=auth_result.error or "Too many failed attempts")

    if not auth_result.success:
        raise HTTPException(
            status_code=401,
            detail=auth_result.error or "Authentication required",
            headers=_get_auth_headers(auth_result),
        )

    return auth_result


async def require_authenticated_user(
    auth_result: Annotated[AuthResult, Depends(require_auth)],
) -> AuthResult:
    """
    FastAPI dependency that requires a real principal (no anonymous).

    Use this for operator endpoints that must not be reachable through
    anonymous auth or disabled REST auth.
    """
    if auth_result.is_anonymous:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers=_get_auth_headers(auth_result),
        )

    return auth_result


def _get_auth_headers(auth_result: AuthResult) -> dict[str, str]:
    """WWW-Authenticate headers for a 401, from the challenges of the same decision."""
    if not auth_result.challenges:
        return {}

    # Format: WWW-Authenticate: Basic realm="...", Negotiate
    return {"WWW-Authenticate": ", ".join(v for _, v in auth_result.challenges)}
