"""Role aggregation across the configured authorization backends."""

from __future__ import annotations

import logging
from typing import Iterable

from .authenticator import AuthorizationBackend, AuthResult

logger = logging.getLogger(__name__)


async def aggregate_roles(
    result: AuthResult,
    authorizers: Iterable[AuthorizationBackend],
    multi_rolespan: bool,
) -> AuthResult:
    """
    Ask each authorizer for roles and attach them to *result*.

    With ``multi_rolespan`` the roles of every authorizer that answered are
    merged; without it the first authorizer that answers wins and the rest
    are not asked. An authorizer that raises is logged and skipped.
    """
    roles: set[str] = set()
    for authorizer in authorizers:
        try:
            granted = await authorizer.fetch_roles(result)
        except Exception as e:
            logger.warning(f"Authorizer {authorizer.name} failed for {result.principal}: {e}")
            continue

        if not multi_rolespan:
            roles = set(granted)
            break
        roles |= set(granted)

    logger.debug(f"Roles for {result.principal}: {sorted(roles)}")
    return result.evolve(roles=frozenset(roles))
