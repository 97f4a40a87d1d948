"""JWT authenticators: static signing key and keys from an OpenID Connect provider."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx
from jose import JWTError, jwt
from starlette.requests import Request

from ..errors import ConfigurationError
from .authenticator import (
    AuthCredentials,
    AuthMethod,
    CredentialsRejected,
    HTTPAuthenticator,
    optional_str_setting,
)

logger = logging.getLogger(__name__)

HMAC_ALGORITHMS = ["HS256", "HS384", "HS512"]
ASYMMETRIC_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]


@dataclass(frozen=True, slots=True)
class JwtClaimSettings:
    """Where the token is found and how claims map to the principal."""
    jwt_header: str = "Authorization"
    jwt_url_parameter: str | None = None
    subject_key: str | None = None  # None means the "sub" claim
    roles_key: str | None = None
    required_audience: str | None = None
    required_issuer: str | None = None
    clock_skew_seconds: int = 30

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> JwtClaimSettings:
        skew = settings.get("jwt_clock_skew_tolerance_seconds", 30)
        if isinstance(skew, bool) or not isinstance(skew, int) or skew < 0:
            raise ConfigurationError("'jwt_clock_skew_tolerance_seconds' must be a non-negative integer")
        jwt_header = settings.get("jwt_header", "Authorization")
        if not isinstance(jwt_header, str) or not jwt_header:
            raise ConfigurationError(f"'jwt_header' must be a non-empty string, got {jwt_header!r}")
        return cls(
            jwt_header=jwt_header,
            jwt_url_parameter=optional_str_setting(settings, "jwt_url_parameter"),
            subject_key=optional_str_setting(settings, "subject_key"),
            roles_key=optional_str_setting(settings, "roles_key"),
            required_audience=optional_str_setting(settings, "required_audience"),
            required_issuer=optional_str_setting(settings, "required_issuer"),
            clock_skew_seconds=skew,
        )


@dataclass
class HTTPJwtAuthenticator(HTTPAuthenticator):
    """
    JWT authenticator with a configured signing key.

    A PEM public key selects the asymmetric algorithms, anything else is
    treated as an HMAC secret.

    JWT Flow:
    1. Client sends Authorization: Bearer <jwt> (or the configured header/url parameter)
    2. Validates signature, issuer, audience, expiry
    3. Extracts subject and roles -> complete AuthCredentials
    """
    claims: JwtClaimSettings = field(default_factory=JwtClaimSettings)
    signing_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = False) -> HTTPJwtAuthenticator:
        signing_key = settings.get("signing_key")
        if not isinstance(signing_key, str) or not signing_key:
            raise ConfigurationError("jwt authenticator requires 'signing_key'")
        return cls(claims=JwtClaimSettings.from_settings(settings), signing_key=signing_key)

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.JWT

    @property
    def algorithms(self) -> list[str]:
        if self.signing_key and self.signing_key.lstrip().startswith("-----BEGIN"):
            return ASYMMETRIC_ALGORITHMS
        return HMAC_ALGORITHMS

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        """
        Returns None if no token present (let other domains try).
        Raises CredentialsRejected if a token is present but invalid.
        """
        token = self._find_token(request)
        if token is None:
            return None

        try:
            claims = await self._validate_token(token)
        except JWTError as e:
            logger.debug(f"JWT validation error: {e}")
            raise CredentialsRejected(f"Invalid JWT: {e}") from e

        return self._credentials_from_claims(claims)

    def _find_token(self, request: Request) -> str | None:
        header = request.headers.get(self.claims.jwt_header)
        if header:
            if header.lower().startswith("bearer "):
                return header[7:].strip() or None
            if self.claims.jwt_header.lower() != "authorization":
                return header.strip() or None
            return None

        if self.claims.jwt_url_parameter:
            return request.query_params.get(self.claims.jwt_url_parameter) or None
        return None

    async def _validate_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, self.signing_key, self.algorithms)

    def _decode(self, token: str, key: Any, algorithms: list[str]) -> dict[str, Any]:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=self.claims.required_audience,
            issuer=self.claims.required_issuer,
            options={
                "verify_aud": self.claims.required_audience is not None,
                "verify_iss": self.claims.required_issuer is not None,
                "verify_exp": True,
                "leeway": self.claims.clock_skew_seconds,
            },
        )

    def _credentials_from_claims(self, claims: dict[str, Any]) -> AuthCredentials:
        subject_key = self.claims.subject_key or "sub"
        subject = claims.get(subject_key)
        if not subject:
            raise CredentialsRejected(f"JWT has no '{subject_key}' claim")

        roles: frozenset[str] = frozenset()
        if self.claims.roles_key:
            raw_roles = claims.get(self.claims.roles_key, [])
            if isinstance(raw_roles, str):
                raw_roles = raw_roles.split(",")
            roles = frozenset(str(r).strip() for r in raw_roles if str(r).strip())

        return AuthCredentials(
            username=str(subject),
            backend_roles=roles,
            attributes={f"attr.jwt.{k}": v for k, v in claims.items()},
            complete=True,
        )


@dataclass
class JWKSCache:
    """Cache for JWKS keys."""
    keys: dict[str, Any] = field(default_factory=dict)
    fetched_at: float = 0.0
    ttl: int = 3600


@dataclass
class HTTPJwtKeyByOpenIdConnectAuthenticator(HTTPJwtAuthenticator):
    """
    JWT authenticator that resolves signing keys from an OpenID Connect provider.

    The discovery document at ``openid_connect_url`` names the ``jwks_uri``;
    keys are cached for ``jwks_cache_ttl`` seconds and refetched when an
    unknown ``kid`` shows up.
    """
    openid_connect_url: str = ""
    _jwks_cache: JWKSCache = field(default_factory=JWKSCache)

    @classmethod
    def from_settings(
        cls, settings: Mapping[str, Any], challenge: bool = False
    ) -> HTTPJwtKeyByOpenIdConnectAuthenticator:
        url = settings.get("openid_connect_url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ConfigurationError("openid authenticator requires an http(s) 'openid_connect_url'")
        ttl = settings.get("jwks_cache_ttl", 3600)
        if not isinstance(ttl, int) or ttl <= 0:
            raise ConfigurationError("'jwks_cache_ttl' must be a positive integer")
        return cls(
            claims=JwtClaimSettings.from_settings(settings),
            openid_connect_url=url,
            _jwks_cache=JWKSCache(ttl=ttl),
        )

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.OPENID

    async def _validate_token(self, token: str) -> dict[str, Any]:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        if not kid:
            raise JWTError("JWT missing key ID (kid)")

        signing_key = await self._get_signing_key(kid)
        if not signing_key:
            raise JWTError(f"No signing key with kid {kid!r}")

        algorithms = [signing_key["alg"]] if signing_key.get("alg") else ASYMMETRIC_ALGORITHMS
        return self._decode(token, signing_key, algorithms)

    async def _get_signing_key(self, kid: str) -> dict[str, Any] | None:
        """Get signing key from JWKS, with caching."""
        now = time.time()
        if kid in self._jwks_cache.keys:
            if now - self._jwks_cache.fetched_at < self._jwks_cache.ttl:
                return self._jwks_cache.keys[kid]

        jwks = await self._fetch_jwks()
        if not jwks:
            return None

        self._jwks_cache.keys = {
            key_data["kid"]: key_data
            for key_data in jwks.get("keys", [])
            if key_data.get("kid")
        }
        self._jwks_cache.fetched_at = now
        return self._jwks_cache.keys.get(kid)

    async def _fetch_jwks(self) -> dict[str, Any] | None:
        """Fetch the discovery document, then the JWKS it points at."""
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                discovery = await client.get(self.openid_connect_url)
                discovery.raise_for_status()
                jwks_uri = discovery.json().get("jwks_uri")
                if not jwks_uri:
                    logger.error(f"No jwks_uri in discovery document {self.openid_connect_url}")
                    return None
                response = await client.get(jwks_uri)
                response.raise_for_status()
                logger.debug(f"Fetched JWKS from {jwks_uri}")
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch JWKS via {self.openid_connect_url}: {e}")
            return None

    def get_challenge_header(self) -> tuple[str, str] | None:
        return ("WWW-Authenticate", f'Bearer realm="{self.openid_connect_url}"')
