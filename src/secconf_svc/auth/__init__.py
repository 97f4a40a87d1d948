"""Dynamic authentication/authorization configuration.

Resolves configuration aliases into backends, builds the ordered auth
domain chain and the brute-force defenses, and publishes them as immutable
snapshots for the request pipeline.
"""

from .aliases import AliasBinding, AliasDirection, AliasRegistry, build_default_alias_registry
from .authenticator import (
    AuthCredentials,
    AuthMethod,
    AuthResult,
    AuthenticationBackend,
    AuthorizationBackend,
    CredentialsRejected,
    HTTPAuthenticator,
)
from .backends import BackendRegistry, default_backend_registry
from .blocking import ClientBlockRegistry, KeyKind
from .builder import SnapshotBuilder
from .chain import AuthChain
from .config import DomainSpec, DynamicConfig
from .dependencies import (
    get_auth_result,
    get_auth_chain,
    get_snapshot,
    require_auth,
    require_authenticated_user,
    set_auth_chain,
)
from .holder import DynamicConfigHolder
from .limiting import (
    AddressBasedRateLimiter,
    FailureListener,
    RateLimitSettings,
    UserNameBasedRateLimiter,
)
from .loader import load_security_config
from .snapshot import AuthDomain, ConfigSnapshot, DashboardsSettings, OnBehalfOfSettings, SignInOption

__all__ = [
    # Aliases
    "AliasBinding",
    "AliasDirection",
    "AliasRegistry",
    "build_default_alias_registry",
    # Capabilities
    "AuthCredentials",
    "AuthMethod",
    "AuthResult",
    "AuthenticationBackend",
    "AuthorizationBackend",
    "CredentialsRejected",
    "HTTPAuthenticator",
    "BackendRegistry",
    "default_backend_registry",
    # Brute-force defense
    "ClientBlockRegistry",
    "KeyKind",
    "FailureListener",
    "AddressBasedRateLimiter",
    "UserNameBasedRateLimiter",
    "RateLimitSettings",
    # Config and snapshots
    "DomainSpec",
    "DynamicConfig",
    "load_security_config",
    "SnapshotBuilder",
    "DynamicConfigHolder",
    "AuthDomain",
    "ConfigSnapshot",
    "DashboardsSettings",
    "OnBehalfOfSettings",
    "SignInOption",
    # Pipeline
    "AuthChain",
    # Dependencies
    "get_auth_result",
    "get_auth_chain",
    "get_snapshot",
    "require_auth",
    "require_authenticated_user",
    "set_auth_chain",
]
