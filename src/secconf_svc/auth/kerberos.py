"""Kerberos SPNEGO authenticator."""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping

from starlette.requests import Request

from .authenticator import (
    AuthCredentials,
    AuthMethod,
    CredentialsRejected,
    HTTPAuthenticator,
    bool_setting,
    optional_str_setting,
)

logger = logging.getLogger(__name__)


@dataclass
class HTTPSpnegoAuthenticator(HTTPAuthenticator):
    """
    Kerberos SPNEGO authenticator.

    Validates Negotiate tokens using gssapi and extracts the principal name.
    gssapi is an optional dependency (``pip install secconf-svc[kerberos]``)
    and is only imported when a kerberos domain is configured.

    SPNEGO Flow:
    1. Client sends request without auth -> Server returns 401 + WWW-Authenticate: Negotiate
    2. Client obtains Kerberos ticket -> Sends Authorization: Negotiate <base64-token>
    3. Server validates via gssapi -> Extracts principal -> complete AuthCredentials
    """
    acceptor_principal: str | None = None  # e.g., "HTTP/search.firm.com@FIRM.COM"
    keytab_path: str | None = None
    strip_realm_from_principal: bool = True
    challenge: bool = True
    _server_creds: object | None = None

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], challenge: bool = True) -> HTTPSpnegoAuthenticator:
        return cls(
            acceptor_principal=optional_str_setting(settings, "krb_acceptor_principal"),
            keytab_path=optional_str_setting(settings, "krb_acceptor_keytab_filepath"),
            strip_realm_from_principal=bool_setting(settings, "strip_realm_from_principal", True),
            challenge=challenge,
        )

    def _init_credentials(self) -> None:
        """Initialize server credentials from keytab."""
        import gssapi

        if self.keytab_path:
            os.environ["KRB5_KTNAME"] = self.keytab_path
            logger.info(f"Using keytab: {self.keytab_path}")

        if self.acceptor_principal:
            server_name = gssapi.Name(
                self.acceptor_principal,
                name_type=gssapi.NameType.kerberos_principal,
            )
            self._server_creds = gssapi.Credentials(name=server_name, usage="accept")
            logger.info(f"Initialized Kerberos credentials for: {self.acceptor_principal}")
        else:
            self._server_creds = gssapi.Credentials(usage="accept")
            logger.info("Initialized Kerberos credentials from default keytab")

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.KERBEROS

    async def extract_credentials(self, request: Request) -> AuthCredentials | None:
        """
        Returns None if no Negotiate header present (let other domains try).
        Raises CredentialsRejected if the token does not validate.
        """
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Negotiate "):
            return None

        try:
            token = base64.b64decode(auth_header[10:], validate=True)
        except binascii.Error as e:
            logger.debug(f"Failed to decode Negotiate token: {e}")
            raise CredentialsRejected("Invalid Negotiate token encoding") from e

        principal = self._validate_token(token)
        if not principal:
            raise CredentialsRejected("Kerberos validation failed")

        if self.strip_realm_from_principal:
            principal = principal.split("@", 1)[0]
        return AuthCredentials(username=principal, complete=True)

    def _validate_token(self, token: bytes) -> str | None:
        """Validate SPNEGO token and extract principal name."""
        import gssapi

        if self._server_creds is None:
            self._init_credentials()

        try:
            server_ctx = gssapi.SecurityContext(creds=self._server_creds, usage="accept")
            server_ctx.step(token)
            if server_ctx.complete and server_ctx.initiator_name:
                principal = str(server_ctx.initiator_name)
                logger.debug(f"Kerberos authentication successful: {principal}")
                return principal
            return None
        except gssapi.exceptions.GSSError as e:
            logger.debug(f"GSSAPI error: {e}")
            raise CredentialsRejected(f"Kerberos error: {e}") from e

    def get_challenge_header(self) -> tuple[str, str] | None:
        """Return WWW-Authenticate: Negotiate header."""
        if not self.challenge:
            return None
        return ("WWW-Authenticate", "Negotiate")
