#!/usr/bin/env python3
"""Generate test JWT tokens for a ``jwt`` auth domain.

Usage:
    python scripts/generate_test_token.py --signing-key "your-secret" --user "testuser"
    python scripts/generate_test_token.py --signing-key "your-secret" --user "testuser" --expires 3600

The generated token is accepted by a domain configured with the same
HMAC signing key:
    curl -H "Authorization: Bearer <generated-token>" http://localhost:8052/authinfo
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone, timedelta

from jose import jwt


def generate_test_token(
    signing_key: str,
    user: str,
    expires_in: int = 3600,
    issuer: str | None = None,
    audience: str | None = None,
    roles: list[str] | None = None,
    roles_key: str = "roles",
) -> str:
    """
    Generate a test JWT token for local development.

    Args:
        signing_key: HMAC secret (must match the domain's signing_key)
        user: Username to embed in the token (sub claim)
        expires_in: Token lifetime in seconds (default: 1 hour)
        issuer: Optional issuer claim (checked against required_issuer)
        audience: Optional audience claim (checked against required_audience)
        roles: Optional backend roles
        roles_key: Claim that carries the roles (the domain's roles_key)

    Returns:
        Signed JWT token string
    """
    now = datetime.now(timezone.utc)

    claims = {
        "sub": user,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }

    if issuer:
        claims["iss"] = issuer

    if audience:
        claims["aud"] = audience

    if roles:
        claims[roles_key] = roles

    return jwt.encode(claims, signing_key, algorithm="HS256")


def main():
    parser = argparse.ArgumentParser(
        description="Generate test JWT tokens for a jwt auth domain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate a basic token
  python scripts/generate_test_token.py --signing-key "my-test-secret-at-least-32-chars" --user "alice"

  # Token with audience and roles
  python scripts/generate_test_token.py --signing-key "my-test-secret" --user "alice" \\
      --audience "search-cluster" --roles "data-team" "admins"

Security config (config.yml):
  config:
    dynamic:
      authc:
        jwt_auth_domain:
          order: 0
          http_authenticator:
            type: jwt
            challenge: false
            config:
              signing_key: "my-test-secret-at-least-32-chars"
              roles_key: roles
          authentication_backend:
            type: noop
        """,
    )

    parser.add_argument(
        "--signing-key",
        required=True,
        help="HMAC secret for signing (must match the domain's signing_key)",
    )
    parser.add_argument(
        "--user",
        required=True,
        help="Username to embed in token (sub claim)",
    )
    parser.add_argument(
        "--expires",
        type=int,
        default=3600,
        help="Token lifetime in seconds (default: 3600 = 1 hour)",
    )
    parser.add_argument("--issuer", help="Issuer claim (optional)")
    parser.add_argument("--audience", help="Audience claim (optional)")
    parser.add_argument(
        "--roles",
        nargs="*",
        help="Backend roles to include in token (optional)",
    )
    parser.add_argument(
        "--roles-key",
        default="roles",
        help="Claim carrying the roles (default: roles)",
    )

    args = parser.parse_args()

    if len(args.signing_key) < 32:
        print("Warning: signing key should be at least 32 characters for security")

    token = generate_test_token(
        signing_key=args.signing_key,
        user=args.user,
        expires_in=args.expires,
        issuer=args.issuer,
        audience=args.audience,
        roles=args.roles,
        roles_key=args.roles_key,
    )

    print(f"\n# Token for user '{args.user}' (expires in {args.expires}s):")
    print(f"{token}\n")

    # Also decode and show claims for verification
    claims = jwt.decode(token, args.signing_key, algorithms=["HS256"], options={"verify_aud": False})
    print("# Token claims:")
    for key, value in claims.items():
        if key in ("iat", "exp"):
            value = datetime.fromtimestamp(value, timezone.utc).isoformat()
        print(f"#   {key}: {value}")


if __name__ == "__main__":
    main()
