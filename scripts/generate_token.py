#!/usr/bin/env python3
"""
Generates a bearer token for a given user id, for poking at protected routes.
"""
import sys

from userapi.security.auth.jwt_handler import get_jwt_handler


def generate_token(user_id: str, email: str = None):
    """
    Prints a signed token for ``user_id`` and its expiry timestamp.
    """
    jwt_handler = get_jwt_handler()
    token, expires_at = jwt_handler.create_token(
        user_id, {"email": email, "roles": ["user"]}
    )
    print(token)
    print(f"expires_at={expires_at}", file=sys.stderr)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/generate_token.py <user_id> [email]")
        sys.exit(1)
    generate_token(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
