"""Security utilities for JWT access tokens."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from hostelpal.core.config import settings


def create_access_token(user_id: UUID, role: str, token_version: int = 1) -> str:
    """
    Create signed access JWT.

    Always signs with current secret (JWT_SECRET).
    Token contains user identity, role, and revocation version.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "token_version": token_version,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """
    Decode and verify access JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
