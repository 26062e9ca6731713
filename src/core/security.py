"""
JWT helpers.

Login and registration live in the identity service; this backend only
verifies the access tokens it issues. ``create_access_token`` exists for
service-to-service calls and tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt

from src.core.config import settings

ACCESS_TOKEN_EXPIRE_MINUTES = 30


def create_access_token(user_id: int, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "exp": issued_at + timedelta(minutes=expires_minutes),
        "iat": issued_at,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def user_id_from_token(token: str) -> int:
    """Return the numeric user id carried by an access token.

    Raises:
        ValueError: If the token is invalid, expired, or not an access token.
    """
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError("Access token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid access token.")

    if payload.get("type") != "access":
        raise ValueError("Invalid token type. Expected an access token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid token: missing subject.")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise ValueError("Invalid token: malformed subject.")
