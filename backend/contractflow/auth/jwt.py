"""JWT access token generation and validation

Token payload:
{
  "sub": "<user uuid>",
  "org_id": "<org uuid>",
  "role": "contract_manager",
  "username": "jsmith",
  "iat": 1704368400,
  "exp": 1704372000
}

Tokens are HS256-signed with JWT_SECRET and expire after JWT_EXPIRY_MINUTES.
There are no refresh tokens; clients log in again after expiry. The role
claim is informational only: get_current_user reloads the user on every
request so role changes and suspensions take effect immediately.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from uuid import UUID
import jwt


def _get_jwt_secret() -> str:
    """Get JWT_SECRET from environment.

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = os.getenv('JWT_SECRET')
    if not secret:
        raise ValueError("JWT_SECRET environment variable is not set")
    return secret


def _get_jwt_expiry_minutes() -> int:
    """Get JWT_EXPIRY_MINUTES from environment (default: 60)."""
    expiry = os.getenv('JWT_EXPIRY_MINUTES', '60')
    try:
        return int(expiry)
    except ValueError:
        return 60


def create_access_token(
    user_id: UUID,
    org_id: UUID,
    role: Optional[str],
    username: str
) -> str:
    """Create a JWT access token for an authenticated user.

    Args:
        user_id: User's UUID
        org_id: Organization's UUID
        role: User's role (may be None only for accounts never activated)
        username: User's login name

    Returns:
        str: Signed JWT token

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = _get_jwt_secret()
    expiry_minutes = _get_jwt_expiry_minutes()

    now = datetime.now(timezone.utc)
    expiration = now + timedelta(minutes=expiry_minutes)

    payload = {
        'sub': str(user_id),
        'org_id': str(org_id),
        'role': role,
        'username': username,
        'iat': int(now.timestamp()),
        'exp': int(expiration.timestamp())
    }

    return jwt.encode(payload, secret, algorithm='HS256')


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded token payload with claims

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
        ValueError: If JWT_SECRET is not set
    """
    secret = _get_jwt_secret()

    try:
        return jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise jwt.ExpiredSignatureError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")
