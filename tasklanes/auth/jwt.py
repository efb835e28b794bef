"""JWT token generation and validation for tasklanes."""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from dotenv import load_dotenv

from tasklanes.models.user import CurrentUser

load_dotenv()

# JWT configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production-with-a-long-random-secret")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def create_access_token(user: CurrentUser) -> str:
    """Create a JWT access token carrying the user's identity claims.

    Args:
        user: Identity issued by the external auth provider

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "name": user.display_name,
        "email": user.email,
        "picture": user.photo_url,
        "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT access token.

    Returns:
        Decoded payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def user_from_token(token: str) -> Optional[CurrentUser]:
    """Rebuild the signed-in user from a token, or None if it is not valid."""
    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None
    return CurrentUser(
        id=payload["sub"],
        display_name=payload.get("name"),
        email=payload.get("email"),
        photo_url=payload.get("picture"),
    )
