"""FastAPI dependencies for authentication."""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from tasklanes.auth.jwt import user_from_token
from tasklanes.errors import Unauthenticated
from tasklanes.models.user import CurrentUser

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Get the current user from the bearer token.

    Raises:
        Unauthenticated: If the token is missing, invalid or expired
    """
    if not credentials:
        raise Unauthenticated("Not authenticated", operation="authenticate")

    user = user_from_token(credentials.credentials)
    if user is None:
        raise Unauthenticated("Invalid or expired token", operation="authenticate")
    return user
