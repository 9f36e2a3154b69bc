"""
Request identity from Supabase access tokens.

Users are issued JWTs by the auth provider; this service only verifies
them. When ``SUPABASE_JWT_SECRET`` is unset, identity checks are skipped
and user ids in requests are taken as given.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from fitness_tracker.config import settings
from fitness_tracker.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

# Security scheme for Bearer token authentication
security = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Exception raised when authentication fails."""
    pass


def identity_checks_enabled() -> bool:
    return bool(settings.SUPABASE_JWT_SECRET)


def verify_token(token: str) -> str:
    """
    Verify a Supabase access token and extract the user ID.

    Validates the signature, expiration, and audience.

    Args:
        token: The JWT token string to verify

    Returns:
        str: The user ID from the ``sub`` claim

    Raises:
        AuthenticationError: If the token is invalid, expired, or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {str(e)}")
        raise AuthenticationError(f"Invalid token: {str(e)}")

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Token missing 'sub' claim")
        raise AuthenticationError("Invalid token: missing subject")

    return str(user_id)


async def get_token_subject(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    FastAPI dependency returning the authenticated user ID.

    Returns None when identity checks are disabled.

    Raises:
        HTTPException: 401 if checks are enabled and the token is missing or invalid
    """
    if not identity_checks_enabled():
        return None

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.debug("No credentials provided")
        raise credentials_exception

    try:
        return verify_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(f"Authentication failed: {str(e)}")
        raise credentials_exception


def ensure_user_access(subject: Optional[str], user_id: Optional[str]) -> None:
    """
    Reject requests that act on another user's data.

    Raises:
        AuthorizationError: If a verified subject differs from ``user_id``
    """
    if subject is not None and subject != user_id:
        logger.warning(f"Token subject {subject} tried to act for user {user_id}")
        raise AuthorizationError("Unauthorized: token does not belong to user")
