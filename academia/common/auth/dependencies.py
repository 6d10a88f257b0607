"""
Authentication dependencies for the Academia gamification API.

The bearer token is an opaque user identifier issued by the host platform;
this service does not validate it further.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from academia.common.logger import app_logger

logger = app_logger.getChild("auth")


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Get the current user ID from the authorization header.

    Args:
        authorization: Authorization header value, ``Bearer <user_id>``

    Returns:
        User ID string

    Raises:
        HTTPException: If the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )

    return token
