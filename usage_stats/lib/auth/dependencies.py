import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from ...config import config
from ...exc import AuthenticationError, InvalidTokenError, MissingTokenError

ADMIN_COOKIE = "adminToken"

# auto_error is off so a missing header maps to our own 401 message
security = HTTPBearer(
    scheme_name="Bearer Token",
    description="Ingestion key or admin token",
    auto_error=False,
)


def verify_token(presented: str | None, expected: str) -> None:
    """Compare a presented token against the configured one

    Raises:
        HTTPException: 500 if no token is configured
        MissingTokenError: If nothing was presented
        InvalidTokenError: If the token does not match
    """
    if not expected:
        logger.error("Bearer token is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service not available",
        )
    if not presented:
        raise MissingTokenError("Access denied. No token provided.")
    if not secrets.compare_digest(presented.encode(), expected.encode()):
        raise InvalidTokenError("Invalid token.")


def _unauthorized(error: AuthenticationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(error),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_ingest_key(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(security)
    ],
) -> None:
    """Gate for the chat client posting events"""
    token = credentials.credentials if credentials else None
    try:
        verify_token(token, config.ingest_api_key)
    except AuthenticationError as e:
        logger.warning(f"Rejected ingestion request: {e}")
        raise _unauthorized(e)


async def require_admin(
    request: Request,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(security)
    ],
) -> None:
    """Gate for the reports; the token may also come from a cookie"""
    token = request.cookies.get(ADMIN_COOKIE) or (
        credentials.credentials if credentials else None
    )
    try:
        verify_token(token, config.admin_token)
    except AuthenticationError as e:
        logger.warning(f"Rejected report request: {e}")
        raise _unauthorized(e)
