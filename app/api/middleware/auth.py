"""
Bearer Token Authentication

Access tokens are minted after a successful OTP verification and sent
back as `Authorization: Bearer <token>`. Tokens are HS256 JWTs carrying
the user id, phone and role.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.infra.database import get_db
from app.models.database import User

logger = logging.getLogger(__name__)

# Bearer header scheme
bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_TYPE = "access"


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    """
    Create a signed access token for a user.

    Args:
        user: Authenticated user
        expires_minutes: Lifetime override (defaults to settings)

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    lifetime = expires_minutes or settings.access_token_expire_minutes

    payload = {
        "sub": str(user.id),
        "phone": user.phone,
        "role": user.role.value,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        ExpiredSignatureError: Token has expired
        InvalidTokenError: Token is malformed, tampered with, or not an access token
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != TOKEN_TYPE:
        raise InvalidTokenError("Invalid token type")
    return payload


def mask_token(token: str) -> str:
    """Mask a token for logging."""
    if len(token) < 20:
        return "***"
    return f"{token[:10]}...{token[-4:]}"


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    FastAPI dependency for optional authentication.

    Returns None when no token is sent. An invalid token is still an
    error: a client that sends one expects to be authenticated.
    """
    if credentials is None:
        return None

    client_ip = request.client.host if request.client else "unknown"
    token = credentials.credentials

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        logger.info(f"Auth failed: Token expired | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidTokenError as e:
        logger.warning(f"Auth failed: {e} | Token: {mask_token(token)} | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, user_id)
    if user is None:
        logger.warning(f"Auth failed: Unknown user {user_id} | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user = user
    return user


async def require_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """
    FastAPI dependency that requires a logged-in user.

    Raises:
        HTTPException 401: No token provided
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    """
    FastAPI dependency that requires the admin role.

    Raises:
        HTTPException 403: User is not an admin
    """
    if not user.is_admin:
        logger.warning(f"Admin access denied for user {user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
