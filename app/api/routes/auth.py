"""
OTP Login Endpoints.

Phone-number login in two steps:
1. POST /auth/send-otp  - issue a code and send it by SMS
2. POST /auth/verify-otp - check the code, create the user on first
   login, and return an access token
"""

import logging
import re
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, BeforeValidator, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import create_access_token, require_user
from app.api.middleware.rate_limit import enforce_otp_rate_limit
from app.config import settings
from app.core.otp import OtpService, OtpTransportError, get_otp_service
from app.infra.database import get_db
from app.models.database import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

PHONE_PATTERN = r"^\+?[0-9]{10,15}$"

_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(value: object) -> object:
    """Strip spaces, dashes, dots and brackets from a phone number."""
    if isinstance(value, str):
        return _SEPARATORS.sub("", value)
    return value


# Separators are stripped before the pattern is checked
PhoneNumber = Annotated[str, BeforeValidator(normalize_phone)]


class SendOtpRequest(BaseModel):
    """OTP issuance request."""

    phone: PhoneNumber = Field(
        ...,
        pattern=PHONE_PATTERN,
        description="Phone number, 10-15 digits with optional leading +",
        examples=["9000000001"],
    )


class VerifyOtpRequest(BaseModel):
    """OTP verification request."""

    phone: PhoneNumber = Field(
        ...,
        pattern=PHONE_PATTERN,
        description="Phone number the code was sent to",
        examples=["9000000001"],
    )
    otp: str = Field(
        ...,
        pattern=r"^[0-9]{6}$",
        description="6-digit code, as a string (leading zeros matter)",
        examples=["004521"],
    )


class MessageResponse(BaseModel):
    """Simple success response."""

    success: bool
    message: str
    expires_in: Optional[int] = None


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=str(user.id),
            phone=user.phone,
            name=user.name,
            email=user.email,
            role=user.role.value,
        )


class TokenResponse(BaseModel):
    """Successful login."""

    success: bool = True
    token: str
    user: UserResponse


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


async def get_or_create_user(db: AsyncSession, phone: str) -> User:
    """Find the user for a phone number, creating it on first login."""
    result = await db.execute(select(User).where(User.phone == phone))
    user = result.scalar_one_or_none()

    role = UserRole.ADMIN if phone in settings.admin_phone_numbers_list else UserRole.CUSTOMER

    if user is None:
        user = User(phone=phone, role=role)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"User created: {user.id} ({role.value})")
    elif role == UserRole.ADMIN and user.role != UserRole.ADMIN:
        user.role = UserRole.ADMIN
        await db.commit()
        await db.refresh(user)
        logger.info(f"User promoted to admin: {user.id}")

    return user


@router.post(
    "/send-otp",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a login code",
    description="Generates a 6-digit code for the phone number and sends it by SMS.",
    responses={
        200: {"description": "Code sent"},
        429: {"model": ErrorResponse, "description": "Too many requests for this number"},
        502: {"model": ErrorResponse, "description": "SMS could not be sent"},
    },
)
async def send_otp(
    payload: SendOtpRequest,
    request: Request,
    otp_service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    """Issue an OTP for a phone number."""
    await enforce_otp_rate_limit(request, "otp-send", payload.phone)

    try:
        result = await otp_service.issue(payload.phone)
    except OtpTransportError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send OTP",
        )

    return MessageResponse(
        success=True,
        message="OTP sent successfully",
        expires_in=result.expires_in,
    )


@router.post(
    "/verify-otp",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify a login code",
    description="Checks the code and returns an access token. Each code works once.",
    responses={
        200: {"description": "Logged in"},
        400: {"model": ErrorResponse, "description": "Invalid or expired OTP"},
        429: {"model": ErrorResponse, "description": "Too many attempts for this number"},
    },
)
async def verify_otp(
    payload: VerifyOtpRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    otp_service: OtpService = Depends(get_otp_service),
) -> TokenResponse:
    """Verify an OTP and log the user in."""
    await enforce_otp_rate_limit(request, "otp-verify", payload.phone)

    if not otp_service.verify(payload.phone, payload.otp):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP",
        )

    user = await get_or_create_user(db, payload.phone)
    token = create_access_token(user)

    return TokenResponse(token=token, user=UserResponse.from_user(user))


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current user",
    description="Returns the profile of the logged-in user.",
)
async def me(user: User = Depends(require_user)) -> UserResponse:
    """Get the current user's profile."""
    return UserResponse.from_user(user)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
    description="Exchanges a valid token for a new one with a fresh expiry.",
)
async def refresh(user: User = Depends(require_user)) -> TokenResponse:
    """Issue a new token for the current user."""
    return TokenResponse(token=create_access_token(user), user=UserResponse.from_user(user))
