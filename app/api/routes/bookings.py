"""
Booking Endpoints.

Public booking submission plus the admin back-office operations.
Creating a booking responds as soon as it is committed; SMS and email
notifications are sent in the background.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.middleware.auth import get_current_user_optional, require_admin, require_user
from app.api.routes.auth import PHONE_PATTERN, PhoneNumber
from app.core.bookings import (
    BookingAccessDenied,
    BookingNotFoundError,
    BookingWriteHandler,
    get_booking_handler,
)
from app.infra.database import get_db
from app.models.database import Booking, BookingStatus, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class BookingCreate(BaseModel):
    """Booking request from the website."""

    customer_name: str = Field(..., min_length=2, max_length=50, examples=["Asha Patnaik"])
    phone: PhoneNumber = Field(..., pattern=PHONE_PATTERN, examples=["9000000001"])
    email: Optional[EmailStr] = Field(default=None, examples=["asha@example.com"])
    address: str = Field(..., min_length=10, max_length=200)
    service_name: str = Field(..., min_length=1, max_length=100, examples=["Blood Sample Collection"])
    preferred_date: date = Field(..., examples=["2026-11-02"])
    preferred_time: str = Field(..., min_length=1, max_length=20, examples=["10:00 AM"])
    notes: Optional[str] = Field(default=None, max_length=500)
    price: Optional[str] = Field(default=None, max_length=20)


class BookingUpdate(BaseModel):
    """Admin edit of booking fields. Only fields that are set are applied."""

    customer_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[PhoneNumber] = Field(default=None, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(default=None, min_length=10, max_length=200)
    service_name: Optional[str] = Field(default=None, max_length=100)
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = Field(default=None, max_length=500)
    price: Optional[str] = Field(default=None, max_length=20)
    status: Optional[BookingStatus] = None

    @field_validator(
        "customer_name",
        "phone",
        "address",
        "service_name",
        "preferred_date",
        "preferred_time",
        "status",
    )
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class StatusUpdate(BaseModel):
    """Status change request."""

    status: BookingStatus


class StaffAssignment(BaseModel):
    """Staff assignment request."""

    staff_id: str = Field(..., min_length=1, max_length=100)


class BookingResponse(BaseModel):
    """Booking as returned by the API."""

    id: str
    user_id: Optional[str] = None
    customer_name: str
    phone: str
    email: Optional[str] = None
    address: str
    service_name: str
    preferred_date: date
    preferred_time: str
    notes: Optional[str] = None
    price: Optional[str] = None
    status: BookingStatus
    assigned_staff_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=str(booking.id),
            user_id=str(booking.user_id) if booking.user_id else None,
            customer_name=booking.customer_name,
            phone=booking.phone,
            email=booking.email,
            address=booking.address,
            service_name=booking.service_name,
            preferred_date=booking.preferred_date,
            preferred_time=booking.preferred_time,
            notes=booking.notes,
            price=booking.price,
            status=booking.status,
            assigned_staff_id=booking.assigned_staff_id,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingEnvelope(BaseModel):
    """Single booking response."""

    success: bool = True
    booking: BookingResponse
    message: Optional[str] = None


class BookingList(BaseModel):
    """Booking list response."""

    success: bool = True
    bookings: list[BookingResponse]


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")


@router.post(
    "",
    response_model=BookingEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
    description=(
        "Submits a home-visit request. Responds once the booking is saved; "
        "notification delivery never affects the response."
    ),
)
async def create_booking(
    payload: BookingCreate,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_current_user_optional),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingEnvelope:
    """Create a booking and trigger notifications."""
    booking = await handler.create(db, payload.model_dump(), user=user)
    return BookingEnvelope(
        booking=BookingResponse.from_booking(booking),
        message="Booking created successfully",
    )


@router.get(
    "",
    response_model=BookingList,
    summary="List all bookings",
    description="Admin only. Newest first.",
)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingList:
    """List bookings."""
    bookings = await handler.list_all(db, status=status_filter)
    return BookingList(bookings=[BookingResponse.from_booking(b) for b in bookings])


@router.get(
    "/mine",
    response_model=BookingList,
    summary="List my bookings",
    description="Bookings made by the logged-in customer or with their phone number.",
)
async def list_my_bookings(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_user),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingList:
    """List the current customer's bookings."""
    bookings = await handler.list_for_customer(db, user)
    return BookingList(bookings=[BookingResponse.from_booking(b) for b in bookings])


@router.get(
    "/{booking_id}",
    response_model=BookingEnvelope,
    summary="Get a booking",
    description="Customers can read their own bookings; admins can read any.",
)
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_user),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingEnvelope:
    """Get a single booking."""
    try:
        booking = await handler.get_for_user(db, booking_id, user)
    except BookingNotFoundError:
        raise _not_found()
    except BookingAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    return BookingEnvelope(booking=BookingResponse.from_booking(booking))


@router.put(
    "/{booking_id}",
    response_model=BookingEnvelope,
    summary="Update a booking",
    description="Admin only.",
)
async def update_booking(
    booking_id: uuid.UUID,
    payload: BookingUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingEnvelope:
    """Update booking fields."""
    try:
        booking = await handler.update(db, booking_id, payload.model_dump(exclude_unset=True))
    except BookingNotFoundError:
        raise _not_found()

    return BookingEnvelope(
        booking=BookingResponse.from_booking(booking),
        message="Booking updated successfully",
    )


@router.patch(
    "/{booking_id}/status",
    response_model=BookingEnvelope,
    summary="Change booking status",
    description="Admin only. Confirming or cancelling notifies the customer.",
)
async def update_booking_status(
    booking_id: uuid.UUID,
    payload: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingEnvelope:
    """Change a booking's status."""
    try:
        booking = await handler.update_status(db, booking_id, payload.status)
    except BookingNotFoundError:
        raise _not_found()

    return BookingEnvelope(
        booking=BookingResponse.from_booking(booking),
        message="Booking status updated successfully",
    )


@router.patch(
    "/{booking_id}/assign-staff",
    response_model=BookingEnvelope,
    summary="Assign staff",
    description="Admin only.",
)
async def assign_staff(
    booking_id: uuid.UUID,
    payload: StaffAssignment,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> BookingEnvelope:
    """Assign a staff member to a booking."""
    try:
        booking = await handler.assign_staff(db, booking_id, payload.staff_id)
    except BookingNotFoundError:
        raise _not_found()

    return BookingEnvelope(
        booking=BookingResponse.from_booking(booking),
        message="Staff assigned successfully",
    )


@router.delete(
    "/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a booking",
    description="Admin only.",
)
async def delete_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    handler: BookingWriteHandler = Depends(get_booking_handler),
) -> None:
    """Delete a booking."""
    try:
        await handler.delete(db, booking_id)
    except BookingNotFoundError:
        raise _not_found()
