"""
Booking write handler.

Persists booking changes, then notifies the outside world:
- WebSocket broadcast to admin dashboards
- SMS/email fan-out, handed to the dispatcher as a background task

The database commit always happens first. SMS/email is scheduled before
the broadcast, and neither can fail the request.
"""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.notifications import (
    BookingDetails,
    NotificationDispatcher,
    get_notification_dispatcher,
)
from app.infra.realtime import ConnectionManager, get_connection_manager
from app.models.database import Booking, BookingStatus, User

logger = logging.getLogger(__name__)

# Status changes the customer is told about
ANNOUNCED_STATUSES = {BookingStatus.CONFIRMED, BookingStatus.CANCELLED}

# Fields an admin may edit through update()
EDITABLE_FIELDS = {
    "customer_name",
    "phone",
    "email",
    "address",
    "service_name",
    "preferred_date",
    "preferred_time",
    "notes",
    "price",
    "status",
    "assigned_staff_id",
}

# Editable fields backed by NOT NULL columns
REQUIRED_FIELDS = {
    "customer_name",
    "phone",
    "address",
    "service_name",
    "preferred_date",
    "preferred_time",
    "status",
}


class BookingError(Exception):
    """Base class for booking errors."""
    pass


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist."""
    pass


class BookingAccessDenied(BookingError):
    """Raised when a customer asks for someone else's booking."""
    pass


class BookingWriteHandler:
    """
    Booking operations used by the HTTP layer.

    Every write commits before any notification is triggered.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        connections: ConnectionManager,
    ):
        self.dispatcher = dispatcher
        self.connections = connections

    async def _commit(self, db: AsyncSession, booking: Booking) -> Booking:
        await db.commit()
        # Reload server-generated timestamps
        await db.refresh(booking)
        return booking

    async def create(
        self,
        db: AsyncSession,
        data: dict[str, Any],
        user: Optional[User] = None,
    ) -> Booking:
        """
        Create a booking and trigger the new-booking notifications.

        Args:
            db: Database session
            data: Validated booking fields
            user: Logged-in customer, if any

        Returns:
            The committed booking
        """
        booking = Booking(
            **{k: v for k, v in data.items() if k in EDITABLE_FIELDS and k != "status"},
            status=BookingStatus.PENDING,
            user_id=user.id if user else None,
        )
        db.add(booking)

        if user is not None:
            # Fill in profile details the OTP login could not know
            if not user.name:
                user.name = booking.customer_name
            if not user.email and booking.email:
                user.email = booking.email

        await self._commit(db, booking)
        logger.info(f"Booking created: {booking.id} ({booking.service_name})")

        self.dispatcher.spawn(BookingDetails.from_booking(booking))
        await self.connections.broadcast("booking_created", booking.to_dict())
        return booking

    async def get(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        """
        Get a booking by id.

        Raises:
            BookingNotFoundError: No such booking
        """
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def get_for_user(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        user: User,
    ) -> Booking:
        """
        Get a booking the user is allowed to see.

        Admins see every booking; customers only their own.

        Raises:
            BookingNotFoundError: No such booking
            BookingAccessDenied: Booking belongs to someone else
        """
        booking = await self.get(db, booking_id)
        if user.is_admin:
            return booking
        if booking.user_id != user.id and booking.phone != user.phone:
            raise BookingAccessDenied(str(booking_id))
        return booking

    async def list_all(
        self,
        db: AsyncSession,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        """List bookings, newest first, optionally filtered by status."""
        query = select(Booking).order_by(Booking.created_at.desc())
        if status is not None:
            query = query.where(Booking.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_for_customer(self, db: AsyncSession, user: User) -> list[Booking]:
        """List a customer's bookings (by account or phone), newest first."""
        result = await db.execute(
            select(Booking)
            .where(or_(Booking.user_id == user.id, Booking.phone == user.phone))
            .order_by(Booking.created_at.desc())
        )
        return list(result.scalars().all())

    async def update(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> Booking:
        """
        Apply field changes to a booking.

        Unknown fields are ignored, as is None for a required field. A
        status change goes through the same notifications as
        update_status().
        """
        booking = await self.get(db, booking_id)
        previous_status = booking.status

        for field, value in changes.items():
            if field not in EDITABLE_FIELDS:
                continue
            if value is None and field in REQUIRED_FIELDS:
                logger.warning(f"Ignoring null {field} for booking {booking.id}")
                continue
            setattr(booking, field, value)

        await self._commit(db, booking)
        logger.info(f"Booking updated: {booking.id}")

        await self._after_update(booking, previous_status)
        return booking

    async def update_status(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        status: BookingStatus,
    ) -> Booking:
        """
        Move a booking to a new status.

        Confirmed and cancelled bookings trigger a customer notification.
        """
        booking = await self.get(db, booking_id)
        previous_status = booking.status
        booking.status = status

        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} status: {previous_status.value} -> {status.value}")

        await self._after_update(booking, previous_status)
        return booking

    async def assign_staff(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        staff_id: str,
    ) -> Booking:
        """Assign a staff member to a booking."""
        booking = await self.get(db, booking_id)
        booking.assigned_staff_id = staff_id

        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} assigned to staff {staff_id}")

        await self.connections.broadcast("booking_updated", booking.to_dict())
        return booking

    async def delete(self, db: AsyncSession, booking_id: uuid.UUID) -> None:
        """Delete a booking."""
        booking = await self.get(db, booking_id)
        await db.delete(booking)
        await db.commit()
        logger.info(f"Booking deleted: {booking_id}")

        await self.connections.broadcast("booking_deleted", {"id": str(booking_id)})

    async def _after_update(self, booking: Booking, previous_status: BookingStatus) -> None:
        if booking.status != previous_status and booking.status in ANNOUNCED_STATUSES:
            self.dispatcher.spawn_status_change(BookingDetails.from_booking(booking))

        await self.connections.broadcast("booking_updated", booking.to_dict())


# Singleton
_handler: Optional[BookingWriteHandler] = None


def get_booking_handler() -> BookingWriteHandler:
    """Get singleton BookingWriteHandler."""
    global _handler
    if _handler is None:
        _handler = BookingWriteHandler(
            dispatcher=get_notification_dispatcher(),
            connections=get_connection_manager(),
        )
    return _handler
