"""Data types for booking notifications."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class NotificationChannel(str, Enum):
    """Fixed set of channels a booking fans out to."""
    SMS_ADMIN = "sms-admin"
    SMS_CUSTOMER = "sms-customer"
    EMAIL_ADMIN = "email-admin"
    EMAIL_CUSTOMER = "email-customer"


class OutcomeStatus(str, Enum):
    """Result of a single channel send."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BookingDetails:
    """
    Read-only view of a booking used to format messages.

    Built from the ORM row (or a request payload) so the notification
    code never touches the database session.
    """

    customer_name: str
    phone: str
    address: str
    service_name: str
    preferred_date: str
    preferred_time: str
    email: Optional[str] = None
    notes: Optional[str] = None
    booking_id: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingDetails":
        """Create from a Booking ORM instance."""
        return cls(
            customer_name=booking.customer_name,
            phone=booking.phone,
            email=booking.email or None,
            address=booking.address,
            service_name=booking.service_name,
            preferred_date=str(booking.preferred_date),
            preferred_time=booking.preferred_time,
            notes=booking.notes or None,
            booking_id=str(booking.id) if booking.id else None,
            status=booking.status.value if booking.status else None,
        )


@dataclass
class NotificationOutcome:
    """Outcome of one channel within a dispatch. Logged, never persisted."""

    channel: NotificationChannel
    status: OutcomeStatus
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def __str__(self) -> str:
        if self.reason:
            return f"{self.channel.value}: {self.status.value} ({self.reason})"
        return f"{self.channel.value}: {self.status.value}"
