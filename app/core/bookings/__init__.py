"""Booking write path: persistence plus notification hand-off."""

from .handler import (
    BookingAccessDenied,
    BookingError,
    BookingNotFoundError,
    BookingWriteHandler,
    get_booking_handler,
)

__all__ = [
    "BookingWriteHandler",
    "BookingError",
    "BookingNotFoundError",
    "BookingAccessDenied",
    "get_booking_handler",
]
