"""
Booking notification module.

Formats booking events and fans them out to SMS and email channels.
"""

from .models import (
    BookingDetails,
    NotificationChannel,
    NotificationOutcome,
    OutcomeStatus,
)
from .dispatcher import NotificationDispatcher, get_notification_dispatcher

__all__ = [
    # Models
    "BookingDetails",
    "NotificationChannel",
    "NotificationOutcome",
    "OutcomeStatus",
    # Dispatcher
    "NotificationDispatcher",
    "get_notification_dispatcher",
]
