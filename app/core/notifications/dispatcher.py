"""
Booking notification fan-out.

After a booking is committed, the dispatcher sends one event to every
channel at once:

- sms-admin: new-booking alert with customer name, phone and address
- sms-customer: acknowledgement
- email-admin: full booking detail
- email-customer: confirmation

Both email channels are skipped when the customer gave no email, and
email-admin is also skipped when no admin mailbox is configured.

Each channel formats its own message and has its own timeout. A failing
or hanging channel is logged and never cancels the others. Nothing raises
past dispatch(); the booking already succeeded regardless of what happens
here.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.config import get_settings
from app.infra.notifications import (
    EmailSender,
    SendResult,
    SmsSender,
    get_email_sender,
    get_sms_sender,
    mask_phone,
    to_e164,
)
from . import templates
from .models import BookingDetails, NotificationChannel, NotificationOutcome, OutcomeStatus

logger = logging.getLogger(__name__)

# Statuses the customer is told about
ANNOUNCED_STATUSES = {"confirmed", "cancelled"}

SendFactory = Callable[[], Awaitable[SendResult]]


class NotificationDispatcher:
    """
    Fire-and-forget sink for booking notifications.

    Use spawn() from request handlers: it schedules the dispatch as a
    background task and returns immediately. dispatch() is the awaited
    form, used by spawn() and by tests.
    """

    def __init__(
        self,
        sms_sender: SmsSender,
        email_sender: EmailSender,
        admin_phone: Optional[str] = None,
        admin_email: Optional[str] = None,
        brand_name: str = "Utkal Medpro",
        timeout: float = 10.0,
        country_code: str = "+91",
    ):
        """Initialize dispatcher.

        Args:
            sms_sender: SMS boundary adapter
            email_sender: Email boundary adapter
            admin_phone: Number for new-booking alerts (channel skipped if empty)
            admin_email: Mailbox for booking details (channel skipped if empty)
            brand_name: Business name used in message text
            timeout: Ceiling in seconds on each individual send
            country_code: Prefix for phone numbers stored without one
        """
        self.sms_sender = sms_sender
        self.email_sender = email_sender
        self.admin_phone = admin_phone or None
        self.admin_email = admin_email or None
        self.brand_name = brand_name
        self.timeout = timeout
        self.country_code = country_code
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of dispatch tasks still running."""
        return len(self._tasks)

    def _sms(self, to_number: str, body: Callable[[], str]) -> SendFactory:
        return lambda: self.sms_sender.send(to_e164(to_number, self.country_code), body())

    def _email(self, to_address: str, message: Callable[[], tuple[str, str]]) -> SendFactory:
        return lambda: self.email_sender.send(to_address, *message())

    async def _send(self, channel: NotificationChannel, build: SendFactory) -> NotificationOutcome:
        """Format and send one channel, converting every failure into an outcome."""
        try:
            result = await asyncio.wait_for(build(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Notification {channel.value} timed out after {self.timeout}s")
            return NotificationOutcome(channel, OutcomeStatus.FAILURE, "timeout")
        except Exception as e:
            logger.error(f"Notification {channel.value} failed: {e}")
            return NotificationOutcome(channel, OutcomeStatus.FAILURE, str(e))

        if not result.success:
            logger.error(f"Notification {channel.value} failed: {result.error}")
            return NotificationOutcome(channel, OutcomeStatus.FAILURE, result.error)

        return NotificationOutcome(channel, OutcomeStatus.SUCCESS)

    @staticmethod
    def _skip(channel: NotificationChannel, reason: str) -> NotificationOutcome:
        logger.debug(f"Notification {channel.value} skipped: {reason}")
        return NotificationOutcome(channel, OutcomeStatus.SKIPPED, reason)

    async def _fan_out(
        self,
        sends: dict[NotificationChannel, SendFactory],
        skipped: list[NotificationOutcome],
    ) -> list[NotificationOutcome]:
        channels = list(sends)
        results = await asyncio.gather(
            *(self._send(channel, sends[channel]) for channel in channels),
            return_exceptions=True,
        )

        outcomes = list(skipped)
        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                # _send already converts errors; this only catches cancellation
                outcomes.append(NotificationOutcome(channel, OutcomeStatus.FAILURE, repr(result)))
            else:
                outcomes.append(result)

        outcomes.sort(key=lambda o: list(NotificationChannel).index(o.channel))
        return outcomes

    async def dispatch(self, booking: BookingDetails) -> list[NotificationOutcome]:
        """
        Send the new-booking notifications concurrently.

        Args:
            booking: Committed booking

        Returns:
            One outcome per channel, in channel order
        """
        sends: dict[NotificationChannel, SendFactory] = {}
        skipped: list[NotificationOutcome] = []

        if self.admin_phone:
            sends[NotificationChannel.SMS_ADMIN] = self._sms(
                self.admin_phone, lambda: templates.admin_sms(booking)
            )
        else:
            skipped.append(self._skip(NotificationChannel.SMS_ADMIN, "no admin phone configured"))

        sends[NotificationChannel.SMS_CUSTOMER] = self._sms(
            booking.phone, lambda: templates.customer_sms(booking, self.brand_name)
        )

        if not booking.email:
            skipped.append(self._skip(NotificationChannel.EMAIL_ADMIN, "no customer email"))
            skipped.append(self._skip(NotificationChannel.EMAIL_CUSTOMER, "no customer email"))
        else:
            if self.admin_email:
                sends[NotificationChannel.EMAIL_ADMIN] = self._email(
                    self.admin_email, lambda: templates.admin_email(booking, self.brand_name)
                )
            else:
                skipped.append(self._skip(NotificationChannel.EMAIL_ADMIN, "no admin email configured"))

            sends[NotificationChannel.EMAIL_CUSTOMER] = self._email(
                booking.email, lambda: templates.customer_email(booking, self.brand_name)
            )

        outcomes = await self._fan_out(sends, skipped)
        self._log_summary("Booking", booking, outcomes)
        return outcomes

    async def dispatch_status_change(self, booking: BookingDetails) -> list[NotificationOutcome]:
        """
        Tell the customer their booking was confirmed or cancelled.

        Other statuses are not announced and return no outcomes.
        """
        if booking.status not in ANNOUNCED_STATUSES:
            return []

        def sms_body() -> str:
            body = templates.status_sms(booking, self.brand_name)
            if body is None:
                raise ValueError(f"no SMS text for status '{booking.status}'")
            return body

        def email_message() -> tuple[str, str]:
            message = templates.status_email(booking, self.brand_name)
            if message is None:
                raise ValueError(f"no email text for status '{booking.status}'")
            return message

        sends: dict[NotificationChannel, SendFactory] = {
            NotificationChannel.SMS_CUSTOMER: self._sms(booking.phone, sms_body),
        }
        skipped: list[NotificationOutcome] = []

        if booking.email:
            sends[NotificationChannel.EMAIL_CUSTOMER] = self._email(booking.email, email_message)
        else:
            skipped.append(self._skip(NotificationChannel.EMAIL_CUSTOMER, "no customer email"))

        outcomes = await self._fan_out(sends, skipped)
        self._log_summary(f"Status '{booking.status}'", booking, outcomes)
        return outcomes

    def spawn(self, booking: BookingDetails) -> asyncio.Task:
        """
        Schedule dispatch() in the background and return without waiting.

        Must be called from a running event loop.
        """
        return self._track(asyncio.create_task(self.dispatch(booking)))

    def spawn_status_change(self, booking: BookingDetails) -> asyncio.Task:
        """Schedule dispatch_status_change() in the background."""
        return self._track(asyncio.create_task(self.dispatch_status_change(booking)))

    async def drain(self, timeout: float = 15.0) -> None:
        """Wait for in-flight dispatches. Called on shutdown."""
        if not self._tasks:
            return

        logger.info(f"Waiting for {len(self._tasks)} notification task(s)")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} notification task(s) still running at shutdown")

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        # Keep a strong reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _log_summary(
        label: str,
        booking: BookingDetails,
        outcomes: list[NotificationOutcome],
    ) -> None:
        failed = [o for o in outcomes if o.status == OutcomeStatus.FAILURE]
        summary = ", ".join(str(o) for o in outcomes)
        message = (
            f"{label} notifications for booking {booking.booking_id or '-'} "
            f"({mask_phone(booking.phone)}): {summary}"
        )
        if failed:
            logger.warning(message)
        else:
            logger.info(message)


# Singleton
_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get singleton NotificationDispatcher."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = NotificationDispatcher(
            sms_sender=get_sms_sender(),
            email_sender=get_email_sender(),
            admin_phone=settings.admin_phone_number,
            admin_email=settings.admin_email,
            brand_name=settings.brand_name,
            timeout=settings.notification_timeout_seconds,
            country_code=settings.default_country_code,
        )
    return _dispatcher
