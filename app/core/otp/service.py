"""
OTP issuance and verification.

Codes are always fixed-width strings ("004521", never 4521). A code is
single use: a successful verification removes it, a failed one leaves
it in place so the holder can retry until it expires.
"""

import asyncio
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from app.config import get_settings
from app.infra.notifications import SmsSender, get_sms_sender, mask_phone, to_e164
from .store import OtpStore

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


class OtpError(Exception):
    """Base class for OTP errors."""
    pass


class OtpTransportError(OtpError):
    """Raised when the code could not be delivered by SMS."""
    pass


@dataclass
class OtpIssueResult:
    """Result of a successful issuance."""

    subject: str
    expires_in: int


def generate_code(length: int = CODE_LENGTH) -> str:
    """Generate a uniformly random zero-padded numeric code."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


class OtpService:
    """
    Issues and verifies one-time codes for phone numbers.

    The store is passed in explicitly so each service (and each test)
    owns an isolated instance.
    """

    def __init__(
        self,
        store: OtpStore,
        sms_sender: SmsSender,
        country_code: str = "+91",
        send_timeout: float = 10.0,
        brand_name: Optional[str] = None,
    ):
        self.store = store
        self.sms_sender = sms_sender
        self.country_code = country_code
        self.send_timeout = send_timeout
        self.brand_name = brand_name

    def _message(self, code: str) -> str:
        minutes = max(1, int(self.store.ttl_seconds // 60))
        text = f"Your OTP is {code}. It is valid for {minutes} minutes."
        if self.brand_name:
            text += f" - {self.brand_name}"
        return text

    async def issue(self, subject: str) -> OtpIssueResult:
        """
        Generate a code for a subject, store it, and send it by SMS.

        Args:
            subject: Normalized phone number

        Returns:
            OtpIssueResult

        Raises:
            OtpTransportError: SMS could not be sent (failure, error or timeout)
        """
        code = generate_code()
        self.store.put(subject, code)

        destination = to_e164(subject, self.country_code)
        masked = mask_phone(subject)

        try:
            result = await asyncio.wait_for(
                self.sms_sender.send(destination, self._message(code)),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"OTP SMS to {masked} timed out after {self.send_timeout}s")
            raise OtpTransportError("SMS provider timed out")
        except Exception as e:
            logger.error(f"OTP SMS to {masked} failed: {e}")
            raise OtpTransportError(str(e)) from e

        if not result.success:
            logger.error(f"OTP SMS to {masked} rejected: {result.error}")
            raise OtpTransportError(result.error or "SMS delivery failed")

        logger.info(f"OTP issued for {masked}")
        return OtpIssueResult(subject=subject, expires_in=int(self.store.ttl_seconds))

    def verify(self, subject: str, submitted_code: str) -> bool:
        """
        Check a submitted code.

        Absent, expired and mismatched codes all return False with no
        further detail. On success the code is consumed.

        Args:
            subject: Normalized phone number
            submitted_code: Code entered by the user

        Returns:
            True if the code is valid
        """
        stored = self.store.get(subject)
        if stored is None:
            logger.info(f"OTP verification failed for {mask_phone(subject)}")
            return False

        if not hmac.compare_digest(stored.encode(), str(submitted_code).encode()):
            logger.info(f"OTP verification failed for {mask_phone(subject)}")
            return False

        self.store.remove(subject)
        logger.info(f"OTP verified for {mask_phone(subject)}")
        return True


# Singleton
_service: Optional[OtpService] = None


def get_otp_service() -> OtpService:
    """Get singleton OtpService backed by the process-wide store."""
    global _service
    if _service is None:
        settings = get_settings()
        _service = OtpService(
            store=OtpStore(
                capacity=settings.otp_capacity,
                ttl_seconds=settings.otp_ttl_seconds,
            ),
            sms_sender=get_sms_sender(),
            country_code=settings.default_country_code,
            send_timeout=settings.otp_send_timeout_seconds,
            brand_name=settings.brand_name,
        )
    return _service
