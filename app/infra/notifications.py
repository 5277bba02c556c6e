"""
Notification Senders

Boundary adapters for outbound SMS and email. Each sender reports the
outcome as a SendResult instead of raising, so callers can decide how
much a failure matters (OTP issuance fails, booking alerts just log).

- SMS: Twilio Messages REST API over httpx
- Email: SMTP (SSL or STARTTLS), run in a worker thread
- Development: logging senders that print instead of delivering
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Protocol

import httpx

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Twilio concatenates long bodies up to this many characters
MAX_SMS_LENGTH = 1600


@dataclass
class SendResult:
    """Outcome of one send attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message_id: Optional[str] = None) -> "SendResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)


class SmsSender(Protocol):
    """Sends a plain-text SMS."""

    async def send(self, to_number: str, body: str) -> SendResult:
        ...


class EmailSender(Protocol):
    """Sends an HTML email."""

    async def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
        ...


def fit_sms_body(body: str) -> str:
    """Truncate an SMS body to the provider limit."""
    if len(body) <= MAX_SMS_LENGTH:
        return body
    logger.warning(
        f"SMS body length ({len(body)}) exceeds {MAX_SMS_LENGTH} chars, truncating"
    )
    return body[: MAX_SMS_LENGTH - 3] + "..."


def mask_phone(number: str) -> str:
    """Mask a phone number for logging."""
    if len(number) <= 4:
        return "***"
    return f"***{number[-4:]}"


def to_e164(number: str, country_code: str) -> str:
    """Prefix a local number with the country code unless already E.164."""
    if number.startswith("+"):
        return number
    return f"{country_code}{number}"


class TwilioSmsSender:
    """
    SMS sender backed by the Twilio Messages API.

    POST {api_base}/Accounts/{sid}/Messages.json with basic auth.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, to_number: str, body: str) -> SendResult:
        """Send an SMS.

        Args:
            to_number: Destination in E.164 format
            body: Message text

        Returns:
            SendResult with the Twilio message SID on success
        """
        client = await self._get_client()
        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": to_number, "From": self.from_number, "Body": fit_sms_body(body)}

        try:
            response = await client.post(url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed for {mask_phone(to_number)}: {e}")
            return SendResult.failed(f"transport error: {e}")

        if response.status_code in (200, 201):
            sid = response.json().get("sid")
            logger.info(f"SMS sent to {mask_phone(to_number)} (SID: {sid})")
            return SendResult.ok(sid)

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", f"HTTP {response.status_code}")
        error_code = error_data.get("code")
        logger.error(f"Twilio API error [{error_code}]: {error_message}")
        return SendResult.failed(
            f"[{error_code}] {error_message}" if error_code else error_message
        )


class SmtpEmailSender:
    """
    Email sender over SMTP.

    smtplib is blocking, so each send runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_name: str,
        use_ssl: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _build_message(self, to_address: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.username))
        msg["To"] = to_address
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _send_blocking(self, to_address: str, subject: str, html_body: str) -> None:
        msg = self._build_message(to_address, subject, html_body)
        context = ssl.create_default_context()

        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        try:
            if not self.use_ssl:
                server.starttls(context=context)
            server.login(self.username, self.password)
            server.sendmail(self.username, [to_address], msg.as_string())
        finally:
            server.quit()

    async def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
        """Send an email.

        Args:
            to_address: Recipient address
            subject: Subject line
            html_body: HTML content

        Returns:
            SendResult
        """
        try:
            await asyncio.to_thread(self._send_blocking, to_address, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send to {to_address} failed: {e}")
            return SendResult.failed(str(e))

        logger.info(f"Email sent to {to_address}: {subject}")
        return SendResult.ok()


class LoggingSmsSender:
    """Development SMS sender: logs instead of delivering."""

    async def send(self, to_number: str, body: str) -> SendResult:
        logger.info(f"[SMS] To: {to_number} | Message: {fit_sms_body(body)}")
        return SendResult.ok()


class LoggingEmailSender:
    """Development email sender: logs instead of delivering."""

    async def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
        logger.info(f"[EMAIL] To: {to_address} | Subject: {subject}")
        logger.debug(f"[EMAIL BODY] {html_body}")
        return SendResult.ok()


def build_sms_sender(settings: Settings) -> SmsSender:
    """Pick the SMS sender for the given settings."""
    if settings.twilio_configured:
        return TwilioSmsSender(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            api_base=settings.twilio_api_base,
            timeout=settings.notification_timeout_seconds,
        )
    if settings.is_production:
        logger.error("Twilio is not configured - SMS will only be logged")
    return LoggingSmsSender()


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the email sender for the given settings."""
    if settings.smtp_configured:
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_name=settings.email_from_name,
            use_ssl=settings.smtp_use_ssl,
        )
    if settings.is_production:
        logger.error("SMTP is not configured - email will only be logged")
    return LoggingEmailSender()


# Singletons
_sms_sender: Optional[SmsSender] = None
_email_sender: Optional[EmailSender] = None


def get_sms_sender() -> SmsSender:
    """Get singleton SMS sender."""
    global _sms_sender
    if _sms_sender is None:
        _sms_sender = build_sms_sender(get_settings())
    return _sms_sender


def get_email_sender() -> EmailSender:
    """Get singleton email sender."""
    global _email_sender
    if _email_sender is None:
        _email_sender = build_email_sender(get_settings())
    return _email_sender


async def close_senders() -> None:
    """Release sender resources. Called on shutdown."""
    global _sms_sender, _email_sender
    if isinstance(_sms_sender, TwilioSmsSender):
        await _sms_sender.close()
    _sms_sender = None
    _email_sender = None
