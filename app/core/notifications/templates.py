"""
Message templates for booking notifications.

SMS bodies are plain text. Email bodies are inline-styled HTML so they
render in webmail clients; every booking field is HTML-escaped.
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional

from .models import BookingDetails

_CONTAINER = (
    "font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; "
    "padding: 20px; border: 1px solid #ddd; border-radius: 10px;"
)
_LABEL = "padding: 8px 0; font-weight: bold; color: #555;"
_VALUE = "padding: 8px 0; color: #333;"


def _rows(pairs: list[tuple[str, Optional[str]]]) -> str:
    """Render label/value pairs as table rows, skipping empty values."""
    return "".join(
        f'<tr><td style="{_LABEL}">{escape(label)}:</td>'
        f'<td style="{_VALUE}">{escape(value)}</td></tr>'
        for label, value in pairs
        if value
    )


def _section(title: str, body: str, background: str = "#f8f9fa") -> str:
    return (
        f'<div style="background-color: {background}; padding: 20px; '
        f'border-radius: 8px; margin-bottom: 20px;">'
        f'<h3 style="color: #333; margin-top: 0;">{escape(title)}</h3>'
        f"{body}</div>"
    )


def _table(pairs: list[tuple[str, Optional[str]]]) -> str:
    return f'<table style="width: 100%; border-collapse: collapse;">{_rows(pairs)}</table>'


# === SMS ===

def admin_sms(booking: BookingDetails) -> str:
    """New-booking alert for the admin phone."""
    return (
        f"New Booking Request From {booking.customer_name}\n"
        f"Phone: {booking.phone}\n"
        f"Address: {booking.address}\n"
        f"Service: {booking.service_name} on {booking.preferred_date} {booking.preferred_time}"
    )


def customer_sms(booking: BookingDetails, brand: str) -> str:
    """Acknowledgement for the customer."""
    return (
        f"Hi {booking.customer_name}, your booking request for {booking.service_name} "
        f"has been received! We'll get back to you soon. - {brand}"
    )


def status_sms(booking: BookingDetails, brand: str) -> Optional[str]:
    """Status-change message for the customer, or None if the status is not announced."""
    ref = f" Booking ID: #{booking.booking_id}." if booking.booking_id else ""
    if booking.status == "confirmed":
        return (
            f"Dear {booking.customer_name}, your booking for {booking.service_name} on "
            f"{booking.preferred_date} at {booking.preferred_time} has been CONFIRMED.{ref} "
            f"Our professional will contact you before the visit. - {brand}"
        )
    if booking.status == "cancelled":
        return (
            f"Dear {booking.customer_name}, your booking for {booking.service_name} on "
            f"{booking.preferred_date} at {booking.preferred_time} has been CANCELLED.{ref} "
            f"Please contact us to reschedule. - {brand}"
        )
    return None


# === Email ===

def admin_email(booking: BookingDetails, brand: str) -> tuple[str, str]:
    """Full booking detail for the admin mailbox. Returns (subject, html)."""
    subject = f"New Booking: {booking.service_name} - {booking.customer_name}"
    received = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    customer = _table([
        ("Name", booking.customer_name),
        ("Phone", booking.phone),
        ("Email", booking.email),
        ("Service Address", booking.address),
    ])
    service = _table([
        ("Service", booking.service_name),
        ("Preferred Date", booking.preferred_date),
        ("Preferred Time", booking.preferred_time),
        ("Booking ID", booking.booking_id),
    ])
    notes = (
        _section("Additional Notes", f'<p style="color: #333; margin: 0;">{escape(booking.notes)}</p>', "#fff3cd")
        if booking.notes
        else ""
    )

    html = (
        f'<div style="{_CONTAINER}">'
        f'<h2 style="color: #2c5aa0; text-align: center;">New Booking Request - {escape(brand)}</h2>'
        f"{_section('Customer Details', customer)}"
        f"{_section('Service Details', service, '#e8f4fd')}"
        f"{notes}"
        f'<p style="text-align: center; font-size: 12px; color: #666;">Booking received at: {received}</p>'
        f"</div>"
    )
    return subject, html


def customer_email(booking: BookingDetails, brand: str) -> tuple[str, str]:
    """Confirmation of receipt for the customer. Returns (subject, html)."""
    subject = f"Booking Confirmation - {booking.service_name}"

    service = _table([
        ("Service", booking.service_name),
        ("Preferred Date", booking.preferred_date),
        ("Preferred Time", booking.preferred_time),
        ("Service Address", booking.address),
    ])
    next_steps = (
        '<ul style="color: #333; margin: 0; padding-left: 20px;">'
        "<li>Our team will contact you within 24 hours to confirm your appointment</li>"
        "<li>Please keep your phone available for our call</li>"
        "<li>If you need to make any changes, please contact us immediately</li>"
        "</ul>"
    )

    html = (
        f'<div style="{_CONTAINER}">'
        f'<h2 style="color: #2c5aa0; text-align: center;">Booking Confirmation - {escape(brand)}</h2>'
        f'<p style="color: #333; font-size: 16px;">Dear {escape(booking.customer_name)},</p>'
        f'<p style="color: #333;">Thank you for choosing {escape(brand)}. '
        f"We have received your booking request with the following details:</p>"
        f"{_section('Service Details', service)}"
        f"{_section('What is Next?', next_steps, '#e8f4fd')}"
        f'<p style="text-align: center; font-size: 12px; color: #666;">This is an automated confirmation email</p>'
        f"</div>"
    )
    return subject, html


def status_email(booking: BookingDetails, brand: str) -> Optional[tuple[str, str]]:
    """Status-change email for the customer, or None if the status is not announced."""
    body = status_sms(booking, brand)
    if body is None:
        return None

    subject = f"Booking {booking.status.capitalize()} - {booking.service_name}"
    html = (
        f'<div style="{_CONTAINER}">'
        f'<h2 style="color: #2c5aa0; text-align: center;">{escape(subject)}</h2>'
        f'<p style="color: #333; font-size: 16px;">{escape(body)}</p>'
        f"</div>"
    )
    return subject, html
