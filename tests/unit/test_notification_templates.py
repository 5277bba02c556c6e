"""Tests for notification message templates."""

from dataclasses import replace

from app.core.notifications import templates


class TestSmsTemplates:

    def test_admin_sms(self, booking_details):
        body = templates.admin_sms(booking_details)

        assert body.startswith("New Booking Request From Asha Patnaik")
        assert "Phone: 9000000001" in body
        assert "Address: 12 Janpath, Bhubaneswar" in body

    def test_customer_sms(self, booking_details):
        body = templates.customer_sms(booking_details, "Utkal Medpro")

        assert "Hi Asha Patnaik" in body
        assert "Blood Sample Collection" in body
        assert body.endswith("- Utkal Medpro")

    def test_status_sms_confirmed(self, booking_details):
        body = templates.status_sms(replace(booking_details, status="confirmed"), "Utkal Medpro")

        assert "CONFIRMED" in body
        assert "#b-1" in body

    def test_status_sms_unannounced(self, booking_details):
        assert templates.status_sms(replace(booking_details, status="in_progress"), "X") is None
        assert templates.status_email(replace(booking_details, status="pending"), "X") is None


class TestEmailTemplates:

    def test_admin_email(self, booking_details):
        subject, html = templates.admin_email(booking_details, "Utkal Medpro")

        assert subject == "New Booking: Blood Sample Collection - Asha Patnaik"
        assert "asha@example.com" in html
        assert "Ring the bell twice" in html
        assert "Booking ID" in html

    def test_admin_email_without_optional_fields(self, booking_details):
        booking = replace(booking_details, email=None, notes=None)

        _, html = templates.admin_email(booking, "Utkal Medpro")

        assert "Additional Notes" not in html
        assert ">Email:<" not in html

    def test_customer_email(self, booking_details):
        subject, html = templates.customer_email(booking_details, "Utkal Medpro")

        assert subject == "Booking Confirmation - Blood Sample Collection"
        assert "Dear Asha Patnaik" in html
        assert "2026-11-02" in html

    def test_fields_are_escaped(self, booking_details):
        booking = replace(booking_details, customer_name="<script>alert(1)</script>")

        _, html = templates.customer_email(booking, "Utkal Medpro")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_status_email(self, booking_details):
        subject, html = templates.status_email(
            replace(booking_details, status="cancelled"), "Utkal Medpro"
        )

        assert subject == "Booking Cancelled - Blood Sample Collection"
        assert "CANCELLED" in html
