"""Tests for OTP issuance and verification."""

import asyncio
import re

import pytest
from unittest.mock import AsyncMock, patch

from app.core.otp import OtpService, OtpStore, OtpTransportError, generate_code
from app.infra.notifications import SendResult

from .fakes import RecordingSmsSender


class TestGenerateCode:
    """Test code format."""

    def test_six_digits(self):
        for _ in range(50):
            assert re.fullmatch(r"[0-9]{6}", generate_code())

    def test_leading_zeros_kept(self):
        """Small random values are zero-padded, never shortened."""
        with patch("app.core.otp.service.secrets.randbelow", return_value=4521):
            assert generate_code() == "004521"

        with patch("app.core.otp.service.secrets.randbelow", return_value=0):
            assert generate_code() == "000000"


class TestOtpService:
    """Test issue/verify against an isolated store."""

    @pytest.fixture
    def store(self, clock):
        return OtpStore(capacity=100, ttl_seconds=600, clock=clock)

    @pytest.fixture
    def service(self, store, sms_sender):
        return OtpService(store=store, sms_sender=sms_sender, country_code="+91")

    @pytest.mark.asyncio
    async def test_issue_stores_and_sends(self, service, store, sms_sender):
        """Issued code is stored and sent to the E.164 number."""
        result = await service.issue("9000000001")

        assert result.subject == "9000000001"
        assert result.expires_in == 600

        code = store.get("9000000001")
        assert code is not None and len(code) == 6

        assert len(sms_sender.sent) == 1
        to_number, body = sms_sender.sent[0]
        assert to_number == "+919000000001"
        assert code in body

    @pytest.mark.asyncio
    async def test_issue_keeps_e164_numbers(self, service, sms_sender):
        await service.issue("+14155550100")
        assert sms_sender.sent[0][0] == "+14155550100"

    @pytest.mark.asyncio
    async def test_verify_then_reuse(self, service, store):
        """A code works exactly once."""
        with patch("app.core.otp.service.secrets.randbelow", return_value=4521):
            await service.issue("9000000001")

        assert service.verify("9000000001", "004521") is True
        assert service.verify("9000000001", "004521") is False
        assert "9000000001" not in store

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_record(self, service, store):
        """A failed attempt does not consume the code."""
        with patch("app.core.otp.service.secrets.randbelow", return_value=123456):
            await service.issue("9000000001")

        assert service.verify("9000000001", "654321") is False
        assert service.verify("9000000001", "123456") is True

    @pytest.mark.asyncio
    async def test_leading_zero_code_not_accepted_without_zeros(self, service):
        with patch("app.core.otp.service.secrets.randbelow", return_value=4521):
            await service.issue("9000000001")

        assert service.verify("9000000001", "4521") is False
        assert service.verify("9000000001", "004521") is True

    @pytest.mark.asyncio
    async def test_expired_code(self, service, clock):
        with patch("app.core.otp.service.secrets.randbelow", return_value=111111):
            await service.issue("9000000001")

        clock.advance(601)
        assert service.verify("9000000001", "111111") is False

    @pytest.mark.asyncio
    async def test_reissue_replaces_code(self, service):
        """Only the most recent code for a subject is valid."""
        with patch("app.core.otp.service.secrets.randbelow", return_value=111111):
            await service.issue("9000000001")
        with patch("app.core.otp.service.secrets.randbelow", return_value=222222):
            await service.issue("9000000001")

        assert service.verify("9000000001", "111111") is False
        assert service.verify("9000000001", "222222") is True

    def test_verify_unknown_subject(self, service):
        assert service.verify("9000000009", "123456") is False

    @pytest.mark.asyncio
    async def test_subjects_are_independent(self, service):
        with patch("app.core.otp.service.secrets.randbelow", return_value=111111):
            await service.issue("9000000001")
        with patch("app.core.otp.service.secrets.randbelow", return_value=222222):
            await service.issue("9000000002")

        assert service.verify("9000000001", "222222") is False
        assert service.verify("9000000002", "222222") is True
        assert service.verify("9000000001", "111111") is True

    @pytest.mark.asyncio
    async def test_login_scenario(self, service, store):
        """Issue, mistype, retry, then try to replay."""
        with patch("app.core.otp.service.secrets.randbelow", return_value=4521):
            await service.issue("9000000001")

        assert store.get("9000000001") == "004521"
        assert service.verify("9000000001", "000000") is False
        assert service.verify("9000000001", "004521") is True
        assert service.verify("9000000001", "004521") is False


class TestOtpTransportFailures:
    """Test SMS delivery failures during issuance."""

    @pytest.fixture
    def store(self, clock):
        return OtpStore(capacity=100, ttl_seconds=600, clock=clock)

    @pytest.mark.asyncio
    async def test_failed_result(self, store):
        sender = RecordingSmsSender(result=SendResult.failed("[21211] Invalid 'To' number"))
        service = OtpService(store=store, sms_sender=sender)

        with pytest.raises(OtpTransportError):
            await service.issue("9000000001")

    @pytest.mark.asyncio
    async def test_sender_raises(self, store):
        sender = AsyncMock()
        sender.send = AsyncMock(side_effect=RuntimeError("connection reset"))
        service = OtpService(store=store, sms_sender=sender)

        with pytest.raises(OtpTransportError):
            await service.issue("9000000001")

    @pytest.mark.asyncio
    async def test_sender_timeout(self, store):
        """A provider that never answers fails within the send timeout."""
        sender = RecordingSmsSender(delay=5.0)
        service = OtpService(store=store, sms_sender=sender, send_timeout=0.05)

        with pytest.raises(OtpTransportError):
            await asyncio.wait_for(service.issue("9000000001"), timeout=2.0)

        assert sender.sent == []
