"""
Booking API Tests

Unit tests live in tests/unit and need no external services: the
database is in-memory SQLite, Redis is mocked, and SMS/email senders are
replaced with recording fakes.

Running Tests:
    # Install test dependencies
    pip install -e ".[test]"

    # Run all tests
    pytest tests -v

    # Run one module
    pytest tests/unit/test_otp_service.py -v

Test Coverage:
    - OTP store capacity, LRU eviction and expiry
    - OTP issue/verify (single use, leading zeros, transport failures)
    - Notification fan-out (skipped channels, failures, timeouts)
    - Twilio and SMTP senders
    - OTP rate limiting (fails open without Redis)
    - Booking write path and HTTP/WebSocket endpoints
"""
