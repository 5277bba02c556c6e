"""
One-time password module.

In-memory store plus the issue/verify service used for phone login.
"""

from .store import OtpRecord, OtpStore
from .service import (
    OtpError,
    OtpIssueResult,
    OtpService,
    OtpTransportError,
    generate_code,
    get_otp_service,
)

__all__ = [
    # Store
    "OtpRecord",
    "OtpStore",
    # Service
    "OtpService",
    "OtpIssueResult",
    "OtpError",
    "OtpTransportError",
    "generate_code",
    "get_otp_service",
]
