#!/usr/bin/env python3
"""
Setup Verification Script

Checks configuration and connections before running the booking API.
Run this after filling in your .env file.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def mask_value(var: str, value: str) -> str:
    """Mask secrets for display."""
    if any(word in var for word in ("KEY", "SECRET", "PASSWORD", "TOKEN")):
        return f"{value[:4]}...{value[-2:]}" if len(value) > 8 else "***"
    return value


def check_env_file() -> bool:
    """Check if .env file exists."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", False, "File not found. Copy .env.example to .env")
    else:
        print_result(".env file", True, "Found")
    return exists


def check_required_vars() -> dict[str, bool]:
    """Check required environment variables."""
    results = {}

    required = [
        ("DATABASE_URL", "Required for PostgreSQL"),
        ("SECRET_KEY", "Required for signing access tokens"),
    ]

    for var, description in required:
        value = os.getenv(var, "")

        if not value:
            print_result(var, False, f"Not set - {description}")
            results[var] = False
        elif var == "SECRET_KEY" and value == "dev-secret-key-change-in-production":
            print_result(var, True, "Using dev key (change for production!)")
            results[var] = True
        else:
            print_result(var, True, f"Set ({mask_value(var, value)})")
            results[var] = True

    return results


def check_channel_vars() -> dict[str, bool]:
    """
    Check notification channel settings.

    Missing channels are not fatal: the app logs messages instead of
    sending them.
    """
    groups = {
        "Twilio SMS": ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"],
        "SMTP email": ["SMTP_HOST", "SMTP_USERNAME", "SMTP_PASSWORD"],
    }

    results = {}
    for name, variables in groups.items():
        missing = [var for var in variables if not os.getenv(var)]
        if missing:
            print_result(name, False, f"Not configured (missing {', '.join(missing)}), messages will be logged only")
        else:
            print_result(name, True, "Configured")
        results[name] = not missing

    for var in ("ADMIN_PHONE_NUMBER", "ADMIN_EMAIL"):
        value = os.getenv(var, "")
        if value:
            print_result(var, True, value)
        else:
            print_result(var, False, "Not set - admin notifications on this channel are skipped")

    return results


def check_optional_vars() -> None:
    """Check optional environment variables."""
    optional = [
        ("APP_ENV", "development"),
        ("DEBUG", "false"),
        ("PORT", "8000"),
        ("REDIS_URL", "redis://localhost:6379/0"),
        ("OTP_TTL_SECONDS", "600"),
        ("OTP_CAPACITY", "100"),
        ("DEFAULT_COUNTRY_CODE", "+91"),
    ]

    for var, default in optional:
        value = os.getenv(var, default)
        print_result(var, True, f"{value}")


async def check_postgres() -> bool:
    """Verify database connection."""
    try:
        from app.infra.database import check_db_health
        healthy = await check_db_health()

        if healthy:
            print_result("Database", True, "Connection successful")
        else:
            print_result("Database", False, "Connection failed")
        return healthy

    except Exception as e:
        print_result("Database", False, str(e)[:50])
        return False


async def check_redis() -> bool:
    """Verify Redis connection."""
    try:
        from app.infra.redis import check_redis_health
        healthy = await check_redis_health()

        if healthy:
            print_result("Redis", True, "Connection successful")
        else:
            print_result("Redis", False, "Connection failed (OTP throttling disabled)")
        return healthy

    except Exception as e:
        print_result("Redis", False, str(e)[:50])
        return False


async def check_twilio() -> bool:
    """Verify Twilio credentials by fetching the account resource."""
    from app.config import get_settings

    settings = get_settings()

    try:
        import httpx

        async with httpx.AsyncClient(
            timeout=10.0,
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
        ) as client:
            response = await client.get(
                f"{settings.twilio_api_base}/Accounts/{settings.twilio_account_sid}.json"
            )

        if response.status_code == 200:
            print_result("Twilio API", True, "Credentials valid")
            return True
        elif response.status_code == 401:
            print_result("Twilio API", False, "Invalid credentials")
        else:
            print_result("Twilio API", False, f"Responded with {response.status_code}")
        return False

    except Exception as e:
        print_result("Twilio API", False, str(e)[:50])
        return False


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "email_validator",
        "sqlalchemy",
        "asyncpg",
        "redis",
        "httpx",
        "jwt",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Medpro Booking API - Setup Verification")
    print("="*60)

    all_passed = True
    critical_failed = False

    print_header("Environment File")
    if not check_env_file():
        all_passed = False

    print_header("Python Dependencies")
    if not check_dependencies():
        all_passed = False
        critical_failed = True

    print_header("Required Environment Variables")
    var_results = check_required_vars()
    if not all(var_results.values()):
        all_passed = False
        critical_failed = True

    print_header("Notification Channels")
    channel_results = check_channel_vars()
    if not all(channel_results.values()):
        all_passed = False

    print_header("Optional Environment Variables")
    check_optional_vars()

    print_header("Service Connections")

    if var_results.get("DATABASE_URL"):
        if not await check_postgres():
            all_passed = False
            critical_failed = True
    else:
        print_result("Database", False, "Skipped - DATABASE_URL not set")

    # Redis failure is non-critical (limiter fails open)
    await check_redis()

    if channel_results.get("Twilio SMS"):
        if not await check_twilio():
            all_passed = False
    else:
        print_result("Twilio API", False, "Skipped - Twilio not configured")

    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required checks failed.\033[0m")
        print("  Please fix the issues above before running the application.")
        print()
        return 1
    elif not all_passed:
        print("\n  \033[93mWARNING: Some optional checks failed.\033[0m")
        print("  The application will run, but some notifications may only be logged.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the application with:")
        print("    uvicorn app.main:app --reload")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
