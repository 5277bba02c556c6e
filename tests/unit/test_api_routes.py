"""Tests for the HTTP and WebSocket endpoints."""

import re

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from app.api.middleware.auth import create_access_token
from app.config import settings
from app.core.bookings import BookingWriteHandler, get_booking_handler
from app.core.notifications import NotificationDispatcher
from app.core.otp import OtpService, OtpStore, get_otp_service
from app.infra.database import get_db
from app.infra.notifications import SendResult
from app.infra.redis import RateLimiterStore
from app.main import app
from app.models.database import User, UserRole

from .fakes import RecordingSmsSender


@pytest.fixture
def otp_sms():
    return RecordingSmsSender()


@pytest.fixture
def otp_service(otp_sms):
    return OtpService(store=OtpStore(capacity=10, ttl_seconds=600), sms_sender=otp_sms)


@pytest.fixture
def dispatcher():
    return MagicMock(spec=NotificationDispatcher)


@pytest.fixture
def booking_handler(dispatcher):
    connections = MagicMock()
    connections.broadcast = AsyncMock(return_value=0)
    return BookingWriteHandler(dispatcher=dispatcher, connections=connections)


@pytest.fixture
def limiter():
    """Redis-less limiter: every request is allowed."""
    return RateLimiterStore(None, max_requests=5, window_seconds=600)


@pytest_asyncio.fixture
async def client(session_factory, otp_service, booking_handler, limiter):
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_otp_service] = lambda: otp_service
    app.dependency_overrides[get_booking_handler] = lambda: booking_handler

    with patch(
        "app.api.middleware.rate_limit.get_rate_limiter_store",
        AsyncMock(return_value=limiter),
    ):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c

    app.dependency_overrides.clear()


async def make_user(session_factory, phone: str, role: UserRole = UserRole.CUSTOMER) -> User:
    async with session_factory() as session:
        user = User(phone=phone, role=role)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


BOOKING_PAYLOAD = {
    "customer_name": "Asha Patnaik",
    "phone": "9000000001",
    "email": "asha@example.com",
    "address": "12 Janpath, Bhubaneswar",
    "service_name": "Blood Sample Collection",
    "preferred_date": "2026-11-02",
    "preferred_time": "10:00 AM",
}


class TestOtpLogin:
    """Test /auth/send-otp and /auth/verify-otp."""

    @pytest.mark.asyncio
    async def test_full_login(self, client, otp_service, otp_sms):
        response = await client.post("/auth/send-otp", json={"phone": "90000 00001"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["expires_in"] == 600
        assert response.headers["X-RateLimit-Limit"] == "5"

        to_number, body = otp_sms.sent[0]
        assert to_number == "+919000000001"
        code = re.search(r"\b(\d{6})\b", body).group(1)

        response = await client.post(
            "/auth/verify-otp", json={"phone": "9000000001", "otp": code}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["phone"] == "9000000001"
        assert data["user"]["role"] == "customer"

        me = await client.get(
            "/auth/me", headers={"Authorization": f"Bearer {data['token']}"}
        )
        assert me.status_code == 200
        assert me.json()["id"] == data["user"]["id"]

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, client, otp_service):
        otp_service.store.put("9000000001", "004521")
        payload = {"phone": "9000000001", "otp": "004521"}

        assert (await client.post("/auth/verify-otp", json=payload)).status_code == 200

        response = await client.post("/auth/verify-otp", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired OTP"

    @pytest.mark.asyncio
    async def test_wrong_code(self, client, otp_service):
        otp_service.store.put("9000000001", "004521")

        response = await client.post(
            "/auth/verify-otp", json={"phone": "9000000001", "otp": "123456"}
        )

        assert response.status_code == 400
        assert otp_service.store.get("9000000001") == "004521"

    @pytest.mark.asyncio
    async def test_admin_phone_gets_admin_role(self, client, otp_service, monkeypatch):
        monkeypatch.setattr(settings, "admin_phone_numbers", "9999999999")
        otp_service.store.put("9999999999", "111111")

        response = await client.post(
            "/auth/verify-otp", json={"phone": "9999999999", "otp": "111111"}
        )

        assert response.json()["user"]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_sms_failure_returns_502(self, client, otp_sms):
        otp_sms.result = SendResult.failed("[20003] Authenticate")

        response = await client.post("/auth/send-otp", json={"phone": "9000000001"})

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to send OTP"

    @pytest.mark.asyncio
    async def test_throttled_returns_429(self, client, limiter):
        limiter.is_allowed = AsyncMock(return_value=(False, 0, 300))

        response = await client.post("/auth/send-otp", json={"phone": "9000000001"})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "300"

    @pytest.mark.asyncio
    async def test_invalid_phone(self, client):
        response = await client.post("/auth/send-otp", json={"phone": "not-a-phone"})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"

    @pytest.mark.asyncio
    async def test_code_must_be_six_digit_string(self, client):
        response = await client.post(
            "/auth/verify-otp", json={"phone": "9000000001", "otp": "4521"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client):
        assert (await client.get("/auth/me")).status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh(self, client, session_factory):
        user = await make_user(session_factory, "9000000001")

        response = await client.post("/auth/refresh", headers=auth_header(user))

        assert response.status_code == 200
        assert response.json()["token"]


class TestBookingRoutes:
    """Test /bookings."""

    @pytest.mark.asyncio
    async def test_create_as_guest(self, client, dispatcher):
        response = await client.post("/bookings", json=BOOKING_PAYLOAD)

        assert response.status_code == 201
        booking = response.json()["booking"]
        assert booking["status"] == "pending"
        assert booking["user_id"] is None
        assert booking["preferred_date"] == "2026-11-02"
        dispatcher.spawn.assert_called_once()

    @pytest.mark.asyncio
    async def test_create_as_customer(self, client, session_factory):
        user = await make_user(session_factory, "9000000001")

        response = await client.post("/bookings", json=BOOKING_PAYLOAD, headers=auth_header(user))

        assert response.status_code == 201
        assert response.json()["booking"]["user_id"] == str(user.id)

    @pytest.mark.asyncio
    async def test_create_validation(self, client, dispatcher):
        response = await client.post("/bookings", json={**BOOKING_PAYLOAD, "address": "short"})

        assert response.status_code == 422
        dispatcher.spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_requires_admin(self, client, session_factory):
        customer = await make_user(session_factory, "9000000001")
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        await client.post("/bookings", json=BOOKING_PAYLOAD)

        assert (await client.get("/bookings")).status_code == 401
        assert (await client.get("/bookings", headers=auth_header(customer))).status_code == 403

        response = await client.get("/bookings", headers=auth_header(admin))
        assert response.status_code == 200
        assert len(response.json()["bookings"]) == 1

    @pytest.mark.asyncio
    async def test_my_bookings(self, client, session_factory):
        customer = await make_user(session_factory, "9000000001")
        await client.post("/bookings", json=BOOKING_PAYLOAD)
        await client.post("/bookings", json={**BOOKING_PAYLOAD, "phone": "9000000002"})

        response = await client.get("/bookings/mine", headers=auth_header(customer))

        assert response.status_code == 200
        assert [b["phone"] for b in response.json()["bookings"]] == ["9000000001"]

    @pytest.mark.asyncio
    async def test_get_booking_access(self, client, session_factory):
        owner = await make_user(session_factory, "9000000001")
        other = await make_user(session_factory, "9000000002")
        created = await client.post("/bookings", json=BOOKING_PAYLOAD, headers=auth_header(owner))
        booking_id = created.json()["booking"]["id"]

        assert (await client.get(f"/bookings/{booking_id}", headers=auth_header(owner))).status_code == 200
        assert (await client.get(f"/bookings/{booking_id}", headers=auth_header(other))).status_code == 403

    @pytest.mark.asyncio
    async def test_get_missing(self, client, session_factory):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)

        response = await client.get(
            "/bookings/00000000-0000-0000-0000-000000000000", headers=auth_header(admin)
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_admin_status_change(self, client, session_factory, dispatcher):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        created = await client.post("/bookings", json=BOOKING_PAYLOAD)
        booking_id = created.json()["booking"]["id"]

        response = await client.patch(
            f"/bookings/{booking_id}/status",
            json={"status": "confirmed"},
            headers=auth_header(admin),
        )

        assert response.status_code == 200
        assert response.json()["booking"]["status"] == "confirmed"
        dispatcher.spawn_status_change.assert_called_once()

    @pytest.mark.asyncio
    async def test_admin_update_and_assign(self, client, session_factory):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        created = await client.post("/bookings", json=BOOKING_PAYLOAD)
        booking_id = created.json()["booking"]["id"]

        updated = await client.put(
            f"/bookings/{booking_id}",
            json={"preferred_time": "04:00 PM"},
            headers=auth_header(admin),
        )
        assigned = await client.patch(
            f"/bookings/{booking_id}/assign-staff",
            json={"staff_id": "staff-7"},
            headers=auth_header(admin),
        )

        assert updated.json()["booking"]["preferred_time"] == "04:00 PM"
        assert updated.json()["booking"]["customer_name"] == "Asha Patnaik"
        assert assigned.json()["booking"]["assigned_staff_id"] == "staff-7"

    @pytest.mark.asyncio
    async def test_update_rejects_null_required_field(self, client, session_factory):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        created = await client.post("/bookings", json=BOOKING_PAYLOAD)
        booking_id = created.json()["booking"]["id"]

        response = await client.put(
            f"/bookings/{booking_id}",
            json={"customer_name": None},
            headers=auth_header(admin),
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "customer_name"]

        response = await client.get(f"/bookings/{booking_id}", headers=auth_header(admin))
        assert response.json()["booking"]["customer_name"] == "Asha Patnaik"

    @pytest.mark.asyncio
    async def test_update_may_clear_optional_field(self, client, session_factory):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        created = await client.post("/bookings", json=BOOKING_PAYLOAD)
        booking_id = created.json()["booking"]["id"]

        response = await client.put(
            f"/bookings/{booking_id}",
            json={"email": None},
            headers=auth_header(admin),
        )

        assert response.status_code == 200
        assert response.json()["booking"]["email"] is None

    @pytest.mark.asyncio
    async def test_admin_delete(self, client, session_factory):
        admin = await make_user(session_factory, "9999999999", UserRole.ADMIN)
        created = await client.post("/bookings", json=BOOKING_PAYLOAD)
        booking_id = created.json()["booking"]["id"]

        response = await client.delete(f"/bookings/{booking_id}", headers=auth_header(admin))
        assert response.status_code == 204

        response = await client.get(f"/bookings/{booking_id}", headers=auth_header(admin))
        assert response.status_code == 404


class TestHealthAndRoot:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready_without_database(self, client):
        with patch("app.api.routes.health.check_db_health", AsyncMock(return_value=False)), \
             patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=False)):
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"database": "failed", "redis": "degraded"}

    @pytest.mark.asyncio
    async def test_ready_without_redis(self, client):
        with patch("app.api.routes.health.check_db_health", AsyncMock(return_value=True)), \
             patch("app.api.routes.health.check_redis_health", AsyncMock(return_value=False)):
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["name"] == settings.app_name


class TestWebSocket:

    def test_connect_and_ping(self):
        client = TestClient(app)

        with client.websocket_connect("/ws") as websocket:
            welcome = websocket.receive_json()
            assert welcome["type"] == "connected"

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}
