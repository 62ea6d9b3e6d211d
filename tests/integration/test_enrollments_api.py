# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for Enrollments API endpoints.

The full application is served over ASGI with its request sessions bound
to the in-memory SQLite store.
"""

import re
from datetime import timedelta
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.exc import OperationalError

from coursedesk.api.app import create_app
from coursedesk.api.dependencies import get_db, get_enrollment_ledger, get_enrollment_service
from coursedesk.core.config import clear_settings_cache
from coursedesk.core.config.settings import JWTSettings
from coursedesk.domains.auth.jwt import JWTManager
from coursedesk.domains.enrollment import AllocationExhaustedError, TransactionTimeoutError
from coursedesk.infrastructure.database.connection import DatabaseError
from coursedesk.infrastructure.events import EventTypes

SECRET = "test-secret-key-for-jwt-testing"
CODE = re.compile(r"^INS-\d{4}-\d{5}$")


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create JWT manager sharing the application's secret."""
    return JWTManager(JWTSettings(secret_key=SECRET))


@pytest.fixture
def admin_headers(jwt_manager: JWTManager) -> dict[str, str]:
    """Authorization header of an ADMIN."""
    token = jwt_manager.create_access_token("admin-1", "admin@coursedesk.pe", "ADMIN")
    return {"Authorization": f"Bearer {token}", "X-Forwarded-For": "198.51.100.4, 10.0.0.1"}


@pytest.fixture
def super_admin_headers(jwt_manager: JWTManager) -> dict[str, str]:
    """Authorization header of a SUPER_ADMIN."""
    token = jwt_manager.create_access_token("root-1", "root@coursedesk.pe", "SUPER_ADMIN")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(monkeypatch, session_factory, audit_sink) -> FastAPI:
    """Create the application bound to the test store."""
    monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    clear_settings_cache()

    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.audit_sink = audit_sink
    yield app
    clear_settings_cache()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class TestEnrollmentsAPIRouting:
    """Tests for enrollments API routing."""

    def test_routes_registered(self, app: FastAPI) -> None:
        """Test that enrollment routes are registered."""
        routes = set(app.openapi()["paths"])

        assert "/api/v1/enrollments" in routes
        assert "/api/v1/enrollments/{enrollment_id}" in routes
        assert "/health" in routes
        assert "/ready" in routes


class TestEnrollmentsAPIAuth:
    """Tests for authentication and role checks."""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client) -> None:
        """Test that requests without a token get 401."""
        response = await client.get("/api/v1/enrollments")

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Not authenticated"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_expired_token(self, client, jwt_manager) -> None:
        """Test that an expired token is reported as such."""
        token = jwt_manager.create_access_token("admin-1", None, "ADMIN", expires_in=timedelta(minutes=-5))

        response = await client.get("/api/v1/enrollments", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"] == "Token has expired"

    @pytest.mark.asyncio
    async def test_non_staff_forbidden(self, client, jwt_manager) -> None:
        """Test that roles outside the back office get 403."""
        token = jwt_manager.create_access_token("u-1", None, "INSTRUCTOR")

        response = await client.get("/api/v1/enrollments", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_session_cookie_accepted(self, client, jwt_manager) -> None:
        """Test that the token can come from the session cookie."""
        token = jwt_manager.create_access_token("admin-1", None, "ADMIN")
        client.cookies.set("auth-token", token)

        response = await client.get("/api/v1/enrollments")

        assert response.status_code == 200
        assert "X-Request-ID" in response.headers


class TestAdmitEndpoint:
    """Tests for POST /api/v1/enrollments."""

    @pytest.mark.asyncio
    async def test_admit(self, client, admin_headers, audit_sink, course_factory, participant_factory) -> None:
        """Test successful admission."""
        course = await course_factory(max_seats=2)
        participant = await participant_factory()

        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={
                "participantId": participant.id,
                "courseId": course.id,
                "paymentState": "PAGADO",
                "amountPaid": 150,
                "paymentMethod": "YAPE",
                "paymentDate": "2025-03-09",
            },
        )

        assert response.status_code == 201
        body = response.json()
        enrollment = body["enrollment"]
        assert body["success"] is True
        assert CODE.match(enrollment["code"])
        assert body["message"] == f"Enrollment {enrollment['code']} created"
        assert enrollment["paymentState"] == "PAID"
        assert enrollment["amountPaid"] == 150.0
        assert enrollment["registrarId"] == "admin-1"
        assert enrollment["course"]["filledSeats"] == 1
        assert enrollment["participant"]["documentType"] == "DNI"

        assert audit_sink.actions == [EventTypes.Enrollment.ADMITTED]
        assert audit_sink.records[0].ip_address == "198.51.100.4"

    @pytest.mark.asyncio
    async def test_validation_error(self, client, admin_headers) -> None:
        """Test that malformed bodies get 400 with per-field details."""
        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"courseId": "c-1", "amountPaid": -5},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["reason"] == "VALIDATION_FAILED"
        fields = {detail["field"] for detail in body["details"]}
        assert fields == {"participantId", "amountPaid"}

    @pytest.mark.asyncio
    async def test_unknown_participant(self, client, admin_headers, course_factory) -> None:
        """Test that an unknown participant gets 404 naming the field."""
        course = await course_factory()

        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": "missing", "courseId": course.id},
        )

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "Participant not found",
            "reason": "PARTICIPANT_NOT_FOUND",
            "field": "participantId",
        }

    @pytest.mark.asyncio
    async def test_unknown_course(self, client, admin_headers, participant_factory) -> None:
        """Test that an unknown course gets 404 naming the field."""
        participant = await participant_factory()

        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": participant.id, "courseId": "missing"},
        )

        assert response.status_code == 404
        assert response.json()["field"] == "courseId"

    @pytest.mark.asyncio
    async def test_course_full(self, client, admin_headers, course_factory, participant_factory) -> None:
        """Test that a full course gets 400 with its seat numbers."""
        course = await course_factory(max_seats=1)
        first = await participant_factory()
        second = await participant_factory()
        await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": first.id, "courseId": course.id},
        )

        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": second.id, "courseId": course.id},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["reason"] == "COURSE_FULL"
        assert body["maxSeats"] == 1
        assert body["filledSeats"] == 1

    @pytest.mark.asyncio
    async def test_already_enrolled(self, client, admin_headers, course_factory, participant_factory) -> None:
        """Test that a repeated pair gets 400."""
        course = await course_factory()
        participant = await participant_factory()
        payload = {"participantId": participant.id, "courseId": course.id}
        await client.post("/api/v1/enrollments", headers=admin_headers, json=payload)

        response = await client.post("/api/v1/enrollments", headers=admin_headers, json=payload)

        assert response.status_code == 400
        assert response.json()["reason"] == "ALREADY_ENROLLED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "reason"),
        [
            (TransactionTimeoutError("lock timeout"), "TRANSACTION_TIMEOUT"),
            (AllocationExhaustedError("5 consecutive code collisions"), "ALLOCATION_EXHAUSTED"),
        ],
    )
    async def test_retryable_failures(self, app, client, admin_headers, error, reason) -> None:
        """Test that retryable failures get 503 and Retry-After."""

        class _FailingLedger:
            async def admit(self, request, actor):
                raise error

        app.dependency_overrides[get_enrollment_ledger] = lambda: _FailingLedger()

        response = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": "p-1", "courseId": "c-1"},
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        body = response.json()
        assert body["reason"] == reason
        assert body["retryable"] is True


class TestReadEndpoints:
    """Tests for listing and fetching enrollments."""

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, admin_headers, course_factory, participant_factory) -> None:
        """Test listing with course and payment state filters."""
        first_course = await course_factory(title="Excel Básico")
        second_course = await course_factory(title="Oratoria")
        participant = await participant_factory()
        await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": participant.id, "courseId": first_course.id, "paymentState": "NO_PAGADO"},
        )
        await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": participant.id, "courseId": second_course.id},
        )

        everything = await client.get("/api/v1/enrollments", headers=admin_headers)
        by_course = await client.get(
            "/api/v1/enrollments", headers=admin_headers, params={"courseId": second_course.id}
        )
        unpaid = await client.get(
            "/api/v1/enrollments", headers=admin_headers, params={"paymentState": "NO_PAGADO"}
        )

        assert everything.json()["total"] == 2
        assert [e["course"]["title"] for e in by_course.json()["enrollments"]] == ["Oratoria"]
        assert [e["paymentState"] for e in unpaid.json()["enrollments"]] == ["UNPAID"]

    @pytest.mark.asyncio
    async def test_list_invalid_payment_state(self, client, admin_headers) -> None:
        """Test that an unknown payment state filter gets 400."""
        response = await client.get(
            "/api/v1/enrollments", headers=admin_headers, params={"paymentState": "REFUNDED"}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("driver_message", "status_code", "reason"),
        [
            ("disk I/O error", 500, "STORAGE_FAILURE"),
            ("database is locked", 503, "TRANSACTION_TIMEOUT"),
        ],
    )
    async def test_list_store_failure(
        self,
        app,
        client,
        admin_headers,
        driver_message,
        status_code,
        reason,
    ) -> None:
        """Test that a failing read is rendered as the JSON failure envelope."""

        class _FailingService:
            async def list_enrollments(self, **filters):
                error = OperationalError("SELECT enrollments", {}, Exception(driver_message))
                raise DatabaseError("Database operation failed", error)

        app.dependency_overrides[get_enrollment_service] = lambda: _FailingService()

        response = await client.get("/api/v1/enrollments", headers=admin_headers)

        assert response.status_code == status_code
        assert response.headers["content-type"] == "application/json"
        body = response.json()
        assert body["success"] is False
        assert body["reason"] == reason
        assert "SELECT" not in body["error"]

    @pytest.mark.asyncio
    async def test_get_enrollment(self, client, admin_headers, course_factory, participant_factory) -> None:
        """Test fetching one enrollment, and a missing one."""
        course = await course_factory()
        participant = await participant_factory()
        created = await client.post(
            "/api/v1/enrollments",
            headers=admin_headers,
            json={"participantId": participant.id, "courseId": course.id},
        )
        enrollment_id = created.json()["enrollment"]["id"]

        found = await client.get(f"/api/v1/enrollments/{enrollment_id}", headers=admin_headers)
        missing = await client.get("/api/v1/enrollments/does-not-exist", headers=admin_headers)

        assert found.status_code == 200
        assert found.json()["enrollment"]["id"] == enrollment_id
        assert missing.status_code == 404
        assert missing.json()["reason"] == "ENROLLMENT_NOT_FOUND"


class TestUpdateAndRemoveEndpoints:
    """Tests for PUT and DELETE."""

    @pytest.fixture
    def admit(self, client, admin_headers, course_factory, participant_factory):
        """Admit a fresh participant and return the created enrollment."""

        async def _admit(max_seats: int | None = 5) -> dict:
            course = await course_factory(max_seats=max_seats)
            participant = await participant_factory()
            response = await client.post(
                "/api/v1/enrollments",
                headers=admin_headers,
                json={"participantId": participant.id, "courseId": course.id},
            )
            return response.json()["enrollment"]

        return _admit

    @pytest.mark.asyncio
    async def test_update(self, client, admin_headers, admit) -> None:
        """Test recording a payment."""
        enrollment = await admit()

        response = await client.put(
            f"/api/v1/enrollments/{enrollment['id']}",
            headers=admin_headers,
            json={"paymentState": "PAGADO", "amountPaid": 180.5, "attended": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Enrollment updated"
        assert body["enrollment"]["paymentState"] == "PAID"
        assert body["enrollment"]["amountPaid"] == 180.5
        assert body["enrollment"]["attended"] is True
        assert body["enrollment"]["code"] == enrollment["code"]

    @pytest.mark.asyncio
    async def test_update_rejects_null_state(self, client, admin_headers, admit) -> None:
        """Test that payment state cannot be nulled."""
        enrollment = await admit()

        response = await client.put(
            f"/api/v1/enrollments/{enrollment['id']}",
            headers=admin_headers,
            json={"paymentState": None},
        )

        assert response.status_code == 400
        assert response.json()["reason"] == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_update_missing(self, client, admin_headers) -> None:
        """Test updating an unknown enrollment."""
        response = await client.put(
            "/api/v1/enrollments/does-not-exist",
            headers=admin_headers,
            json={"attended": True},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_requires_super_admin(self, client, admin_headers, admit) -> None:
        """Test that ADMIN cannot remove enrollments."""
        enrollment = await admit()

        response = await client.delete(f"/api/v1/enrollments/{enrollment['id']}", headers=admin_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_remove(self, client, super_admin_headers, admit) -> None:
        """Test removal and a repeated removal."""
        enrollment = await admit()
        url = f"/api/v1/enrollments/{enrollment['id']}"

        first = await client.delete(url, headers=super_admin_headers)
        second = await client.delete(url, headers=super_admin_headers)

        assert first.status_code == 200
        assert first.json() == {
            "success": True,
            "message": f"Enrollment {enrollment['code']} removed",
            "code": enrollment["code"],
            "courseId": enrollment["courseId"],
        }
        assert second.status_code == 404


class TestHealthEndpoints:
    """Tests for health endpoints without an initialized store."""

    @pytest.mark.asyncio
    async def test_health_degraded(self, client) -> None:
        """Test that liveness reports a degraded database."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_ready_unavailable(self, client) -> None:
        """Test that readiness fails while the database is down."""
        response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False
