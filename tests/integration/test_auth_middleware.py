# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for authentication middleware and role dependencies.

Tests the middleware components in isolation from database.
"""

from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from pydantic import SecretStr

from coursedesk.api.dependencies import actor_context, client_ip, require_admin, require_super_admin
from coursedesk.api.middleware.auth import AuthMiddleware, CurrentUser, get_current_user
from coursedesk.domains.auth.jwt import JWTManager


@pytest.fixture
def jwt_settings() -> MagicMock:
    """Create mock JWT settings."""
    settings = MagicMock()
    settings.secret_key = SecretStr("test-secret-key-for-jwt-testing")
    settings.algorithm = "HS256"
    settings.access_token_expire_minutes = 30
    settings.cookie_name = "auth-token"
    settings.leeway_seconds = 0
    return settings


@pytest.fixture
def jwt_manager(jwt_settings: MagicMock) -> JWTManager:
    """Create JWT manager with test settings."""
    return JWTManager(jwt_settings)


@pytest.fixture
def app(jwt_settings: MagicMock) -> FastAPI:
    """Create a bare app behind the auth middleware."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware, jwt_settings=jwt_settings)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/v1/whoami")
    async def whoami(request: Request) -> dict:
        user = get_current_user(request)
        return {
            "user_id": user.id if user else None,
            "auth_error": request.state.auth_error,
        }

    @app.get("/api/v1/staff")
    async def staff(request: Request, user: CurrentUser = Depends(require_admin)) -> dict:
        actor = actor_context(request, user)
        return {"actor": actor.user_id, "ip": actor.ip_address}

    @app.get("/api/v1/root")
    async def root(user: CurrentUser = Depends(require_super_admin)) -> dict:
        return {"role": user.role}

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)


def _bearer(jwt_manager: JWTManager, role: str, user_id: str | None = None, **kwargs) -> dict[str, str]:
    token = jwt_manager.create_access_token(user_id or str(uuid4()), None, role, **kwargs)
    return {"Authorization": f"Bearer {token}"}


class TestAuthMiddleware:
    """Tests for AuthMiddleware."""

    def test_public_path_bypasses_auth(self, client: TestClient) -> None:
        """Test that public paths don't require authentication."""
        response = client.get("/health")

        assert response.status_code == 200
        assert "X-Request-ID" not in response.headers

    def test_valid_token_sets_user(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that valid token sets request.state.user."""
        user_id = str(uuid4())

        response = client.get("/api/v1/whoami", headers=_bearer(jwt_manager, "ADMIN", user_id))

        assert response.status_code == 200
        assert response.json()["user_id"] == user_id

    def test_no_token_sets_user_none(self, client: TestClient) -> None:
        """Test that missing token sets request.state.user to None."""
        response = client.get("/api/v1/whoami")

        assert response.status_code == 200
        assert response.json() == {"user_id": None, "auth_error": None}

    def test_invalid_token_sets_user_none(self, client: TestClient) -> None:
        """Test that invalid token sets request.state.user to None."""
        response = client.get("/api/v1/whoami", headers={"Authorization": "Bearer invalid-token"})

        assert response.json() == {"user_id": None, "auth_error": "Invalid token"}

    def test_expired_token_reported(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that an expired token is remembered for the 401 message."""
        headers = _bearer(jwt_manager, "ADMIN", expires_in=timedelta(minutes=-1))

        response = client.get("/api/v1/whoami", headers=headers)

        assert response.json()["auth_error"] == "Token has expired"

    def test_request_id_echoed(self, client: TestClient) -> None:
        """Test that a caller supplied request id is returned."""
        response = client.get("/api/v1/whoami", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"


class TestRoleDependencies:
    """Tests for require_admin and require_super_admin."""

    def test_admin_allowed(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that ADMIN passes the staff check and its client address is taken."""
        headers = {**_bearer(jwt_manager, "ADMIN", "admin-1"), "X-Real-IP": "192.0.2.10"}

        response = client.get("/api/v1/staff", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"actor": "admin-1", "ip": "192.0.2.10"}

    def test_unauthenticated(self, client: TestClient) -> None:
        """Test that missing credentials get 401."""
        response = client.get("/api/v1/staff")

        assert response.status_code == 401

    def test_other_role_forbidden(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that non-staff roles get 403."""
        response = client.get("/api/v1/staff", headers=_bearer(jwt_manager, "PARTICIPANT"))

        assert response.status_code == 403

    def test_super_admin_only(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that ADMIN is refused where SUPER_ADMIN is required."""
        admin = client.get("/api/v1/root", headers=_bearer(jwt_manager, "ADMIN"))
        root = client.get("/api/v1/root", headers=_bearer(jwt_manager, "SUPER_ADMIN"))

        assert admin.status_code == 403
        assert root.status_code == 200
        assert root.json() == {"role": "SUPER_ADMIN"}


class TestCurrentUser:
    """Tests for CurrentUser class."""

    @pytest.mark.parametrize(
        ("role", "is_admin", "is_super_admin"),
        [
            ("ADMIN", True, False),
            ("SUPER_ADMIN", True, True),
            ("PARTICIPANT", False, False),
        ],
    )
    def test_role_flags(self, jwt_manager: JWTManager, role: str, is_admin: bool, is_super_admin: bool) -> None:
        """Test staff and super admin flags per role."""
        payload = jwt_manager.decode_token(jwt_manager.create_access_token(str(uuid4()), None, role))
        user = CurrentUser(payload)

        assert user.is_admin is is_admin
        assert user.is_super_admin is is_super_admin

    def test_has_any_role(self, jwt_manager: JWTManager) -> None:
        """Test has_any_role method."""
        payload = jwt_manager.decode_token(jwt_manager.create_access_token(str(uuid4()), None, "ADMIN"))
        user = CurrentUser(payload)

        assert user.has_any_role("ADMIN", "SUPER_ADMIN") is True
        assert user.has_any_role("SUPER_ADMIN") is False


class TestClientIp:
    """Tests for client address resolution."""

    def _request(self, headers: dict[str, str]) -> MagicMock:
        request = MagicMock()
        request.headers = headers
        request.client.host = "127.0.0.1"
        return request

    def test_forwarded_for_first_hop(self) -> None:
        """Test that the first proxy hop is the client."""
        assert client_ip(self._request({"X-Forwarded-For": "203.0.113.9, 10.0.0.2"})) == "203.0.113.9"

    def test_real_ip(self) -> None:
        """Test the X-Real-IP fallback."""
        assert client_ip(self._request({"X-Real-IP": " 203.0.113.10 "})) == "203.0.113.10"

    def test_socket_address(self) -> None:
        """Test falling back to the connection peer."""
        assert client_ip(self._request({})) == "127.0.0.1"
