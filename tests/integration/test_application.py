"""
Integration tests for the assembled application.

Runs the real app (lifespan included) on the in-memory backend with
HTTP Basic admin credentials and the cron secret taken from the environment.
"""

import pytest
from fastapi.testclient import TestClient

from tests.support import (
    CRON_SECRET,
    PAYMENT_ADMIN,
    SUPER_ADMIN,
    basic_auth_header,
    cron_header,
)

pytestmark = pytest.mark.integration


def register(client: TestClient, email: str = "ada@example.com") -> str:
    response = client.post("/v1/register", json={"email": email, "fullName": "Ada Lovelace"})
    assert response.status_code == 201
    return response.json()["id"]


class TestHealth:
    """Tests for GET /health."""

    def test_health_memory_backend(self, app_client: TestClient) -> None:
        response = app_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "storage": "memory"}


class TestAdminAuthentication:
    """Tests for HTTP Basic admin authentication."""

    def test_missing_credentials_returns_401(self, app_client: TestClient) -> None:
        registration_id = register(app_client)

        response = app_client.get(f"/v1/registrations/{registration_id}")

        assert response.status_code == 401

    def test_wrong_password_returns_401(self, app_client: TestClient) -> None:
        registration_id = register(app_client)

        response = app_client.get(
            f"/v1/registrations/{registration_id}",
            headers=basic_auth_header(SUPER_ADMIN, "wrong-password"),
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        assert response.headers["WWW-Authenticate"] == "Basic"

    def test_unknown_admin_returns_401(self, app_client: TestClient) -> None:
        response = app_client.get(
            "/v1/registrations/anything",
            headers=basic_auth_header("nobody@example.com"),
        )
        assert response.status_code == 401

    def test_email_is_case_insensitive(self, app_client: TestClient) -> None:
        registration_id = register(app_client)

        response = app_client.get(
            f"/v1/registrations/{registration_id}",
            headers=basic_auth_header(SUPER_ADMIN.upper()),
        )

        assert response.status_code == 200

    def test_valid_admin_can_read(self, app_client: TestClient) -> None:
        registration_id = register(app_client)

        response = app_client.get(
            f"/v1/registrations/{registration_id}", headers=basic_auth_header(SUPER_ADMIN)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "waiting_for_review"

    def test_dimension_admin_scope(self, app_client: TestClient) -> None:
        registration_id = register(app_client)
        headers = basic_auth_header(PAYMENT_ADMIN)

        allowed = app_client.post(
            f"/v1/registrations/{registration_id}/mark-pass",
            json={"dimension": "payment"},
            headers=headers,
        )
        denied = app_client.post(
            f"/v1/registrations/{registration_id}/mark-pass",
            json={"dimension": "tcc"},
            headers=headers,
        )

        assert allowed.status_code == 200
        assert denied.status_code == 403


class TestCronEndpoints:
    """Tests for the dispatch endpoints on the real app."""

    def test_dispatch_requires_secret(self, app_client: TestClient) -> None:
        assert app_client.get("/v1/dispatch-emails").status_code == 401

    def test_dispatch_is_not_admin_authenticated(self, app_client: TestClient) -> None:
        response = app_client.get(
            "/v1/dispatch-emails", headers=basic_auth_header(SUPER_ADMIN)
        )
        assert response.status_code == 401

    def test_dispatch_sends_confirmation(self, app_client: TestClient) -> None:
        register(app_client)

        response = app_client.get("/v1/dispatch-emails", headers=cron_header())

        assert response.status_code == 200
        assert response.json()["sent"] == 1
        assert response.json()["remaining"] == 0

    def test_x_cron_secret_header(self, app_client: TestClient) -> None:
        response = app_client.post("/v1/dispatch-emails", headers={"X-Cron-Secret": CRON_SECRET})
        assert response.status_code == 200

    def test_outbox_stats_requires_admin(self, app_client: TestClient) -> None:
        register(app_client)

        anonymous = app_client.get("/v1/email-outbox/stats")
        admin = app_client.get("/v1/email-outbox/stats", headers=basic_auth_header(PAYMENT_ADMIN))

        assert anonymous.status_code == 401
        assert admin.status_code == 200
        assert admin.json()["counts"]["pending"] == 1
