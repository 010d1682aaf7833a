"""
Unit tests for API v1 review routes.

Tests endpoint responses with in-memory state and overridden
authentication and settings dependencies.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.repository.memory import (
    MemoryDatabase,
    MemoryOutboxRepository,
    MemoryReviewRepository,
)
from src.api.dependencies import get_current_admin
from src.api.v1 import router
from src.api.v1.routes import to_http_exception
from src.config.settings import Settings, get_settings
from src.domain.exceptions import (
    Forbidden,
    InvalidDimension,
    InvalidTransition,
    NotReady,
    RegistrationNotFound,
    StorageError,
    TokenInvalid,
)
from tests.support import PAYMENT_ADMIN, SUPER_ADMIN, RecordingProvider, token_from


class Actor:
    """Mutable principal returned by the overridden auth dependency."""

    email = SUPER_ADMIN


@pytest.fixture
def actor() -> Actor:
    return Actor()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_base_url="https://review.example.com",
        admin_super_emails=SUPER_ADMIN,
        admin_payment_emails=PAYMENT_ADMIN,
    )


@pytest.fixture
def app(settings: Settings, actor: Actor) -> FastAPI:
    """Create test FastAPI application."""
    test_app = FastAPI()
    test_app.include_router(router, prefix="/v1")

    memory = MemoryDatabase()
    test_app.state.db = memory
    test_app.state.review_repository = MemoryReviewRepository(memory)
    test_app.state.outbox_repository = MemoryOutboxRepository(memory)
    test_app.state.email_provider = RecordingProvider()

    test_app.dependency_overrides[get_settings] = lambda: settings
    test_app.dependency_overrides[get_current_admin] = lambda: actor.email
    return test_app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client for the application."""
    return TestClient(app)


@pytest.fixture
def registration_id(client: TestClient) -> str:
    response = client.post("/v1/register", json={"email": "ada@example.com", "fullName": "Ada"})
    return response.json()["id"]


class TestRegisterEndpoint:
    """Tests for POST /v1/register endpoint."""

    def test_register_returns_201(self, client: TestClient) -> None:
        response = client.post(
            "/v1/register", json={"email": "Ada@Example.com", "full_name": "Ada Lovelace"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ok"] is True
        assert data["status"] == "waiting_for_review"
        assert data["id"]

    def test_register_invalid_email_returns_422(self, client: TestClient) -> None:
        response = client.post("/v1/register", json={"email": "not-an-email", "fullName": "Ada"})
        assert response.status_code == 422

    def test_register_missing_name_returns_422(self, client: TestClient) -> None:
        response = client.post("/v1/register", json={"email": "ada@example.com"})
        assert response.status_code == 422


class TestGetRegistration:
    """Tests for GET /v1/registrations/{id}."""

    def test_snapshot(self, client: TestClient, registration_id: str) -> None:
        response = client.get(f"/v1/registrations/{registration_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "ada@example.com"
        assert data["checklist"] == {"payment": "pending", "profile": "pending", "tcc": "pending"}

    def test_unknown_returns_404(self, client: TestClient) -> None:
        response = client.get("/v1/registrations/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Registration not found"

    def test_non_admin_returns_403(self, client: TestClient, actor: Actor, registration_id: str) -> None:
        actor.email = "stranger@example.com"
        response = client.get(f"/v1/registrations/{registration_id}")
        assert response.status_code == 403


class TestRequestUpdateEndpoint:
    """Tests for POST /v1/registrations/{id}/request-update."""

    def test_request_update_returns_201(self, client: TestClient, registration_id: str) -> None:
        response = client.post(
            f"/v1/registrations/{registration_id}/request-update",
            json={"dimension": "payment", "notes": "Please re-upload"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data == {
            "ok": True,
            "id": registration_id,
            "dimension": "payment",
            "status": "waiting_for_update",
            "message": "Update requested for payment dimension",
        }

    def test_request_update_queues_email(
        self, client: TestClient, app: FastAPI, registration_id: str
    ) -> None:
        client.post(
            f"/v1/registrations/{registration_id}/request-update", json={"dimension": "tcc"}
        )

        templates = [e.template for e in app.state.outbox_repository.list_pending()]
        assert templates.count("update-tcc") == 1
        assert len(app.state.db.tokens) == 1

    def test_invalid_dimension_returns_400(self, client: TestClient, registration_id: str) -> None:
        response = client.post(
            f"/v1/registrations/{registration_id}/request-update", json={"dimension": "shoe"}
        )
        assert response.status_code == 400
        assert "Invalid dimension" in response.json()["detail"]

    def test_wrong_reviewer_returns_403(
        self, client: TestClient, actor: Actor, registration_id: str
    ) -> None:
        actor.email = PAYMENT_ADMIN
        response = client.post(
            f"/v1/registrations/{registration_id}/request-update", json={"dimension": "profile"}
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "forbidden"

    def test_unknown_registration_returns_404(self, client: TestClient) -> None:
        response = client.post(
            "/v1/registrations/missing/request-update", json={"dimension": "payment"}
        )
        assert response.status_code == 404

    def test_closed_registration_returns_409(self, client: TestClient, registration_id: str) -> None:
        client.post(f"/v1/registrations/{registration_id}/reject")
        response = client.post(
            f"/v1/registrations/{registration_id}/request-update", json={"dimension": "payment"}
        )
        assert response.status_code == 409


class TestMarkPassEndpoint:
    """Tests for POST /v1/registrations/{id}/mark-pass."""

    @pytest.mark.parametrize("dimension", ["payment", "profile", "tcc"])
    def test_mark_pass_twice(self, client: TestClient, registration_id: str, dimension: str) -> None:
        url = f"/v1/registrations/{registration_id}/mark-pass"

        for _ in range(2):
            response = client.post(url, json={"dimension": dimension})
            assert response.status_code == 200
            data = response.json()
            assert data["ok"] is True
            assert data["dimension"] == dimension

    def test_third_pass_reports_all_passed(self, client: TestClient, registration_id: str) -> None:
        url = f"/v1/registrations/{registration_id}/mark-pass"

        first = client.post(url, json={"dimension": "payment"}).json()
        second = client.post(url, json={"dimension": "profile"}).json()
        third = client.post(url, json={"dimension": "tcc"}).json()

        assert first["all_passed"] is False
        assert second["all_passed"] is False
        assert third["all_passed"] is True
        assert third["status"] == "approved"
        assert third["message"] == "Dimension tcc marked as passed - Registration auto-approved"

    @pytest.mark.parametrize(
        "body", [{"dimension": "invalid_dimension"}, {}, {"dimension": None}, {"dimension": 3}]
    )
    def test_invalid_or_missing_dimension_returns_400(
        self, client: TestClient, registration_id: str, body: dict
    ) -> None:
        response = client.post(f"/v1/registrations/{registration_id}/mark-pass", json=body)

        assert response.status_code == 400
        assert "Invalid dimension" in response.json()["detail"]

    def test_no_body_returns_400(self, client: TestClient, registration_id: str) -> None:
        response = client.post(f"/v1/registrations/{registration_id}/mark-pass")
        assert response.status_code == 400


class TestApproveRejectEndpoints:
    """Tests for approve and reject."""

    def test_strict_approve_returns_400_not_ready(self, client: TestClient, registration_id: str) -> None:
        response = client.post(f"/v1/registrations/{registration_id}/approve")

        assert response.status_code == 400
        assert response.json()["detail"] == "not ready"

    def test_lenient_approve(self, client: TestClient, settings: Settings, registration_id: str) -> None:
        settings.lenient_approval = True

        response = client.post(
            f"/v1/registrations/{registration_id}/approve", json={"badgeUrl": "https://cdn/b.png"}
        )

        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert response.json()["message"] == "approved"

    def test_approve_after_all_passed(self, client: TestClient, registration_id: str) -> None:
        for dimension in ("payment", "profile", "tcc"):
            client.post(f"/v1/registrations/{registration_id}/mark-pass", json={"dimension": dimension})

        response = client.post(f"/v1/registrations/{registration_id}/approve")

        assert response.status_code == 200
        assert response.json()["status"] == "approved"

    def test_dimension_admin_cannot_approve(
        self, client: TestClient, actor: Actor, registration_id: str
    ) -> None:
        actor.email = PAYMENT_ADMIN
        response = client.post(f"/v1/registrations/{registration_id}/approve")
        assert response.status_code == 403

    def test_reject(self, client: TestClient, registration_id: str) -> None:
        response = client.post(
            f"/v1/registrations/{registration_id}/reject", json={"reason": "Duplicate"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["message"] == "rejected"

    def test_reject_approved_returns_409(
        self, client: TestClient, settings: Settings, registration_id: str
    ) -> None:
        settings.lenient_approval = True
        client.post(f"/v1/registrations/{registration_id}/approve")

        response = client.post(f"/v1/registrations/{registration_id}/reject")
        assert response.status_code == 409


class TestUpdateEndpoints:
    """Tests for GET/POST /v1/update."""

    def _token(self, client: TestClient, app: FastAPI, registration_id: str) -> str:
        client.post(
            f"/v1/registrations/{registration_id}/request-update", json={"dimension": "profile"}
        )
        entry = next(
            e for e in app.state.outbox_repository.list_pending() if e.template == "update-profile"
        )
        return token_from(entry)

    def test_check_valid_token(self, client: TestClient, app: FastAPI, registration_id: str) -> None:
        token = self._token(client, app, registration_id)

        response = client.get("/v1/update", params={"token": token})

        assert response.status_code == 200
        assert response.json()["valid"] is True
        assert response.json()["registration_id"] == registration_id
        assert response.json()["dimension"] == "profile"

    def test_check_unknown_token_returns_401(self, client: TestClient) -> None:
        response = client.get("/v1/update", params={"token": "bogus"})

        assert response.status_code == 401
        assert response.json()["detail"] == "This link is no longer valid"

    def test_submit_then_reuse(self, client: TestClient, app: FastAPI, registration_id: str) -> None:
        token = self._token(client, app, registration_id)

        first = client.post("/v1/update", params={"token": token})
        second = client.post("/v1/update", params={"token": token})
        check = client.get("/v1/update", params={"token": token})

        assert first.status_code == 200
        assert first.json()["status"] == "waiting_for_review"
        assert second.status_code == 401
        assert second.json()["detail"] == "This link is no longer valid"
        assert check.status_code == 401

    def test_missing_token_returns_422(self, client: TestClient) -> None:
        assert client.get("/v1/update").status_code == 422


class TestErrorMapping:
    """Tests for domain error to HTTP status mapping."""

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (InvalidDimension("x"), 400),
            (NotReady("not ready"), 400),
            (TokenInvalid(), 401),
            (Forbidden(), 403),
            (RegistrationNotFound("x"), 404),
            (InvalidTransition("closed"), 409),
            (StorageError("down"), 500),
        ],
    )
    def test_status_codes(self, error: Exception, status_code: int) -> None:
        assert to_http_exception(error).status_code == status_code

    def test_storage_error_detail_is_generic(self) -> None:
        exc = to_http_exception(StorageError("password=hunter2"))
        assert "hunter2" not in exc.detail
