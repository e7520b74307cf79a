"""
API Tests for the Expense Share endpoints

Tests cover:
1. Health and login
2. Bearer token handling and admin routes
3. Group expense, payment and balance endpoints
4. Error mapping
5. Serverless entry point
"""

import importlib.util
import pytest
from fastapi.testclient import TestClient
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from expenses.api import create_app
from expenses.config import Settings
from expenses.models import CreateExpenseRequest
from expenses.service import ExpenseService


SETTINGS = Settings(
    jwt_secret="api-test-secret",
    bcrypt_rounds=4,
    admin_email="admin@example.com",
    admin_password="admin-password",
)
MISSING_ID = "00000000-0000-0000-0000-000000000000"


def login(client: TestClient, email: str, password: str) -> dict:
    response = client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def client():
    return TestClient(create_app(SETTINGS, ExpenseService(SETTINGS)))


@pytest.fixture
def admin_headers(client):
    return login(client, "admin@example.com", "admin-password")


@pytest.fixture
def group(client, admin_headers):
    """Three members in one group, with their auth headers."""
    headers = {}
    ids = []
    for name in ("alice", "bob", "carol"):
        response = client.post("/admin/users", headers=admin_headers, json={
            "email": f"{name}@example.com", "username": name, "password": "password123",
        })
        assert response.status_code == 201
        ids.append(response.json()["id"])
        headers[name] = login(client, f"{name}@example.com", "password123")

    response = client.post("/admin/groups", headers=admin_headers, json={"name": "Trip", "user_ids": ids})
    assert response.status_code == 201
    return response.json()["id"], dict(zip(("alice", "bob", "carol"), ids)), headers


class TestSystem:
    """Tests for unauthenticated endpoints."""

    def test_health(self, client):
        """Test the health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_login_bad_credentials(self, client):
        """Test that bad credentials give 401."""
        response = client.post("/login", json={"email": "admin@example.com", "password": "nope"})

        assert response.status_code == 401

    def test_login_returns_user(self, client):
        """Test that login returns the user alongside the token."""
        response = client.post("/login", json={"email": "admin@example.com", "password": "admin-password"})

        body = response.json()
        assert body["user"]["is_admin"] is True
        assert "password_hash" not in body["user"]


class TestAuth:
    """Tests for bearer token handling."""

    def test_missing_token(self, client):
        """Test that protected routes need a token."""
        assert client.get("/groups").status_code == 401

    def test_garbage_token(self, client):
        """Test that an unverifiable token is rejected."""
        response = client.get("/groups", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401

    def test_token_signed_with_other_secret(self, client):
        """Test that tokens from another deployment are rejected."""
        other_settings = SETTINGS.model_copy(update={"jwt_secret": "other-secret"})
        other = TestClient(create_app(other_settings, ExpenseService(other_settings)))
        headers = login(other, "admin@example.com", "admin-password")

        assert client.get("/groups", headers=headers).status_code == 401

    def test_admin_routes_need_admin(self, client, group):
        """Test that members cannot use admin routes."""
        _, _, headers = group

        assert client.get("/admin/users", headers=headers["alice"]).status_code == 403

    def test_admin_lists_users(self, client, admin_headers, group):
        """Test that the admin sees every user."""
        response = client.get("/admin/users", headers=admin_headers)

        assert response.status_code == 200
        assert len(response.json()) == 4

    def test_duplicate_user_conflict(self, client, admin_headers, group):
        """Test that re-creating a user gives 409."""
        response = client.post("/admin/users", headers=admin_headers, json={
            "email": "alice@example.com", "username": "alice2", "password": "password123",
        })

        assert response.status_code == 409


class TestValidation:
    """Tests for request validation."""

    def test_short_password(self, client, admin_headers):
        """Test that short passwords are a 400 validation error."""
        response = client.post("/admin/users", headers=admin_headers, json={
            "email": "dave@example.com", "username": "dave", "password": "short",
        })

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_bad_email(self, client, admin_headers):
        """Test that an email without @ is rejected."""
        response = client.post("/admin/users", headers=admin_headers, json={
            "email": "dave", "username": "dave", "password": "password123",
        })

        assert response.status_code == 400

    @pytest.mark.parametrize("amount", ["0", "-5.00", "1.005", "1000000.00"])
    def test_bad_expense_amount(self, client, group, amount):
        """Test that out-of-range or sub-cent amounts are rejected."""
        group_id, _, headers = group

        response = client.post(f"/groups/{group_id}/expenses", headers=headers["alice"], json={
            "amount": amount, "description": "bad",
        })

        assert response.status_code == 400

    def test_empty_description(self, client, group):
        """Test that an expense needs a description."""
        group_id, _, headers = group

        response = client.post(f"/groups/{group_id}/expenses", headers=headers["alice"], json={
            "amount": "5.00", "description": "",
        })

        assert response.status_code == 400

    def test_group_with_unknown_user(self, client, admin_headers):
        """Test that groups must reference existing users."""
        response = client.post("/admin/groups", headers=admin_headers, json={
            "name": "Ghosts", "user_ids": [MISSING_ID],
        })

        assert response.status_code == 400


class TestGroupEndpoints:
    """Tests for the group ledger endpoints."""

    def test_list_groups(self, client, group):
        """Test that a member sees their group."""
        group_id, _, headers = group

        response = client.get("/groups", headers=headers["bob"])

        assert [g["id"] for g in response.json()] == [group_id]

    def test_expense_and_balances(self, client, group):
        """Test the full expense, payment and balance flow."""
        group_id, ids, headers = group

        response = client.post(f"/groups/{group_id}/expenses", headers=headers["alice"], json={
            "amount": "90.00", "description": "Dinner",
        })
        assert response.status_code == 201
        assert response.json()["paid_by"] == ids["alice"]

        response = client.post(f"/groups/{group_id}/payments", headers=headers["bob"], json={
            "to_user_id": ids["alice"], "amount": "30.00",
        })
        assert response.status_code == 201

        response = client.get(f"/groups/{group_id}/balances", headers=headers["carol"])
        assert response.status_code == 200
        balances = {b["username"]: b["balance"] for b in response.json()}
        assert balances == {"alice": "30.00", "bob": "0.00", "carol": "-30.00"}

    def test_list_expenses(self, client, group):
        """Test that listed expenses carry the payer's username."""
        group_id, _, headers = group
        client.post(f"/groups/{group_id}/expenses", headers=headers["bob"], json={
            "amount": "12.50", "description": "Taxi",
        })

        response = client.get(f"/groups/{group_id}/expenses", headers=headers["alice"])

        assert response.status_code == 200
        assert response.json()[0]["username"] == "bob"
        assert response.json()[0]["amount"] == "12.50"

    def test_non_member_forbidden(self, client, admin_headers, group):
        """Test that the admin, not being a member, is refused."""
        group_id, _, _ = group

        assert client.get(f"/groups/{group_id}/balances", headers=admin_headers).status_code == 403
        assert client.get(f"/groups/{group_id}/expenses", headers=admin_headers).status_code == 403

    def test_payment_to_self(self, client, group):
        """Test that paying yourself is a 400."""
        group_id, ids, headers = group

        response = client.post(f"/groups/{group_id}/payments", headers=headers["alice"], json={
            "to_user_id": ids["alice"], "amount": "1.00",
        })

        assert response.status_code == 400

    def test_payment_to_outsider(self, client, group):
        """Test that paying a non-member is refused."""
        group_id, _, headers = group

        response = client.post(f"/groups/{group_id}/payments", headers=headers["alice"], json={
            "to_user_id": MISSING_ID, "amount": "1.00",
        })

        assert response.status_code == 403

    def test_inconsistent_ledger_is_500(self, client, group):
        """Test that a ledger fault is reported rather than hidden."""
        group_id, ids, headers = group
        service = client.app.state.service
        service.add_expense(UUID(group_id), UUID(ids["alice"]), CreateExpenseRequest(
            amount=Decimal("3.00"), description="x",
        ))
        service.storage.group_members[UUID(group_id)].remove(UUID(ids["alice"]))

        response = client.get(f"/groups/{group_id}/balances", headers=headers["bob"])

        assert response.status_code == 500


class TestServerlessEntry:
    """Tests for the serverless handler module."""

    def test_handler_reuses_module_app(self):
        """Test that the handler wraps the already-built app under /api."""
        import expenses.api

        path = Path(__file__).resolve().parents[2] / "api" / "index.py"
        spec = importlib.util.spec_from_file_location("serverless_index", path)
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)

            assert module.app is expenses.api.app
            assert module.app.root_path == "/api"
            assert module.handler is not None
        finally:
            expenses.api.app.root_path = ""


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
