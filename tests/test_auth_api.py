from datetime import datetime, timedelta, timezone

import pytest

from models import storage
from utils.security import verify_access_token

pytestmark = pytest.mark.auth


def test_register_returns_session(client):
    response = client.register()

    assert response.status_code == 200
    data = response.get_json()
    assert data["token"]
    assert data["refreshToken"]
    assert data["email"] == "alice@example.com"
    expires_at = datetime.fromisoformat(data["expiresAt"])
    assert expires_at > datetime.now(timezone.utc)


def test_register_duplicate_email(client, alice):
    response = client.register(email="ALICE@example.com")

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "CONFLICT"
    assert body["message"] == "User with this email already exists."


def test_register_validation_errors(client):
    mismatch = client.register(password="Secret1", confirm="Secret2")
    weak = client.register(password="abc")

    assert mismatch.status_code == 400
    assert "confirmPassword" in mismatch.get_json()["details"]
    assert weak.status_code == 400
    assert weak.get_json()["error"] == "VALIDATION_ERROR"
    assert "password" in weak.get_json()["details"]


def test_login(client, alice):
    response = client.login()

    assert response.status_code == 200
    data = response.get_json()
    assert data["refreshToken"] != alice["refreshToken"]
    assert verify_access_token(data["token"])["email"] == "alice@example.com"


def test_login_with_bad_credentials(client, alice):
    wrong_password = client.login(password="Wrong123")
    unknown_email = client.login(email="nobody@example.com")

    assert wrong_password.status_code == 401
    assert unknown_email.status_code == 401
    assert wrong_password.get_json()["message"] == unknown_email.get_json()["message"]


def test_login_missing_fields(client):
    response = client.post("/api/auth/login", json={"email": "alice@example.com"})
    assert response.status_code == 400


def test_refresh_missing_token(client):
    assert client.post("/api/auth/refresh", json={}).status_code == 400
    assert client.post("/api/auth/refresh", data="not json").status_code == 400


def test_refresh_unknown_token(client, alice):
    response = client.refresh("definitely-not-issued")
    assert response.status_code == 401


def test_refresh_expired_token(client, alice):
    user = storage.get_user_by_email("alice@example.com")
    user.refresh_token_expiry = datetime.now(timezone.utc) - timedelta(seconds=1)
    storage.save()

    response = client.refresh(alice["refreshToken"])
    assert response.status_code == 401
    assert response.get_json()["message"] == "Refresh token expired."


def test_me(client, alice):
    response = client.authenticated_get("/api/auth/me", token=alice["token"])

    assert response.status_code == 200
    data = response.get_json()
    assert data["email"] == "alice@example.com"
    assert data["id"] == storage.get_user_by_email("alice@example.com").id
    assert data["createdAt"]
    assert data["lastLoginAt"] is None
    assert "password_hash" not in data


def test_me_requires_valid_bearer(client, alice):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": alice["token"]}).status_code == 401
    assert client.authenticated_get("/api/auth/me", token="garbage").status_code == 401
    # refresh tokens are never accepted as access tokens
    assert client.authenticated_get("/api/auth/me", token=alice["refreshToken"]).status_code == 401


def test_me_for_deleted_user(client, alice):
    storage.delete(storage.get_user_by_email("alice@example.com"))
    storage.save()

    response = client.authenticated_get("/api/auth/me", token=alice["token"])
    assert response.status_code == 404


def test_logout_requires_bearer(client, alice):
    assert client.post("/api/auth/logout").status_code == 401


def test_alice_session_lifecycle(client):
    registered = client.register(email="alice@example.com", password="Secret1")
    assert registered.status_code == 200
    first = registered.get_json()
    assert first["token"] and first["refreshToken"]

    assert client.login(password="WrongPassword1").status_code == 401

    refreshed = client.refresh(first["refreshToken"])
    assert refreshed.status_code == 200
    second = refreshed.get_json()
    assert second["refreshToken"] == first["refreshToken"]
    assert second["token"] != first["token"]

    again = client.refresh(first["refreshToken"])
    assert again.status_code == 200
    assert again.get_json()["refreshToken"] == first["refreshToken"]
    assert again.get_json()["expiresAt"] >= second["expiresAt"]

    logout = client.authenticated_post("/api/auth/logout", token=second["token"])
    assert logout.status_code == 200
    assert logout.get_json() == {"message": "Logged out successfully."}

    assert client.refresh(first["refreshToken"]).status_code == 401
    user = storage.get_user_by_email("alice@example.com")
    assert user.refresh_token is None and user.refresh_token_expiry is None


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["database"] == "ok"
