import pytest
from datetime import datetime, timedelta, timezone

from api import create_app
from models import storage


def pytest_configure(config):
    config.addinivalue_line("markers", "auth: mark test as authentication-related")
    config.addinivalue_line("markers", "client: mark test as exercising the async client")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture()
def app():
    """Fresh app with an empty in-memory database per test"""
    app = create_app("testing")
    with app.app_context():
        yield app
        storage.close()
        storage.drop_all()


@pytest.fixture()
def client(app):
    """Test client with helpers for the auth endpoints"""
    client = app.test_client()

    def register(self, email="alice@example.com", password="Secret1", confirm=None):
        return self.post("/api/auth/register", json={
            "email": email,
            "password": password,
            "confirmPassword": password if confirm is None else confirm,
        })

    def login(self, email="alice@example.com", password="Secret1"):
        return self.post("/api/auth/login", json={"email": email, "password": password})

    def refresh(self, refresh_token):
        return self.post("/api/auth/refresh", json={"refreshToken": refresh_token})

    def authenticated_get(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.get(url, headers=headers, **kwargs)

    def authenticated_post(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.post(url, headers=headers, **kwargs)

    client.register = register.__get__(client)
    client.login = login.__get__(client)
    client.refresh = refresh.__get__(client)
    client.authenticated_get = authenticated_get.__get__(client)
    client.authenticated_post = authenticated_post.__get__(client)
    return client


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def alice(client):
    """Registered user; returns the register response body"""
    response = client.register()
    assert response.status_code == 200
    return response.get_json()
