"""
Shared test fixtures and utilities.

Every test gets its own in-memory SQLite database through an explicitly
constructed DBStorage, so nothing leaks between tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from api import create_app
from models.db_storage import DBStorage
from services.auth_service import AuthService, AuthSettings
from services.notifier import RecordingNotifier
from utils.security import TokenCodec, make_password_hasher

# Must match TestingConfig
ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"


class FrozenClock:
    """Callable clock the service reads instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def cookie_value(response, name: str = "refreshToken"):
    """Value of the first Set-Cookie header for `name`, or None."""
    for header in response.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return header.split(";", 1)[0].split("=", 1)[1]
    return None


def refresh_cookie(token: str) -> dict:
    return {"Cookie": f"refreshToken={token}"}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def storage():
    """Fresh in-memory database per test."""
    s = DBStorage("sqlite://")
    s.reload()
    yield s
    s.dispose()


@pytest.fixture
def clock():
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def access_codec():
    return TokenCodec(ACCESS_SECRET)


@pytest.fixture
def refresh_codec():
    return TokenCodec(REFRESH_SECRET)


@pytest.fixture
def password_hasher():
    return make_password_hasher(1)


@pytest.fixture
def service(storage, password_hasher, access_codec, refresh_codec, clock):
    return AuthService(
        storage=storage,
        password_hasher=password_hasher,
        access_codec=access_codec,
        refresh_codec=refresh_codec,
        settings=AuthSettings(),
        clock=clock,
    )


@pytest.fixture
def registered(service):
    """A registered (unverified) user: returns the register result data."""
    result = service.register(first_name="Bob", email="bob@x.com", password="p1")
    assert result.ok
    return result.data


@pytest.fixture
def logged_in(service, registered):
    result = service.login(email="bob@x.com", password="p1", ip="10.0.0.1", user_agent="pytest")
    assert result.ok
    return result.data


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(storage, notifier):
    return create_app("testing", storage=storage, notifier=notifier)


@pytest.fixture
def client(app):
    # Cookies are passed explicitly so tests control exactly which token is sent
    return app.test_client(use_cookies=False)


@pytest.fixture
def api_user(client):
    """Register and log in over HTTP; returns (access_token, refresh_token, user)."""
    response = client.post(
        "/api/v1/auth/register",
        json={"firstName": "Alice", "lastName": "Smith", "email": "alice@x.com", "password": "secret-1"},
    )
    assert response.status_code == 201
    response = client.post("/api/v1/auth/login", json={"email": "alice@x.com", "password": "secret-1"})
    assert response.status_code == 200
    body = response.get_json()
    return body["accessToken"], cookie_value(response), body["user"]
