from datetime import timedelta

import pytest

from models.activation_token import ActivationToken
from models.refresh_token import RefreshToken
from services.notifier import RecordingNotifier
from utils.decorators import UNAUTHORIZED_MESSAGE
from utils.timeutils import utcnow
from tests.conftest import bearer, cookie_value, refresh_cookie

BOB = {"firstName": "Bob", "email": "bob@x.com", "password": "p1"}


def set_cookie_headers(response, name="refreshToken"):
    return [h for h in response.headers.getlist("Set-Cookie") if h.startswith(f"{name}=")]


def login(client, email="bob@x.com", password="p1"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_created_and_verification_sent(self, client, storage, notifier):
        response = client.post("/api/v1/auth/register", json=BOB)

        assert response.status_code == 201
        user = response.get_json()["user"]
        assert set(user) == {"id", "firstName", "lastName", "email"}
        assert user["firstName"] == "Bob"
        assert user["lastName"] == ""

        token = storage.get_session().query(ActivationToken).one().token
        assert len(notifier.sent) == 1
        sent = notifier.sent[0]
        assert sent.event == "account.verification"
        assert sent.recipient == "bob@x.com"
        assert f"/api/v1/auth/verify?token={token}" in sent.body

    def test_missing_fields(self, client):
        response = client.post("/api/v1/auth/register", json={"email": "bob@x.com", "password": "p1"})
        body = response.get_json()
        assert response.status_code == 400
        assert body["error"] == "VALIDATION_ERROR"
        assert "firstName" in body["details"]

    def test_invalid_email(self, client):
        response = client.post("/api/v1/auth/register", json={**BOB, "email": "not-an-email"})
        assert response.status_code == 400

    def test_duplicate_email(self, client):
        client.post("/api/v1/auth/register", json=BOB)
        response = client.post("/api/v1/auth/register", json={**BOB, "firstName": "Robert"})
        assert response.status_code == 409
        assert response.get_json() == {"error": "EMAIL_IN_USE", "message": "Email already in use", "status": 409}

    def test_notifier_failure_does_not_fail_registration(self, app, client, storage, caplog):
        app.extensions["notifier"] = RecordingNotifier(fail=True)
        response = client.post("/api/v1/auth/register", json=BOB)

        assert response.status_code == 201
        assert response.get_json()["user"]["email"] == "bob@x.com"
        assert "Could not dispatch verification email" in caplog.text
        assert storage.get_session().query(ActivationToken).count() == 1


class TestVerify:
    def test_link_verifies_once(self, client, storage, notifier):
        client.post("/api/v1/auth/register", json=BOB)
        token = storage.get_session().query(ActivationToken).one().token

        first = client.get(f"/api/v1/auth/verify?token={token}")
        assert first.status_code == 200
        assert first.get_json() == {"message": "Account verified"}

        second = client.post("/api/v1/auth/verify", json={"token": token})
        assert second.status_code == 400
        assert second.get_json()["message"] == "Invalid or expired token"

    def test_missing_token(self, client):
        assert client.get("/api/v1/auth/verify").status_code == 400

    def test_resend_always_answers_200(self, client, notifier):
        client.post("/api/v1/auth/register", json=BOB)

        known = client.post("/api/v1/auth/verify/resend", json={"email": "bob@x.com"})
        unknown = client.post("/api/v1/auth/verify/resend", json={"email": "eve@x.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json()
        assert len(notifier.sent) == 2


class TestLogin:
    @pytest.fixture(autouse=True)
    def bob(self, client):
        client.post("/api/v1/auth/register", json=BOB)

    def test_returns_access_token_and_sets_cookie(self, client):
        response = login(client)

        assert response.status_code == 200
        body = response.get_json()
        assert body["accessToken"]
        assert body["user"]["email"] == "bob@x.com"
        assert "refreshToken" not in body
        assert "password" not in body["user"]

        headers = set_cookie_headers(response)
        assert len(headers) == 2
        for header in headers:
            assert "HttpOnly" in header
            assert "SameSite=Lax" in header
            assert "Max-Age=604800" in header
        paths = sorted(h.split("Path=")[1].split(";")[0] for h in headers)
        assert paths == ["/api/v1/auth/logout", "/api/v1/auth/refresh"]

    def test_failures_are_indistinguishable(self, client):
        wrong_password = login(client, password="nope")
        unknown_email = login(client, email="eve@x.com")

        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.get_json() == unknown_email.get_json() == {
            "error": "AUTHENTICATION_FAILED",
            "message": "Invalid email or password",
            "status": 401,
        }
        assert set_cookie_headers(wrong_password) == []

    def test_missing_fields(self, client):
        assert client.post("/api/v1/auth/login", json={"email": "bob@x.com"}).status_code == 400

    def test_records_client_details(self, client, storage):
        client.post(
            "/api/v1/auth/login",
            json={"email": "bob@x.com", "password": "p1"},
            headers={"User-Agent": "curl/8.0"},
        )
        row = storage.get_session().query(RefreshToken).one()
        assert row.user_agent == "curl/8.0"
        assert row.ip == "127.0.0.1"


class TestRefresh:
    def test_rotates_cookie(self, client, api_user):
        _, refresh_token, _ = api_user

        response = client.post("/api/v1/auth/refresh", headers=refresh_cookie(refresh_token))

        assert response.status_code == 200
        assert response.get_json()["accessToken"]
        rotated = cookie_value(response)
        assert rotated and rotated != refresh_token

    def test_replay_of_rotated_cookie(self, client, api_user):
        _, refresh_token, _ = api_user
        client.post("/api/v1/auth/refresh", headers=refresh_cookie(refresh_token))

        replay = client.post("/api/v1/auth/refresh", headers=refresh_cookie(refresh_token))
        assert replay.status_code == 401
        assert replay.get_json() == {"error": "INVALID_REFRESH_TOKEN", "message": "Invalid refresh token", "status": 401}

    def test_missing_cookie(self, client):
        response = client.post("/api/v1/auth/refresh")
        assert response.status_code == 401
        assert response.get_json()["message"] == "No refresh token provided"

    def test_garbage_cookie(self, client):
        assert client.post("/api/v1/auth/refresh", headers=refresh_cookie("garbage")).status_code == 401


class TestLogout:
    def test_clears_cookie_and_revokes(self, client, api_user):
        _, refresh_token, _ = api_user

        response = client.post("/api/v1/auth/logout", headers=refresh_cookie(refresh_token))

        assert response.status_code == 200
        assert response.get_json() == {"message": "Logged out successfully"}
        headers = set_cookie_headers(response)
        assert len(headers) == 2
        assert all("Max-Age=0" in h for h in headers)
        assert cookie_value(response) == ""

        after = client.post("/api/v1/auth/refresh", headers=refresh_cookie(refresh_token))
        assert after.status_code == 401

    def test_second_logout_is_ok(self, client, api_user):
        _, refresh_token, _ = api_user
        client.post("/api/v1/auth/logout", headers=refresh_cookie(refresh_token))
        assert client.post("/api/v1/auth/logout", headers=refresh_cookie(refresh_token)).status_code == 200

    def test_missing_cookie(self, client):
        assert client.post("/api/v1/auth/logout").status_code == 400

    def test_garbage_cookie(self, client):
        response = client.post("/api/v1/auth/logout", headers=refresh_cookie("garbage"))
        assert response.status_code == 400
        assert response.get_json()["error"] == "INVALID_REFRESH_TOKEN"


class TestAccessTokenRequired:
    def test_valid_token(self, client, api_user):
        access_token, _, user = api_user
        response = client.get("/api/v1/users/me", headers=bearer(access_token))
        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == user["id"]

    def test_missing_header(self, client):
        response = client.get("/api/v1/users/me")
        assert response.status_code == 401
        assert response.get_json()["message"] == "Unauthorized: Missing or invalid Authorization header"

    def test_wrong_scheme(self, client, api_user):
        access_token, _, _ = api_user
        response = client.get("/api/v1/users/me", headers={"Authorization": f"Token {access_token}"})
        assert response.status_code == 401

    @pytest.mark.parametrize("token", ["garbage", "a.b.c"])
    def test_malformed_token(self, client, token):
        response = client.get("/api/v1/users/me", headers=bearer(token))
        assert response.status_code == 401
        assert response.get_json()["message"] == UNAUTHORIZED_MESSAGE

    def test_expired_token(self, app, client, api_user):
        _, _, user = api_user
        codec = app.extensions["access_codec"]
        stale = codec.encode({"sub": user["id"]}, timedelta(minutes=15), now=utcnow() - timedelta(hours=1))
        response = client.get("/api/v1/users/me", headers=bearer(stale))
        assert response.status_code == 401
        assert response.get_json()["message"] == UNAUTHORIZED_MESSAGE

    def test_refresh_token_is_not_an_access_token(self, client, api_user):
        _, refresh_token, _ = api_user
        assert client.get("/api/v1/users/me", headers=bearer(refresh_token)).status_code == 401

    def test_access_token_survives_logout(self, client, api_user):
        """Access tokens are stateless and stay valid until they expire."""
        access_token, refresh_token, _ = api_user
        client.post("/api/v1/auth/logout", headers=refresh_cookie(refresh_token))
        assert client.get("/api/v1/users/me", headers=bearer(access_token)).status_code == 200


def test_full_session_lifecycle(client, storage):
    """Register, verify, log in, rotate, replay, log out."""
    assert client.post("/api/v1/auth/register", json=BOB).status_code == 201
    token = storage.get_session().query(ActivationToken).one().token
    assert client.get(f"/api/v1/auth/verify?token={token}").status_code == 200

    response = login(client)
    assert response.status_code == 200
    access_token = response.get_json()["accessToken"]
    first_refresh = cookie_value(response)

    me = client.get("/api/v1/users/me", headers=bearer(access_token))
    assert me.get_json()["verified"] is True

    rotated = client.post("/api/v1/auth/refresh", headers=refresh_cookie(first_refresh))
    assert rotated.status_code == 200
    second_refresh = cookie_value(rotated)

    assert client.post("/api/v1/auth/refresh", headers=refresh_cookie(first_refresh)).status_code == 401

    assert client.post("/api/v1/auth/logout", headers=refresh_cookie(second_refresh)).status_code == 200
    assert client.post("/api/v1/auth/refresh", headers=refresh_cookie(second_refresh)).status_code == 401
