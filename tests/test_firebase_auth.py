"""Tests for FirebaseIdentityProvider sign-in over the Identity Toolkit REST API."""

import pytest
import requests

from auth import firebase_auth
from auth.firebase_auth import FirebaseIdentityProvider
from auth.provider import AuthError
from models.identity import Credentials, Identity


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


@pytest.fixture
def provider():
    return FirebaseIdentityProvider(api_key="test-key")


class TestSignIn:

    async def test_success_publishes_identity(self, provider, monkeypatch):
        calls = []

        def fake_post(url, params, json, timeout):
            calls.append((url, params, json))
            return FakeResponse(200, {"localId": "U9", "email": "u9@example.com",
                                      "displayName": "Nina", "idToken": "tok"})

        monkeypatch.setattr(firebase_auth.requests, "post", fake_post)
        seen = []
        provider.subscribe(seen.append)

        identity = await provider.sign_in(Credentials(email="u9@example.com", password="pw"))

        assert identity == Identity(user_id="U9", email="u9@example.com", display_name="Nina")
        assert provider.current_identity() == identity
        assert provider.id_token == "tok"
        assert seen == [identity]
        assert calls[0][1] == {"key": "test-key"}
        assert calls[0][2]["returnSecureToken"] is True

    async def test_rejected_credentials(self, provider, monkeypatch):
        monkeypatch.setattr(
            firebase_auth.requests, "post",
            lambda *a, **kw: FakeResponse(400, {"error": {"message": "INVALID_LOGIN_CREDENTIALS"}}),
        )

        with pytest.raises(AuthError) as exc:
            await provider.sign_in(Credentials(email="u9@example.com", password="bad"))

        assert exc.value.code == "INVALID_LOGIN_CREDENTIALS"
        assert provider.current_identity() is None

    async def test_network_error(self, provider, monkeypatch):
        def boom(*a, **kw):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(firebase_auth.requests, "post", boom)

        with pytest.raises(AuthError) as exc:
            await provider.sign_in(Credentials(email="u9@example.com", password="pw"))

        assert exc.value.code == "NETWORK_ERROR"

    async def test_sign_out_clears(self, provider, monkeypatch):
        monkeypatch.setattr(
            firebase_auth.requests, "post",
            lambda *a, **kw: FakeResponse(200, {"localId": "U9", "idToken": "tok"}),
        )
        await provider.sign_in(Credentials(email="u9@example.com", password="pw"))

        await provider.sign_out()

        assert provider.current_identity() is None
        assert provider.id_token is None


class TestLocalProvider:

    async def test_wrong_password(self):
        from auth.provider import LocalIdentityProvider
        local = LocalIdentityProvider()
        local.register(Credentials(email="a@x.io", password="right"), Identity(user_id="A"))

        with pytest.raises(AuthError):
            await local.sign_in(Credentials(email="a@x.io", password="wrong"))
        assert await local.sign_in(Credentials(email="A@x.io ", password="right")) == Identity(user_id="A")
