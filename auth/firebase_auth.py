# Requires: pip install requests firebase-admin
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError

from auth.provider import AuthError, ObservableIdentity
from models.identity import Credentials, Identity
from shared.config import firebase_web_api_key

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


def _identity_from_rest(body: Dict[str, Any]) -> Identity:
    return Identity(
        user_id=body["localId"],
        email=body.get("email") or None,
        display_name=body.get("displayName") or None,
    )


def _sign_in_with_password(api_key: str, email: str, password: str, timeout: float = 15.0) -> Dict[str, Any]:
    """POST accounts:signInWithPassword; returns the raw REST body."""
    url = f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword"
    r = requests.post(
        url,
        params={"key": api_key},
        json={"email": email, "password": password, "returnSecureToken": True},
        timeout=timeout,
    )
    if r.status_code >= 400:
        try:
            code = (r.json().get("error") or {}).get("message")
        except ValueError:
            code = None
        raise AuthError("Invalid email or password" if code else f"Sign-in failed ({r.status_code})", code=code)
    return r.json()


class FirebaseIdentityProvider(ObservableIdentity):
    """
    Identity backed by Firebase Authentication.
    - sign_in(): email/password through the Identity Toolkit REST API
    - restore(): resume from a previously issued ID token (verified with the admin SDK)
    Token refresh is left to the caller.
    """

    def __init__(self, api_key: Optional[str] = None, app=None):
        super().__init__()
        self._api_key = api_key
        self._app = app
        self.id_token: Optional[str] = None

    async def sign_in(self, credentials: Credentials) -> Identity:
        api_key = self._api_key or firebase_web_api_key()
        try:
            body = await asyncio.to_thread(
                _sign_in_with_password, api_key, credentials.email, credentials.password
            )
        except requests.RequestException as e:
            logger.warning("[AUTH] sign-in request failed: %s", e)
            raise AuthError("Could not reach the sign-in service", code="NETWORK_ERROR") from e

        identity = _identity_from_rest(body)
        self.id_token = body.get("idToken")
        self._publish(identity)
        return identity

    async def restore(self, id_token: str) -> Identity:
        if self._app is None:
            from db.base import get_app
            self._app = get_app()
        try:
            decoded = await asyncio.to_thread(firebase_auth.verify_id_token, id_token, self._app)
        except (FirebaseError, ValueError) as e:
            logger.warning("[AUTH] token rejected: %s", e)
            raise AuthError("Session expired, please sign in again", code="INVALID_ID_TOKEN") from e

        identity = Identity(
            user_id=decoded["uid"],
            email=decoded.get("email"),
            display_name=decoded.get("name"),
        )
        self.id_token = id_token
        self._publish(identity)
        return identity

    async def sign_out(self) -> None:
        self.id_token = None
        self._publish(None)
