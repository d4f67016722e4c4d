# auth/provider.py
from __future__ import annotations

import hmac
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from models.identity import Credentials, Identity

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]


class AuthError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class IdentityProvider(Protocol):
    def current_identity(self) -> Optional[Identity]: ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]: ...

    async def sign_in(self, credentials: Credentials) -> Identity: ...

    async def sign_out(self) -> None: ...


class ObservableIdentity:
    """
    Single current-value slot plus change notification.
    Listeners are called with the new identity only when it actually changes.
    """

    def __init__(self, initial: Optional[Identity] = None):
        self._current = initial
        self._listeners: List[IdentityListener] = []

    def current_identity(self) -> Optional[Identity]:
        return self._current

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, identity: Optional[Identity]) -> None:
        if identity == self._current:
            return
        self._current = identity
        logger.info("[AUTH] identity changed: %s", identity.user_id if identity else None)
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception:
                logger.exception("[AUTH] identity listener failed")


class LocalIdentityProvider(ObservableIdentity):
    """
    Email/password accounts held in memory. Useful for local runs and tests,
    where talking to Firebase Authentication is not wanted.
    """

    def __init__(self, accounts: Optional[Dict[str, Tuple[str, Identity]]] = None,
                 initial: Optional[Identity] = None):
        super().__init__(initial)
        self._accounts: Dict[str, Tuple[str, Identity]] = dict(accounts or {})

    def register(self, credentials: Credentials, identity: Identity) -> None:
        self._accounts[credentials.email.strip().lower()] = (credentials.password, identity)

    async def sign_in(self, credentials: Credentials) -> Identity:
        entry = self._accounts.get(credentials.email.strip().lower())
        if entry is None or not hmac.compare_digest(entry[0].encode(), credentials.password.encode()):
            logger.warning("[AUTH] sign-in rejected for %s", credentials.email)
            raise AuthError("Invalid email or password", code="INVALID_LOGIN_CREDENTIALS")
        self._publish(entry[1])
        return entry[1]

    async def sign_out(self) -> None:
        self._publish(None)
