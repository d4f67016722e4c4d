# session/guard.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from auth.provider import IdentityProvider
from models.identity import Allow, AuthDecision, Deny, Identity
from shared.config import LOGIN_VIEW

logger = logging.getLogger(__name__)

DecisionListener = Callable[[AuthDecision], None]


class AccessGuard:
    """Gates protected views on the presence of a signed-in identity."""

    def __init__(self, login_view: str = LOGIN_VIEW):
        self.login_view = login_view

    def authorize(self, identity: Optional[Identity], requested_view: str) -> AuthDecision:
        if identity is not None:
            return Allow(view=requested_view)
        return Deny(redirect_to=self.login_view, requested_view=requested_view)

    def watch(self, provider: IdentityProvider, requested_view: str,
              on_decision: DecisionListener) -> Callable[[], None]:
        """
        Evaluate now and again on every identity change, for as long as the
        view is mounted. Returns the unsubscribe callable.
        """
        def evaluate(identity: Optional[Identity]) -> None:
            decision = self.authorize(identity, requested_view)
            if isinstance(decision, Deny):
                logger.info("[GUARD] %s -> redirect %s", requested_view, decision.redirect_to)
            on_decision(decision)

        unsubscribe = provider.subscribe(evaluate)
        evaluate(provider.current_identity())
        return unsubscribe
