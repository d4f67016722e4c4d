# apps/client.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from auth.provider import IdentityProvider
from flows.invite_flow import InviteFlow
from membership.resolver import MembershipResolver
from models.identity import AuthDecision, Credentials, Deny, Identity
from models.outcome import InviteViewState
from observability.telemetry import trace_attrs
from session.context import SessionContext
from session.guard import AccessGuard
from shared.config import HOME_VIEW
from shared.routes import InviteRef, chat_id_from_view, is_public_view
from store.base import SharedStore
from store.chat_store import ChatStore

logger = logging.getLogger(__name__)


class ChatClient:
    """
    Composition root: one identity provider and one store in, every
    component built here and handed its collaborators explicitly.

    `current_view` is where the client is now; navigate() moves it,
    running the guard first and the invite flow for /invite/... views.
    """

    def __init__(self, provider: IdentityProvider, store: SharedStore,
                 *, session: Optional[SessionContext] = None,
                 guard: Optional[AccessGuard] = None):
        self.provider = provider
        self.store = store
        self.session = session or SessionContext()
        self.guard = guard or AccessGuard()
        self.resolver = MembershipResolver(store)
        self.chats = ChatStore(store)
        self.invites = InviteFlow(provider, self.resolver, self.session, self.guard)

        self.current_view: str = HOME_VIEW
        self.last_invite: Optional[InviteViewState] = None
        self._after_sign_in: Optional[str] = None
        self._unwatch: Optional[Callable[[], None]] = None

    @classmethod
    def from_env(cls) -> "ChatClient":
        from auth.firebase_auth import FirebaseIdentityProvider
        from store.firebase_store import FirebaseStore
        return cls(FirebaseIdentityProvider(), FirebaseStore())

    # ------------------------------ guard ------------------------------------

    def _mount(self, view: str) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self.current_view = view
        if is_public_view(view):
            return
        unwatch = self.guard.watch(self.provider, view, self._on_decision)
        if self.current_view != view:
            # the first evaluation already redirected away from this view
            unwatch()
        else:
            self._unwatch = unwatch

    def _on_decision(self, decision: AuthDecision) -> None:
        if not isinstance(decision, Deny):
            return
        # signed out under a protected view: drop navigation state and go to login
        logger.info("[CLIENT] leaving %s for %s", self.current_view, decision.redirect_to)
        self._after_sign_in = decision.requested_view
        self.session.reset()
        self._mount(decision.redirect_to)

    # ---------------------------- navigation ---------------------------------

    async def navigate(self, view: str) -> str:
        identity = self.provider.current_identity()
        with trace_attrs(identity, session_id=self.session.active_conversation_id, tags=["navigate"]):
            ref = InviteRef.from_view(view)
            if ref is not None:
                state = await self.invites.open(ref)
                self.last_invite = state
                if state.redirect_to is not None:
                    self._mount(state.redirect_to)
                else:
                    self._mount(view)
                return self.current_view

            if is_public_view(view):
                self._mount(view)
                return self.current_view

            decision = self.guard.authorize(identity, view)
            if isinstance(decision, Deny):
                self._after_sign_in = view
                self._mount(decision.redirect_to)
                return self.current_view

            chat_id = chat_id_from_view(view)
            self.session.set_active_conversation(chat_id)
            if chat_id is not None and identity is not None:
                await self.chats.mark_chat_as_read(identity.user_id, chat_id)
            self._mount(view)
            return self.current_view

    # ------------------------------ identity ---------------------------------

    async def sign_in(self, credentials: Credentials) -> Identity:
        """Raises AuthError; on success resumes an interrupted invite or view."""
        identity = await self.provider.sign_in(credentials)
        await self.chats.ensure_user_record(identity)

        if self.invites.pending_resume is not None:
            await self.navigate(self.invites.pending_resume.to_view())
        else:
            target, self._after_sign_in = self._after_sign_in, None
            await self.navigate(target or HOME_VIEW)
        return identity

    async def sign_out(self) -> None:
        await self.provider.sign_out()
        self.session.reset()

    def close(self) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
