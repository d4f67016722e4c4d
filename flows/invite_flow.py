# flows/invite_flow.py
from __future__ import annotations

import logging
from typing import Optional

from auth.provider import IdentityProvider
from membership.resolver import MembershipResolver
from models.identity import Deny
from models.outcome import InviteViewState, JoinOutcome, JoinStatus, MESSAGES, RECOVERY
from observability.obs import span_attrs
from session.context import SessionContext
from session.guard import AccessGuard
from shared.routes import InviteRef, chat_view

logger = logging.getLogger(__name__)


class InviteFlow:
    """
    Drives the invite view: guard -> resolver -> session -> route.

    open() always returns an InviteViewState; failures land in its `error`
    slot together with a recovery action, successes carry `redirect_to`.
    An invite opened while signed out is kept in `pending_resume` and can be
    replayed with resume() once sign-in completes.
    """

    def __init__(self, provider: IdentityProvider, resolver: MembershipResolver,
                 session: SessionContext, guard: AccessGuard):
        self._provider = provider
        self._resolver = resolver
        self._session = session
        self._guard = guard
        self.pending_resume: Optional[InviteRef] = None
        self.view: Optional[InviteViewState] = None

    def _fail(self, ref: InviteRef, status: JoinStatus, redirect_to: Optional[str] = None) -> InviteViewState:
        self.view = InviteViewState(
            invite=ref,
            loading=False,
            status=status,
            error=MESSAGES[status],
            recovery=RECOVERY[status],
            redirect_to=redirect_to,
        )
        return self.view

    async def open(self, ref: InviteRef) -> InviteViewState:
        self.view = InviteViewState(invite=ref)
        identity = self._provider.current_identity()

        decision = self._guard.authorize(identity, ref.to_view())
        if isinstance(decision, Deny):
            # keep the reference so the flow can pick up after sign-in
            self.pending_resume = ref
            self._session.set_pending_invite(ref.to_view())
            logger.info("[INVITE] sign-in required for %s", ref.chat_id)
            return self._fail(ref, JoinStatus.AUTH_REQUIRED, redirect_to=decision.redirect_to)

        self.pending_resume = None
        self._session.set_pending_invite(ref.to_view())
        with span_attrs("invite.open", chat_id=ref.chat_id):
            outcome: JoinOutcome = await self._resolver.join_group(ref.chat_id, ref.invite_token, identity)

        if outcome.ok:
            # consuming the invite is itself a conversation change: clears the artifact
            self._session.set_active_conversation(ref.chat_id)
            self.view = InviteViewState(
                invite=ref,
                loading=False,
                status=outcome.status,
                recovery=outcome.recovery,
                redirect_to=chat_view(ref.chat_id),
            )
            return self.view

        self._session.clear_pending_invite()
        logger.info("[INVITE] %s for %s: %s", outcome.status.value, ref.chat_id, outcome.detail or "-")
        return self._fail(ref, outcome.status)

    async def retry(self) -> Optional[InviteViewState]:
        if self.view is None or self.view.status != JoinStatus.JOIN_FAILED:
            return None
        return await self.open(self.view.invite)

    async def resume(self) -> Optional[InviteViewState]:
        """Replay the invite that was interrupted by a sign-in redirect."""
        if self.pending_resume is None or self._provider.current_identity() is None:
            return None
        return await self.open(self.pending_resume)
