# session/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    active_conversation_id: Optional[str] = None
    pending_invite_artifact: Optional[str] = None


SessionListener = Callable[[SessionState, SessionState], None]


class SessionContext:
    """
    Client-local state for the current navigation: which conversation is open,
    and any invite artifact being processed. Never persisted.

    Every mutation swaps in a new immutable SessionState and publishes it once,
    so a listener never sees a new conversation id next to a stale invite.
    """

    def __init__(self) -> None:
        self._state = SessionState()
        self._listeners: List[SessionListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._state.active_conversation_id

    @property
    def pending_invite_artifact(self) -> Optional[str]:
        return self._state.pending_invite_artifact

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new: SessionState) -> None:
        old = self._state
        if new == old:
            return
        self._state = new
        for listener in list(self._listeners):
            try:
                listener(new, old)
            except Exception:
                logger.exception("[SESSION] listener failed")

    # ------------------------- operations ------------------------------------

    def set_active_conversation(self, conversation_id: Optional[str]) -> None:
        # the invite artifact never survives a conversation change
        logger.debug("[SESSION] active conversation -> %s", conversation_id)
        self._transition(SessionState(active_conversation_id=conversation_id, pending_invite_artifact=None))

    def set_pending_invite(self, value: str) -> None:
        self._transition(replace(self._state, pending_invite_artifact=value))

    def clear_pending_invite(self) -> None:
        self._transition(replace(self._state, pending_invite_artifact=None))

    def reset(self) -> None:
        self._transition(SessionState())
