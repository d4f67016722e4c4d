# membership/resolver.py
from __future__ import annotations

import asyncio
import hmac
import logging
from typing import Any, Dict, Optional

from models.group import MembershipRecord, Role, UserChatEntry
from models.identity import Identity
from models.outcome import JoinOutcome, JoinStatus
from observability.obs import annotate, instrument
from observability.telemetry import mark_error
from shared.time import now_ms
from store import paths
from store.base import Increment, NotFound, SharedStore

logger = logging.getLogger(__name__)


def tokens_match(stored: Any, presented: Any) -> bool:
    """Exact, case-sensitive comparison; a group without a token admits nobody."""
    if not isinstance(stored, str) or not isinstance(presented, str) or not stored:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


def _retrieve(task: "asyncio.Future[None]") -> None:
    # the caller may have walked away from a shielded write; still surface its fate
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("[JOIN] detached join write failed: %s", exc)


class MembershipResolver:
    """
    Admits a user to a group from an invite token.

    join_group() reads the chat once, validates, and either returns without
    writing (not found / bad token / already a member) or issues exactly one
    atomic multi-path update that creates:
      chats/<gid>/members/<uid>    the membership record
      users/<uid>/chats/<gid>      the back-reference used to list my groups
      chats/<gid>/info/memberCount +1, applied by the store
    Every result is a JoinOutcome; nothing is raised to the caller.
    """

    def __init__(self, store: SharedStore):
        self._store = store

    def _outcome(self, status: JoinStatus, group_id: str, user_id: Optional[str] = None,
                 detail: Optional[str] = None) -> JoinOutcome:
        annotate(outcome=status.value)
        return JoinOutcome(status=status, chat_id=group_id, user_id=user_id, detail=detail)

    @instrument(agent="membership", operation="join_group")
    async def join_group(self, group_id: str, invite_token: str,
                         requester: Optional[Identity]) -> JoinOutcome:
        if requester is None:
            logger.info("[JOIN] refused %s: no signed-in user", group_id)
            return self._outcome(JoinStatus.AUTH_REQUIRED, group_id)

        user_id = requester.user_id
        if not paths.is_valid_key(group_id):
            return self._outcome(JoinStatus.GROUP_NOT_FOUND, group_id, user_id, "invalid group id")
        if not paths.is_valid_key(user_id):
            logger.warning("[JOIN] unusable user id %r", user_id)
            return self._outcome(JoinStatus.JOIN_FAILED, group_id, user_id, "invalid user id")

        # 1. one snapshot of info + members
        try:
            snap = await self._store.read(paths.chat(group_id))
            chat: Dict[str, Any] = snap.to_dict()
        except NotFound:
            chat = {}
        except Exception as e:
            logger.exception("[JOIN] reading %s failed", group_id)
            mark_error(e, kind="JoinReadError")
            return self._outcome(JoinStatus.JOIN_FAILED, group_id, user_id, str(e))

        # 2. group must exist with an info block
        info = chat.get("info")
        if not isinstance(info, dict) or not info:
            logger.info("[JOIN] group %s not found", group_id)
            return self._outcome(JoinStatus.GROUP_NOT_FOUND, group_id, user_id)

        # 3. exact token match
        if not tokens_match(info.get("inviteLink"), invite_token):
            logger.info("[JOIN] invalid invite for %s by %s", group_id, user_id)
            return self._outcome(JoinStatus.INVALID_INVITE, group_id, user_id)

        # 4. re-join is a no-op
        members = chat.get("members")
        if isinstance(members, dict) and user_id in members:
            logger.info("[JOIN] %s already in %s", user_id, group_id)
            return self._outcome(JoinStatus.ALREADY_MEMBER, group_id, user_id)

        # 5. one indivisible write
        now = now_ms()
        updates = {
            paths.chat_member(group_id, user_id): MembershipRecord(role=Role.MEMBER, joined_at=now).to_store(),
            paths.user_chat(user_id, group_id): UserChatEntry(chat_id=group_id, role=Role.MEMBER, joined_at=now).to_store(),
            paths.member_count(group_id): Increment(1),
        }
        write = asyncio.ensure_future(self._store.atomic_update(updates))
        try:
            # shielded: leaving the invite view must not tear a write in half
            await asyncio.shield(write)
        except asyncio.CancelledError:
            logger.info("[JOIN] caller left while joining %s; write continues", group_id)
            write.add_done_callback(_retrieve)
            raise
        except Exception as e:
            # 6. the store's contract leaves nothing behind; no compensating writes
            logger.warning("[JOIN] write for %s into %s failed: %s", user_id, group_id, e)
            mark_error(e, kind="JoinWriteError")
            return self._outcome(JoinStatus.JOIN_FAILED, group_id, user_id, str(e))

        logger.info("[JOIN] %s joined %s", user_id, group_id)
        return self._outcome(JoinStatus.JOINED, group_id, user_id)
