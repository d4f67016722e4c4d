# store/chat_store.py
from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from models.group import Group, GroupInfo, MembershipRecord, Message, Role, UserChatEntry
from models.identity import Identity
from observability.obs import instrument_io
from shared.config import APP_ORIGIN
from shared.routes import InviteRef
from shared.time import now_ms
from store import paths
from store.base import Increment, SharedStore, Snapshot, StoreError, read_or_none

logger = logging.getLogger(__name__)


def new_invite_token() -> str:
    # url-safe alphabet is also a legal store key
    return secrets.token_urlsafe(12)


# GroupInfo field -> store key
EDITABLE_INFO_FIELDS = {"name": "name", "embed_images": "embedImages"}


def new_message_id(now: int) -> str:
    # zero-padded millis first so keys sort in send order
    return f"{now:013d}-{secrets.token_hex(4)}"


def _entries(value: Any) -> List[UserChatEntry]:
    if not isinstance(value, dict):
        return []
    out = [UserChatEntry.from_store(cid, rec) for cid, rec in value.items() if isinstance(rec, dict)]
    return sorted(out, key=lambda e: e.joined_at, reverse=True)


class ChatStore:
    """
    Group administration and messaging over the shared store. Every change that touches
    both a chat's member map and a user's chat index goes out as one
    atomic_update, and memberCount moves only through store-side increments.

    Mutations return True/False (or None) and log failures instead of raising.
    """

    def __init__(self, store: SharedStore):
        self._store = store

    # --------------------------- queries -------------------------------------

    async def get_group(self, chat_id: str) -> Optional[Group]:
        if not paths.is_valid_key(chat_id):
            return None
        snap = await read_or_none(self._store, paths.chat(chat_id))
        if snap is None:
            return None
        return Group.from_store(chat_id, snap.value)

    async def list_user_chats(self, user_id: str) -> List[UserChatEntry]:
        """
        The signed-in user's groups, newest first, straight from users/<uid>/chats
        (no scan over chats/).
        """
        snap = await read_or_none(self._store, paths.user_chats(user_id))
        return _entries(snap.value if snap else None)

    def watch_user_chats(self, user_id: str,
                         listener: Callable[[List[UserChatEntry]], None]) -> Callable[[], None]:
        def on_snapshot(snap: Snapshot) -> None:
            listener(_entries(snap.value))

        return self._store.subscribe(paths.user_chats(user_id), on_snapshot)

    # ------------------------- mutations -------------------------------------

    @instrument_io(
        name="chats.create_group",
        meta={"agent": "chats", "operation": "create_group"},
        input_fn=lambda self, creator, name, *_, **__: {"creator": creator.user_id, "name": name},
        output_fn=lambda chat_id: {"chat_id": chat_id},
    )
    async def create_group(self, creator: Identity, name: str,
                           member_ids: Iterable[str] = ()) -> Optional[str]:
        """
        Create a group with the creator as admin and `member_ids` as members.
        Chat node and every member's index entry are written together.
        Returns None for an empty name or illegal member ids.
        """
        name = (name or "").strip()
        if not name:
            logger.warning("[CHATS] create_group: empty name from %s", creator.user_id)
            return None

        others = [m for m in dict.fromkeys(member_ids) if m and m != creator.user_id]
        bad = [uid for uid in others if not paths.is_valid_key(uid)]
        if bad:
            logger.warning("[CHATS] create_group: invalid member ids %r", bad)
            return None

        chat_id = uuid.uuid4().hex
        now = now_ms()
        info = GroupInfo(
            name=name,
            created_at=now,
            created_by=creator.user_id,
            member_count=len(others) + 1,
            last_message="Group created",
            last_message_time=now,
            admins={creator.user_id: True},
        )
        members: Dict[str, Any] = {
            creator.user_id: MembershipRecord(role=Role.ADMIN, joined_at=now, added_by=creator.user_id).to_store()
        }
        for uid in others:
            members[uid] = MembershipRecord(role=Role.MEMBER, joined_at=now, added_by=creator.user_id).to_store()

        updates: Dict[str, Any] = {paths.chat(chat_id): {"info": info.to_store(), "members": members}}
        for uid, rec in members.items():
            updates[paths.user_chat(uid, chat_id)] = UserChatEntry(
                chat_id=chat_id, role=rec["role"], joined_at=now
            ).to_store()

        try:
            await self._store.atomic_update(updates)
        except StoreError:
            logger.exception("[CHATS] create_group failed for %s", creator.user_id)
            return None
        logger.info("[CHATS] Created %s by %s with %d members", chat_id, creator.user_id, len(members))
        return chat_id

    async def generate_invite_link(self, chat_id: str, requester: Identity,
                                   origin: str = APP_ORIGIN) -> Optional[str]:
        """
        Rotate the group's invite token and return the shareable URL.
        Only admins may rotate; the previous link stops working immediately.
        """
        group = await self.get_group(chat_id)
        if group is None:
            logger.info("[CHATS] invite link: %s not found", chat_id)
            return None
        if not group.is_admin(requester.user_id):
            logger.warning("[CHATS] invite link: %s is not admin of %s", requester.user_id, chat_id)
            return None

        token = new_invite_token()
        try:
            await self._store.atomic_update({
                paths.chat_info_field(chat_id, "inviteLink"): token,
                paths.chat_info_field(chat_id, "lastUpdated"): now_ms(),
            })
        except StoreError:
            logger.exception("[CHATS] invite link rotation failed for %s", chat_id)
            return None
        return InviteRef(chat_id=chat_id, invite_token=token).to_url(origin)

    async def update_group_info(self, chat_id: str, requester: Identity,
                                updates: Mapping[str, Any]) -> bool:
        """
        Admin-only edit of the group's settings. `updates` uses GroupInfo field
        names; only the keys in EDITABLE_INFO_FIELDS are accepted.
        """
        unknown = set(updates) - set(EDITABLE_INFO_FIELDS)
        if not updates or unknown:
            logger.warning("[CHATS] update_group_info: refused fields %r", sorted(unknown))
            return False
        if "name" in updates:
            name = (updates["name"] or "").strip() if isinstance(updates["name"], str) else ""
            if not name:
                logger.warning("[CHATS] update_group_info: empty name for %s", chat_id)
                return False
            updates = {**updates, "name": name}
        if "embed_images" in updates and not isinstance(updates["embed_images"], bool):
            return False

        group = await self.get_group(chat_id)
        if group is None:
            return False
        if not group.is_admin(requester.user_id):
            logger.warning("[CHATS] update_group_info: %s is not admin of %s", requester.user_id, chat_id)
            return False

        body: Dict[str, Any] = {
            paths.chat_info_field(chat_id, EDITABLE_INFO_FIELDS[k]): v for k, v in updates.items()
        }
        body[paths.chat_info_field(chat_id, "lastUpdated")] = now_ms()
        try:
            await self._store.atomic_update(body)
            return True
        except StoreError:
            logger.exception("[CHATS] update_group_info failed for %s", chat_id)
            return False

    # --------------------------- messages ------------------------------------

    async def send_message(self, chat_id: str, sender: Identity, content: str) -> Optional[str]:
        """
        Post a text message. The message, the chat's last-message summary and
        the sender's read marker go out as one update. Returns the message id.
        """
        content = (content or "").strip()
        if not content:
            return None
        group = await self.get_group(chat_id)
        if group is None or not group.is_member(sender.user_id):
            logger.warning("[CHATS] send_message: %s is not in %s", sender.user_id, chat_id)
            return None

        now = now_ms()
        message = Message(
            message_id=new_message_id(now),
            content=content,
            sender=sender.user_id,
            sender_name=sender.display_name or sender.email,
            timestamp=now,
        )
        updates: Dict[str, Any] = {
            paths.chat_message(chat_id, message.message_id): message.to_store(),
            paths.chat_info_field(chat_id, "lastMessage"): content,
            paths.chat_info_field(chat_id, "lastMessageTime"): now,
            paths.chat_info_field(chat_id, "lastMessageSender"): sender.user_id,
            paths.user_chat_last_read(sender.user_id, chat_id): now,
        }
        if message.sender_name:
            updates[paths.chat_info_field(chat_id, "lastMessageSenderName")] = message.sender_name
        try:
            await self._store.atomic_update(updates)
        except StoreError:
            logger.exception("[CHATS] send_message failed in %s", chat_id)
            return None
        return message.message_id

    async def list_messages(self, chat_id: str, limit: int = 50) -> List[Message]:
        """Most recent `limit` messages, oldest first."""
        if not paths.is_valid_key(chat_id):
            return []
        snap = await read_or_none(self._store, paths.chat_messages(chat_id))
        raw = snap.to_dict() if snap else {}
        out = [Message.from_store(mid, rec) for mid, rec in sorted(raw.items()) if isinstance(rec, dict)]
        return out[-limit:] if limit > 0 else out

    async def add_member(self, chat_id: str, user_id: str, added_by: Identity) -> bool:
        group = await self.get_group(chat_id)
        if group is None or not paths.is_valid_key(user_id):
            return False
        if group.is_member(user_id):
            return False
        if not group.is_member(added_by.user_id):
            logger.warning("[CHATS] add_member: %s is not in %s", added_by.user_id, chat_id)
            return False

        now = now_ms()
        try:
            await self._store.atomic_update({
                paths.chat_member(chat_id, user_id): MembershipRecord(
                    role=Role.MEMBER, joined_at=now, added_by=added_by.user_id
                ).to_store(),
                paths.user_chat(user_id, chat_id): UserChatEntry(
                    chat_id=chat_id, role=Role.MEMBER, joined_at=now
                ).to_store(),
                paths.member_count(chat_id): Increment(1),
            })
            return True
        except StoreError:
            logger.exception("[CHATS] add_member failed for %s in %s", user_id, chat_id)
            return False

    async def remove_member(self, chat_id: str, user_id: str) -> bool:
        group = await self.get_group(chat_id)
        if group is None or not group.is_member(user_id):
            return False
        try:
            await self._store.atomic_update({
                paths.chat_member(chat_id, user_id): None,
                paths.user_chat(user_id, chat_id): None,
                paths.member_count(chat_id): Increment(-1),
            })
            return True
        except StoreError:
            logger.exception("[CHATS] remove_member failed for %s in %s", user_id, chat_id)
            return False

    async def mark_chat_as_read(self, user_id: str, chat_id: str) -> bool:
        if not paths.is_valid_key(user_id) or not paths.is_valid_key(chat_id):
            return False
        # never create an index entry for a chat the user is not in
        if await read_or_none(self._store, paths.user_chat(user_id, chat_id)) is None:
            return False
        try:
            await self._store.atomic_update({paths.user_chat_last_read(user_id, chat_id): now_ms()})
            return True
        except StoreError:
            logger.exception("[CHATS] mark_chat_as_read failed for %s", chat_id)
            return False

    async def ensure_user_record(self, identity: Identity) -> bool:
        """Create users/<uid> on first sign-in. Returns True when a record was written."""
        snap = await read_or_none(self._store, paths.user(identity.user_id))
        updates: Dict[str, Any] = {}
        if snap is None:
            profile = {
                "email": identity.email or "",
                "displayName": identity.display_name,
                "createdAt": now_ms(),
            }
            # field by field: a join may be writing users/<uid>/chats concurrently
            for field, value in profile.items():
                if value is not None:
                    updates[f"{paths.user(identity.user_id)}/{field}"] = value
        elif identity.email and not snap.to_dict().get("email"):
            updates[f"{paths.user(identity.user_id)}/email"] = identity.email

        if not updates:
            return False
        try:
            await self._store.atomic_update(updates)
            return True
        except StoreError:
            logger.exception("[CHATS] ensure_user_record failed for %s", identity.user_id)
            return False
