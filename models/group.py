from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        try:
            return cls(value)
        except ValueError:
            return cls.MEMBER


class MembershipRecord(BaseModel):
    role: Role = Role.MEMBER
    joined_at: int                      # epoch ms
    added_by: Optional[str] = None

    @classmethod
    def from_store(cls, data: Dict[str, Any]) -> "MembershipRecord":
        return cls(
            role=Role.parse(data.get("role")),
            joined_at=data.get("joinedAt") or 0,
            added_by=data.get("addedBy"),
        )

    def to_store(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"role": self.role.value, "joinedAt": self.joined_at}
        if self.added_by:
            out["addedBy"] = self.added_by
        return out


class UserChatEntry(BaseModel):
    """One row of users/<uid>/chats: the back-reference used to list a user's groups."""
    chat_id: str
    role: Role = Role.MEMBER
    joined_at: int
    last_read: Optional[int] = None

    @classmethod
    def from_store(cls, chat_id: str, data: Dict[str, Any]) -> "UserChatEntry":
        return cls(
            chat_id=chat_id,
            role=Role.parse(data.get("role")),
            joined_at=data.get("joinedAt") or 0,
            last_read=data.get("lastRead"),
        )

    def to_store(self) -> Dict[str, Any]:
        # lastRead is owned by mark_chat_as_read, never written here
        return {"joinedAt": self.joined_at, "role": self.role.value}


class GroupInfo(BaseModel):
    name: str = ""
    type: str = "group"
    created_at: Optional[int] = None
    created_by: Optional[str] = None
    invite_token: Optional[str] = None
    member_count: int = Field(default=0, ge=0)
    last_updated: Optional[int] = None
    last_message: Optional[str] = None
    last_message_time: Optional[int] = None
    last_message_sender: Optional[str] = None
    last_message_sender_name: Optional[str] = None
    embed_images: Optional[bool] = None
    admins: Dict[str, bool] = Field(default_factory=dict)

    @classmethod
    def from_store(cls, data: Dict[str, Any]) -> "GroupInfo":
        return cls(
            name=data.get("name") or "",
            type=data.get("type") or "group",
            created_at=data.get("createdAt"),
            created_by=data.get("createdBy"),
            invite_token=data.get("inviteLink"),
            member_count=max(int(data.get("memberCount") or 0), 0),
            last_updated=data.get("lastUpdated"),
            last_message=data.get("lastMessage"),
            last_message_time=data.get("lastMessageTime"),
            last_message_sender=data.get("lastMessageSender"),
            last_message_sender_name=data.get("lastMessageSenderName"),
            embed_images=data.get("embedImages"),
            admins=dict(data.get("admins") or {}),
        )

    def to_store(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.type,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "inviteLink": self.invite_token,
            "memberCount": self.member_count,
            "lastUpdated": self.last_updated,
            "lastMessage": self.last_message,
            "lastMessageTime": self.last_message_time,
            "lastMessageSender": self.last_message_sender,
            "lastMessageSenderName": self.last_message_sender_name,
            "embedImages": self.embed_images,
            "admins": self.admins or None,
        }
        # 🚫 drop None values, the store treats them as deletes
        return {k: v for k, v in data.items() if v is not None}


class Group(BaseModel):
    chat_id: str
    info: GroupInfo
    members: Dict[str, MembershipRecord] = Field(default_factory=dict)

    @classmethod
    def from_store(cls, chat_id: str, data: Dict[str, Any]) -> Optional["Group"]:
        """None when the chat node or its info block is missing."""
        if not isinstance(data, dict) or not data.get("info"):
            return None
        members = {
            uid: MembershipRecord.from_store(rec)
            for uid, rec in (data.get("members") or {}).items()
            if isinstance(rec, dict)
        }
        return cls(chat_id=chat_id, info=GroupInfo.from_store(data["info"]), members=members)

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def is_admin(self, user_id: str) -> bool:
        rec = self.members.get(user_id)
        return bool(self.info.admins.get(user_id)) or (rec is not None and rec.role == Role.ADMIN)


class Message(BaseModel):
    """One entry under chats/<id>/messages, keyed by a time-ordered id."""
    message_id: str
    content: str
    sender: str
    sender_name: Optional[str] = None
    timestamp: int                      # epoch ms

    @classmethod
    def from_store(cls, message_id: str, data: Dict[str, Any]) -> "Message":
        return cls(
            message_id=message_id,
            content=data.get("content") or "",
            sender=data.get("sender") or "",
            sender_name=data.get("senderName"),
            timestamp=data.get("timestamp") or 0,
        )

    def to_store(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"content": self.content, "sender": self.sender, "timestamp": self.timestamp}
        if self.sender_name:
            out["senderName"] = self.sender_name
        return out
