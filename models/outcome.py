from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel

from shared.routes import InviteRef


class JoinStatus(str, Enum):
    JOINED = "joined"
    ALREADY_MEMBER = "already_member"       # terminal success, nothing written
    GROUP_NOT_FOUND = "group_not_found"
    INVALID_INVITE = "invalid_invite"
    JOIN_FAILED = "join_failed"             # transient, store/network origin
    AUTH_REQUIRED = "auth_required"


class Recovery(str, Enum):
    OPEN_CHAT = "open_chat"
    RETURN_HOME = "return_home"
    RETRY = "retry"
    SIGN_IN = "sign_in"


SUCCESS_STATUSES = {JoinStatus.JOINED, JoinStatus.ALREADY_MEMBER}

# User-visible copy for each status; successes have none.
MESSAGES = {
    JoinStatus.GROUP_NOT_FOUND: "Group not found",
    JoinStatus.INVALID_INVITE: "Invalid or expired invite link",
    JoinStatus.JOIN_FAILED: "Failed to join group",
    JoinStatus.AUTH_REQUIRED: "Please sign in to join the group",
}

RECOVERY = {
    JoinStatus.JOINED: Recovery.OPEN_CHAT,
    JoinStatus.ALREADY_MEMBER: Recovery.OPEN_CHAT,
    JoinStatus.GROUP_NOT_FOUND: Recovery.RETURN_HOME,
    JoinStatus.INVALID_INVITE: Recovery.RETURN_HOME,
    JoinStatus.JOIN_FAILED: Recovery.RETRY,
    JoinStatus.AUTH_REQUIRED: Recovery.SIGN_IN,
}


class JoinOutcome(BaseModel):
    status: JoinStatus
    chat_id: str
    user_id: Optional[str] = None
    detail: Optional[str] = None            # diagnostic only, never shown to the user

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def message(self) -> Optional[str]:
        return MESSAGES.get(self.status)

    @property
    def recovery(self) -> Recovery:
        return RECOVERY[self.status]


class InviteViewState(BaseModel):
    """What the invite view renders: a loading flag, an error slot and where to go next."""
    invite: InviteRef
    loading: bool = True
    status: Optional[JoinStatus] = None
    error: Optional[str] = None
    recovery: Optional[Recovery] = None
    redirect_to: Optional[str] = None
