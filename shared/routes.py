from __future__ import annotations

from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from pydantic import BaseModel

from shared.config import LOGIN_VIEW

CHAT_PREFIX = "/chat"
INVITE_PREFIX = "/invite"


def chat_view(chat_id: str) -> str:
    return f"{CHAT_PREFIX}/{quote(chat_id, safe='')}"


def chat_id_from_view(view: str) -> Optional[str]:
    parts = _split(view)
    if len(parts) == 2 and "/" + parts[0] == CHAT_PREFIX and parts[1]:
        return parts[1]
    return None


def is_public_view(view: str) -> bool:
    return urlsplit(view).path == LOGIN_VIEW


def _split(view: str) -> list[str]:
    path = urlsplit(view).path
    return [unquote(p) for p in path.strip("/").split("/")] if path.strip("/") else []


class InviteRef(BaseModel):
    """
    A navigable invite reference: the (chat_id, invite_token) pair carried by
    the `/invite/<chat_id>/<token>` view. The token is kept verbatim.
    """
    chat_id: str
    invite_token: str

    model_config = {"frozen": True}

    @classmethod
    def from_view(cls, view: str) -> Optional["InviteRef"]:
        parts = _split(view)
        if len(parts) != 3 or "/" + parts[0] != INVITE_PREFIX:
            return None
        if not parts[1] or not parts[2]:
            return None
        return cls(chat_id=parts[1], invite_token=parts[2])

    def to_view(self) -> str:
        return f"{INVITE_PREFIX}/{quote(self.chat_id, safe='')}/{quote(self.invite_token, safe='')}"

    def to_url(self, origin: str) -> str:
        return origin.rstrip("/") + self.to_view()
