# Realtime store layout, shared by every writer so multi-path updates stay consistent.
import re

# Keys in the realtime database cannot contain . # $ [ ] / or control characters
_ILLEGAL_KEY = re.compile(r"[.#$\[\]/\x00-\x1f\x7f]")


def is_valid_key(key: str) -> bool:
    return bool(key) and isinstance(key, str) and not _ILLEGAL_KEY.search(key)


def _key(key: str) -> str:
    if not is_valid_key(key):
        raise ValueError(f"invalid store key: {key!r}")
    return key


def chat(chat_id: str) -> str:
    return f"chats/{_key(chat_id)}"


def chat_info(chat_id: str) -> str:
    return f"{chat(chat_id)}/info"


def chat_info_field(chat_id: str, field: str) -> str:
    return f"{chat_info(chat_id)}/{_key(field)}"


def member_count(chat_id: str) -> str:
    return chat_info_field(chat_id, "memberCount")


def chat_messages(chat_id: str) -> str:
    return f"{chat(chat_id)}/messages"


def chat_message(chat_id: str, message_id: str) -> str:
    return f"{chat_messages(chat_id)}/{_key(message_id)}"


def chat_members(chat_id: str) -> str:
    return f"{chat(chat_id)}/members"


def chat_member(chat_id: str, user_id: str) -> str:
    return f"{chat_members(chat_id)}/{_key(user_id)}"


def user(user_id: str) -> str:
    return f"users/{_key(user_id)}"


def user_chats(user_id: str) -> str:
    return f"{user(user_id)}/chats"


def user_chat(user_id: str, chat_id: str) -> str:
    return f"{user_chats(user_id)}/{_key(chat_id)}"


def user_chat_last_read(user_id: str, chat_id: str) -> str:
    return f"{user_chat(user_id, chat_id)}/lastRead"


def split(path: str) -> list[str]:
    return [p for p in path.strip("/").split("/") if p]
