"""
Shared fixtures for the client core tests.

Everything runs against InMemoryStore and LocalIdentityProvider; no network.
Tracing is switched off before any project module creates the Langfuse client.
"""

import os

os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from auth.provider import LocalIdentityProvider  # noqa: E402
from membership.resolver import MembershipResolver  # noqa: E402
from models.identity import Credentials, Identity  # noqa: E402
from shared import time as clock  # noqa: E402
from store.chat_store import ChatStore  # noqa: E402
from store.memory_store import InMemoryStore  # noqa: E402

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
FIXED_NOW_MS = clock.to_epoch_ms(FIXED_NOW)


def group_tree(invite_token="abc123", members=("U1", "U2")):
    """A chats/ + users/ tree for one group `G1` with consistent indexes."""
    return {
        "chats": {
            "G1": {
                "info": {
                    "name": "Hiking",
                    "type": "group",
                    "inviteLink": invite_token,
                    "memberCount": len(members),
                    "createdBy": members[0] if members else None,
                    "admins": {members[0]: True} if members else {},
                },
                "members": {
                    uid: {"role": "admin" if i == 0 else "member", "joinedAt": 1}
                    for i, uid in enumerate(members)
                },
            }
        },
        "users": {uid: {"chats": {"G1": {"joinedAt": 1, "role": "admin" if i == 0 else "member"}}}
                  for i, uid in enumerate(members)},
    }


@pytest.fixture(autouse=True)
def fixed_clock():
    clock.set_fake_utcnow(FIXED_NOW)
    yield FIXED_NOW
    clock.clear_fake_utcnow()


@pytest.fixture
def store():
    return InMemoryStore(group_tree())


@pytest.fixture
def resolver(store):
    return MembershipResolver(store)


@pytest.fixture
def chat_store(store):
    return ChatStore(store)


@pytest.fixture
def u1():
    return Identity(user_id="U1", email="u1@example.com", display_name="Una")


@pytest.fixture
def u9():
    return Identity(user_id="U9", email="u9@example.com", display_name="Nina")


@pytest.fixture
def provider(u1, u9):
    p = LocalIdentityProvider()
    p.register(Credentials(email="u1@example.com", password="pw1"), u1)
    p.register(Credentials(email="u9@example.com", password="pw9"), u9)
    return p
