"""Tests for the Firebase-backed store, with the admin SDK reference replaced by a fake."""

import pytest
from firebase_admin import exceptions

from store.base import Increment, NotFound, WriteError
from store.firebase_store import FirebaseStore, encode_updates


class FakeRef:
    def __init__(self, db, path):
        self.db = db
        self.path = path

    def get(self):
        return self.db.values.get(self.path)

    def update(self, body):
        if self.db.fail:
            raise exceptions.UnavailableError("service unavailable")
        self.db.patches.append((self.path, body))


class FakeDb:
    def __init__(self, values=None, fail=False):
        self.values = values or {}
        self.fail = fail
        self.patches = []

    def reference(self, path):
        return FakeRef(self, path)


class TestEncodeUpdates:

    def test_increment_becomes_server_value(self):
        body = encode_updates({
            "/chats/G1/info/memberCount": Increment(1),
            "chats/G1/members/U9": {"role": "member", "joinedAt": 5},
            "users/U9/chats/G1": None,
        })

        assert body == {
            "chats/G1/info/memberCount": {".sv": {"increment": 1}},
            "chats/G1/members/U9": {"role": "member", "joinedAt": 5},
            "users/U9/chats/G1": None,
        }


class TestFirebaseStore:

    async def test_read_value(self):
        fake = FakeDb({"chats/G1": {"info": {"name": "x"}}})

        snap = await FirebaseStore(fake.reference).read("chats/G1")

        assert snap.to_dict() == {"info": {"name": "x"}}

    async def test_read_missing_raises_not_found(self):
        with pytest.raises(NotFound):
            await FirebaseStore(FakeDb().reference).read("chats/G1")

    async def test_update_is_one_root_patch(self):
        fake = FakeDb()

        await FirebaseStore(fake.reference).atomic_update({
            "chats/G1/members/U9": {"role": "member"},
            "chats/G1/info/memberCount": Increment(1),
        })

        assert fake.patches == [("/", {
            "chats/G1/members/U9": {"role": "member"},
            "chats/G1/info/memberCount": {".sv": {"increment": 1}},
        })]

    async def test_sdk_error_becomes_write_error(self):
        with pytest.raises(WriteError):
            await FirebaseStore(FakeDb(fail=True).reference).atomic_update({"a/b": 1})
