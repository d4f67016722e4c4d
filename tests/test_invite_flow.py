"""
Tests for the invite view flow and the ChatClient that hosts it.

Test Categories:
    1. InviteFlow.open - outcome -> error slot / recovery / redirect
    2. Sign-in interruption - reference preserved and resumed
    3. ChatClient navigation - guard, session updates, sign-out redirects
"""

import asyncio

import pytest

from apps.client import ChatClient
from conftest import group_tree
from flows.invite_flow import InviteFlow
from models.identity import Credentials
from models.outcome import JoinStatus, Recovery
from session.context import SessionContext
from session.guard import AccessGuard
from shared.routes import InviteRef
from store.base import WriteError
from store.memory_store import InMemoryStore

INVITE = InviteRef(chat_id="G1", invite_token="abc123")


class ParkedWriteStore(InMemoryStore):
    """Holds each write until `release` is set."""

    def __init__(self, data):
        super().__init__(data)
        self.write_started = asyncio.Event()
        self.release = asyncio.Event()

    async def atomic_update(self, updates):
        self.write_started.set()
        await self.release.wait()
        await super().atomic_update(updates)


@pytest.fixture
def session():
    return SessionContext()


@pytest.fixture
def flow(provider, resolver, session):
    return InviteFlow(provider, resolver, session, AccessGuard(login_view="/login"))


@pytest.fixture
def client(provider, store):
    c = ChatClient(provider, store, guard=AccessGuard(login_view="/login"))
    yield c
    c.close()


async def sign_in_u9(provider):
    await provider.sign_in(Credentials(email="u9@example.com", password="pw9"))


# =============================================================================
# InviteFlow.open
# =============================================================================


class TestInviteFlowOpen:

    async def test_join_routes_to_chat_and_clears_invite(self, flow, provider, session):
        await sign_in_u9(provider)
        seen = []
        session.subscribe(lambda new, old: seen.append(new))

        view = await flow.open(INVITE)

        assert view.status == JoinStatus.JOINED
        assert view.error is None
        assert view.redirect_to == "/chat/G1"
        assert session.active_conversation_id == "G1"
        assert session.pending_invite_artifact is None
        # invite set while processing, then cleared by the conversation change
        assert [s.pending_invite_artifact for s in seen] == ["/invite/G1/abc123", None]

    async def test_already_member_routes_to_chat(self, flow, provider, session):
        await provider.sign_in(Credentials(email="u1@example.com", password="pw1"))

        view = await flow.open(INVITE)

        assert view.status == JoinStatus.ALREADY_MEMBER
        assert view.redirect_to == "/chat/G1"

    @pytest.mark.parametrize("ref, status, message", [
        (InviteRef(chat_id="G1", invite_token="WRONG"), JoinStatus.INVALID_INVITE, "Invalid or expired invite link"),
        (InviteRef(chat_id="G2", invite_token="abc123"), JoinStatus.GROUP_NOT_FOUND, "Group not found"),
    ])
    async def test_terminal_failures_fill_error_slot(self, flow, provider, session, ref, status, message):
        await sign_in_u9(provider)

        view = await flow.open(ref)

        assert view.status == status
        assert view.error == message
        assert view.recovery == Recovery.RETURN_HOME
        assert view.loading is False
        assert session.active_conversation_id is None
        assert session.pending_invite_artifact is None

    async def test_write_failure_is_retryable(self, flow, provider, store, monkeypatch):
        await sign_in_u9(provider)
        original = store.atomic_update

        async def reject(updates):
            raise WriteError("offline")

        monkeypatch.setattr(store, "atomic_update", reject)
        view = await flow.open(INVITE)

        assert view.error == "Failed to join group"
        assert view.recovery == Recovery.RETRY

        monkeypatch.setattr(store, "atomic_update", original)
        retried = await flow.retry()

        assert retried.status == JoinStatus.JOINED

    async def test_retry_only_after_join_failed(self, flow):
        assert await flow.retry() is None


# =============================================================================
# Sign-in interruption
# =============================================================================


class TestAuthRequired:

    async def test_signed_out_invite_is_preserved(self, flow, session, store):
        view = await flow.open(INVITE)

        assert view.status == JoinStatus.AUTH_REQUIRED
        assert view.error == "Please sign in to join the group"
        assert view.redirect_to == "/login"
        assert flow.pending_resume == INVITE
        assert session.pending_invite_artifact == "/invite/G1/abc123"
        assert store.writes == []

    async def test_resume_after_sign_in_joins(self, flow, provider, session):
        await flow.open(INVITE)
        await sign_in_u9(provider)

        view = await flow.resume()

        assert view.status == JoinStatus.JOINED
        assert flow.pending_resume is None
        assert session.pending_invite_artifact is None

    async def test_resume_without_identity_does_nothing(self, flow):
        await flow.open(INVITE)

        assert await flow.resume() is None


# =============================================================================
# ChatClient
# =============================================================================


class TestChatClient:

    async def test_invite_link_while_signed_out_resumes_after_sign_in(self, client, store):
        assert await client.navigate("/invite/G1/abc123") == "/login"

        await client.sign_in(Credentials(email="u9@example.com", password="pw9"))

        assert client.current_view == "/chat/G1"
        assert client.session.active_conversation_id == "G1"
        assert "U9" in store.dump()["chats"]["G1"]["members"]
        assert store.dump()["users"]["U9"]["email"] == "u9@example.com"

    async def test_protected_view_redirects_then_returns(self, client):
        assert await client.navigate("/chat/G1") == "/login"

        await client.sign_in(Credentials(email="u1@example.com", password="pw1"))

        assert client.current_view == "/chat/G1"

    async def test_opening_a_chat_clears_pending_invite_and_marks_read(self, client, store):
        await client.sign_in(Credentials(email="u1@example.com", password="pw1"))
        client.session.set_pending_invite("https://chat.example/invite/G1/abc123")

        await client.navigate("/chat/G1")

        assert client.session.active_conversation_id == "G1"
        assert client.session.pending_invite_artifact is None
        assert "lastRead" in store.dump()["users"]["U1"]["chats"]["G1"]

    async def test_sign_out_on_protected_view_redirects(self, client):
        await client.sign_in(Credentials(email="u1@example.com", password="pw1"))
        await client.navigate("/chat/G1")

        await client.sign_out()

        assert client.current_view == "/login"
        assert client.session.active_conversation_id is None

    async def test_failed_invite_stays_on_invite_view(self, client):
        await client.sign_in(Credentials(email="u9@example.com", password="pw9"))

        view = await client.navigate("/invite/G1/nope")

        assert view == "/invite/G1/nope"
        assert client.last_invite.error == "Invalid or expired invite link"

    async def test_sign_out_during_join_leaves_no_stale_watch(self, provider):
        store = ParkedWriteStore(group_tree())
        client = ChatClient(provider, store, guard=AccessGuard(login_view="/login"))
        await sign_in_u9(provider)
        await client.navigate("/")

        task = asyncio.create_task(client.navigate("/invite/G1/abc123"))
        await store.write_started.wait()
        await client.sign_out()
        store.release.set()
        view = await task

        assert view == "/login"
        assert client.current_view == "/login"
        assert client._unwatch is None
        assert provider._listeners == []
        assert client.session.active_conversation_id is None
        # the join itself was not torn by the redirect
        assert "U9" in store.dump()["chats"]["G1"]["members"]
