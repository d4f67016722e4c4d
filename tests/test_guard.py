"""Tests for AccessGuard.authorize() and its re-evaluating watch()."""

from auth.provider import ObservableIdentity
from models.identity import Allow, Credentials, Deny
from session.guard import AccessGuard


class TestAuthorize:

    def test_denies_without_identity(self):
        decision = AccessGuard(login_view="/login").authorize(None, "chat_view")

        assert decision == Deny(redirect_to="/login", requested_view="chat_view")

    def test_allows_with_identity(self, u1):
        decision = AccessGuard().authorize(u1, "/chat/G1")

        assert decision == Allow(view="/chat/G1")


class TestWatch:

    async def test_sign_out_produces_new_deny(self, provider):
        decisions = []
        guard = AccessGuard(login_view="/login")
        await provider.sign_in(Credentials(email="u1@example.com", password="pw1"))

        guard.watch(provider, "/chat/G1", decisions.append)
        await provider.sign_out()

        assert decisions == [
            Allow(view="/chat/G1"),
            Deny(redirect_to="/login", requested_view="/chat/G1"),
        ]

    def test_sign_in_after_deny_allows(self, u9):
        decisions = []
        provider = ObservableIdentity()

        AccessGuard().watch(provider, "/", decisions.append)
        provider._publish(u9)

        assert [type(d) for d in decisions] == [Deny, Allow]

    def test_unsubscribe_stops_evaluation(self, u9):
        decisions = []
        provider = ObservableIdentity()

        unsubscribe = AccessGuard().watch(provider, "/", decisions.append)
        unsubscribe()
        provider._publish(u9)

        assert len(decisions) == 1
