from types import SimpleNamespace

import pytest

from core.identity import AuthEvent, IdentityService
from services.access_guard import AccessGuard, GuardState


def make_user(user_id=1):
    return SimpleNamespace(id=user_id, email=f"user{user_id}@example.com")


@pytest.fixture
def redirects():
    return []


@pytest.fixture
def guard(redirects):
    return AccessGuard(on_redirect=redirects.append)


def test_starts_loading(guard, redirects):
    assert guard.state is GuardState.LOADING
    assert guard.is_authenticated is False
    assert redirects == []


def test_resolves_to_authenticated(guard, redirects):
    user = make_user()

    assert guard.resolve(user) is GuardState.AUTHENTICATED
    assert guard.user is user
    assert guard.redirect_to is None
    assert redirects == []


def test_unauthenticated_redirects_to_login(guard, redirects):
    assert guard.resolve(None) is GuardState.UNAUTHENTICATED
    assert guard.redirect_to == "/auth/login"
    assert redirects == ["/auth/login"]


def test_redirect_fires_once_per_transition(guard, redirects):
    guard.resolve(None)
    guard.resolve(None)
    guard.resolve(None)

    assert redirects == ["/auth/login"]


def test_sign_out_after_authenticated_redirects(guard, redirects):
    guard.resolve(make_user())
    guard.resolve(None)
    guard.resolve(make_user())
    guard.resolve(None)

    assert redirects == ["/auth/login", "/auth/login"]


def test_custom_login_path(redirects):
    guard = AccessGuard(on_redirect=redirects.append, login_path="/signin")

    guard.resolve(None)

    assert redirects == ["/signin"]


def test_without_redirect_callback():
    guard = AccessGuard()

    guard.resolve(None)

    assert guard.redirect_to == "/auth/login"


class TestWatchingIdentity:

    @pytest.fixture
    def identity(self):
        return IdentityService()

    def test_sign_out_of_guarded_user(self, guard, redirects, identity):
        guard.resolve(make_user(7))
        guard.watch(identity)

        identity._publish(AuthEvent.SIGNED_OUT, 7)

        assert guard.state is GuardState.UNAUTHENTICATED
        assert redirects == ["/auth/login"]

    def test_other_users_are_ignored(self, guard, redirects, identity):
        guard.resolve(make_user(7))
        guard.watch(identity)

        identity._publish(AuthEvent.SIGNED_OUT, 8)

        assert guard.is_authenticated
        assert redirects == []

    def test_release_stops_following(self, guard, redirects, identity):
        guard.resolve(make_user(7))
        guard.watch(identity)
        guard.release()

        identity._publish(AuthEvent.SIGNED_OUT, 7)

        assert guard.is_authenticated
        assert redirects == []

    def test_session_expiry_redirects(self, guard, redirects, identity):
        guard.resolve(make_user(3))
        guard.watch(identity)

        identity._publish(AuthEvent.SESSION_EXPIRED, 3)
        identity._publish(AuthEvent.SESSION_EXPIRED, 3)

        assert redirects == ["/auth/login"]

    def test_only_the_watched_session_counts(self, guard, redirects, identity):
        guard.resolve(make_user(7))
        guard.watch(identity, token_id="session-b")

        identity._publish(AuthEvent.SIGNED_OUT, 7, "session-a")
        assert guard.is_authenticated
        assert redirects == []

        identity._publish(AuthEvent.SESSION_EXPIRED, 7, "session-b")
        assert guard.state is GuardState.UNAUTHENTICATED
        assert redirects == ["/auth/login"]
