from __future__ import annotations

import pytest

from eventhub.auth import AuthChangeEvent, AuthError, AuthUser
from eventhub.backend import build_sql_backend
from eventhub.config import settings
from eventhub.gateway import GatewayError
from eventhub.records import ProfileUpdate
from eventhub.session import SessionManager

PASSWORD = "correct-horse"


@pytest.fixture()
def fresh_manager(session):
    """A second browser session sharing the same database."""
    backend = build_sql_backend(session, settings)
    with SessionManager(backend, site_url="http://testserver") as current:
        yield current


def test_bootstrap_without_persisted_session(fresh_manager):
    assert fresh_manager.loading is True

    assert fresh_manager.bootstrap() is None

    assert fresh_manager.user is None
    assert fresh_manager.session is None
    assert fresh_manager.loading is False


def test_bootstrap_restores_persisted_session(manager, register, fresh_manager):
    ada = register("ada@example.com")
    tokens = manager.session

    user = fresh_manager.bootstrap(tokens.access_token, tokens.refresh_token)

    assert user == ada
    assert fresh_manager.session.user.id == ada.id
    assert fresh_manager.loading is False


def test_bootstrap_with_stale_tokens_publishes_no_user(fresh_manager):
    assert fresh_manager.bootstrap("revoked", "revoked") is None
    assert fresh_manager.loading is False


def test_bootstrap_failure_still_finishes_loading(fresh_manager, monkeypatch):
    def broken(*_args):
        raise AuthError("Auth service unavailable")

    monkeypatch.setattr(fresh_manager.auth, "restore_session", broken)

    assert fresh_manager.bootstrap("token", "refresh") is None
    assert fresh_manager.loading is False


def test_session_change_is_idempotent(manager, register):
    ada = register("ada@example.com")
    current = manager.session
    received = []
    manager.subscribe(lambda event, user, session: received.append(user))

    manager.on_session_change(AuthChangeEvent.TOKEN_REFRESHED, current)
    manager.on_session_change(AuthChangeEvent.TOKEN_REFRESHED, current)

    assert manager.user == ada
    assert received == [ada, ada]


def test_listeners_receive_sign_in_and_sign_out(manager, register):
    register("ada@example.com")
    manager.sign_out()
    received = []
    manager.subscribe(lambda event, user, session: received.append((event, user)))

    manager.sign_in("ada@example.com", PASSWORD)
    manager.sign_out()

    assert [event for event, _ in received] == [
        AuthChangeEvent.SIGNED_IN,
        AuthChangeEvent.SIGNED_OUT,
    ]
    assert received[0][1].email == "ada@example.com"
    assert received[1][1] is None


def test_unsubscribed_listener_receives_nothing(manager, register):
    received = []
    subscription = manager.subscribe(lambda *args: received.append(args))
    subscription.unsubscribe()

    register("ada@example.com")

    assert received == []


def test_closed_manager_ignores_session_changes(manager, register):
    register("ada@example.com")
    received = []
    manager.subscribe(lambda *args: received.append(args))
    current = manager.session

    manager.close()
    manager.on_session_change(AuthChangeEvent.SIGNED_OUT, None)
    manager.auth.sign_out()

    assert received == []
    assert manager.session == current


def test_sign_in_success_redirects_to_dashboard(manager, register):
    register("ada@example.com")
    manager.sign_out()

    result = manager.sign_in("ada@example.com", PASSWORD)

    assert result.ok
    assert result.redirect_to == "/dashboard"
    assert manager.user.email == "ada@example.com"


def test_sign_in_failure_returns_error_result(manager, register):
    register("ada@example.com")
    manager.sign_out()

    result = manager.sign_in("ada@example.com", "not-the-password")

    assert not result.ok
    assert result.error.message == "Invalid login credentials"
    assert result.redirect_to is None
    assert manager.user is None


def test_sign_up_creates_profile_from_names(manager):
    result = manager.sign_up("grace@example.com", PASSWORD, "Grace", "Hopper")

    assert result.ok
    assert result.redirect_to == "/dashboard"
    assert manager.user.full_name == "Grace Hopper"
    assert manager.gateway.get_profile(manager.user.id).email == "grace@example.com"


def test_sign_up_duplicate_email_returns_error(manager, register):
    register("ada@example.com")
    manager.sign_out()

    result = manager.sign_up("ada@example.com", PASSWORD, "Ada", "Again")

    assert not result.ok
    assert result.error.code == "user_already_exists"


def test_sign_up_profile_failure_heals_on_next_sign_in(manager, monkeypatch):
    create_profile = manager.gateway.create_profile
    outage = {"on": True}

    def flaky_create_profile(payload):
        if outage["on"]:
            raise GatewayError("Failed to create profile")
        return create_profile(payload)

    monkeypatch.setattr(manager.gateway, "create_profile", flaky_create_profile)

    result = manager.sign_up("grace@example.com", PASSWORD, "Grace", "Hopper")

    assert not result.ok
    assert result.error.code == "profile_create_failed"
    assert manager.user is None

    outage["on"] = False
    manager.sign_out()
    healed = manager.sign_in("grace@example.com", PASSWORD)

    assert healed.ok
    assert manager.user.first_name == "Grace"
    assert manager.user.last_name == "Hopper"


def test_sign_up_pending_confirmation_redirects_to_login(manager, monkeypatch):
    def needs_confirmation(email, password, metadata=None):
        return AuthUser(id="pending-user", email=email, user_metadata=metadata), None

    monkeypatch.setattr(manager.auth, "sign_up", needs_confirmation)

    result = manager.sign_up("grace@example.com", PASSWORD, "Grace", "Hopper")

    assert result.ok
    assert result.redirect_to == "/login"
    assert "confirm" in result.notice
    assert manager.user is None


def test_sign_out_clears_user_even_if_provider_fails(manager, register, monkeypatch):
    register("ada@example.com")

    def broken():
        raise AuthError("Network error")

    monkeypatch.setattr(manager.auth, "sign_out", broken)

    result = manager.sign_out()

    assert result.redirect_to == "/"
    assert manager.user is None
    assert manager.session is None


def test_password_reset_flow(manager, register, monkeypatch):
    register("ada@example.com")
    manager.sign_out()
    links = []
    monkeypatch.setattr(
        manager.auth, "send_recovery_link", lambda email, link: links.append(link)
    )

    requested = manager.request_password_reset("ada@example.com")
    assert requested.ok
    assert links[0].startswith("http://testserver/reset-password?token_hash=")
    token = links[0].split("token_hash=", 1)[1].split("&", 1)[0]

    assert manager.verify_recovery(token).ok
    assert manager.user.email == "ada@example.com"

    reset = manager.reset_password("difference-engine")

    assert reset.ok
    assert reset.redirect_to == "/login"
    assert manager.user is None
    assert manager.sign_in("ada@example.com", "difference-engine").ok


def test_reset_password_without_session_returns_error(manager):
    result = manager.reset_password("difference-engine")

    assert not result.ok
    assert result.error.code == "session_missing"


def test_verify_recovery_with_bad_token_returns_error(manager):
    result = manager.verify_recovery("not-a-token")

    assert not result.ok
    assert result.error.code == "otp_expired"


def test_update_profile_republishes_current_user(manager, register):
    register("ada@example.com")

    updated = manager.update_profile(
        ProfileUpdate(bio="First programmer.", avatar_url="https://example.com/ada.png")
    )

    assert updated.bio == "First programmer."
    assert manager.user.avatar_url == "https://example.com/ada.png"


def test_update_profile_requires_sign_in(manager):
    with pytest.raises(AuthError):
        manager.update_profile(ProfileUpdate(bio="Anonymous"))
