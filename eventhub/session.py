"""Session manager: who is signed in for one browser session.

The manager is built per request from the persisted session cookies,
bootstrapped once, and closed when the response is done. It listens to the
auth provider's session changes and republishes the signed-in user's Profile
to its own subscribers, which the web layer uses to keep cookies in sync.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .auth import (
    AuthChangeEvent,
    AuthError,
    AuthSession,
    AuthUser,
    Subscription,
    notify_all,
)
from .backend import Backend
from .gateway import GatewayError, NotFoundError
from .records import Profile, ProfileCreate, ProfileUpdate

logger = logging.getLogger(__name__)

SessionListener = Callable[[AuthChangeEvent, Profile | None, AuthSession | None], None]


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a session operation; callers branch on ``error``."""

    error: AuthError | None = None
    redirect_to: str | None = None
    notice: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionManager:
    def __init__(self, backend: Backend, *, site_url: str = ""):
        self.auth = backend.auth
        self.gateway = backend.gateway
        self.site_url = site_url.rstrip("/")
        self.user: Profile | None = None
        self.session: AuthSession | None = None
        self.loading = True
        self._closed = False
        self._listeners: list[Subscription] = []
        self._upstream = self.auth.on_auth_state_change(self.on_session_change)

    def __enter__(self) -> SessionManager:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._closed = True
        self._upstream.unsubscribe()
        for listener in list(self._listeners):
            listener.unsubscribe()

    def subscribe(self, listener: SessionListener) -> Subscription:
        return Subscription(listener, self._listeners)

    # Lifecycle

    def bootstrap(
        self, access_token: str | None = None, refresh_token: str | None = None
    ) -> Profile | None:
        """Adopt the persisted session, if any, and publish its Profile."""
        try:
            session = None
            if access_token or refresh_token:
                session = self.auth.restore_session(access_token or "", refresh_token)
            self._publish(session)
        except (AuthError, GatewayError) as exc:
            logger.warning("Session bootstrap failed: %s", exc)
            self.session = None
            self.user = None
        finally:
            self.loading = False
        return self.user

    def on_session_change(
        self, event: AuthChangeEvent, session: AuthSession | None
    ) -> None:
        if self._closed:
            return
        self._publish(session)
        notify_all(self._listeners, event, self.user, session)

    def _publish(self, session: AuthSession | None) -> None:
        self.session = session
        if session is None:
            self.user = None
            return
        try:
            self.user = self.ensure_profile(session.user)
        except GatewayError as exc:
            logger.error("Could not load profile for %s: %s", session.user.id, exc)
            self.user = None

    def ensure_profile(
        self,
        user: AuthUser,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Profile:
        """Return the user's Profile, creating it when sign-up left none behind."""
        try:
            return self.gateway.get_profile(user.id)
        except NotFoundError:
            pass
        metadata = user.user_metadata or {}
        logger.info("Creating profile for %s", user.id)
        return self.gateway.create_profile(
            ProfileCreate(
                id=user.id,
                first_name=first_name or metadata.get("first_name") or "",
                last_name=last_name or metadata.get("last_name") or "",
                email=user.email,
            )
        )

    # Operations

    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            self.auth.sign_in_with_password(email, password)
        except AuthError as exc:
            logger.info("Sign in failed for %s: %s", email, exc.message)
            return AuthResult(error=exc)
        if self.session is None:
            self._publish(self.auth.get_session())
        if self.user is None:
            return AuthResult(
                error=AuthError("We couldn't load your profile. Please try again.")
            )
        return AuthResult(redirect_to="/dashboard")

    def sign_up(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> AuthResult:
        try:
            user, session = self.auth.sign_up(
                email,
                password,
                {"first_name": first_name, "last_name": last_name},
            )
        except AuthError as exc:
            logger.info("Sign up failed for %s: %s", email, exc.message)
            return AuthResult(error=exc)
        if session is None:
            # Confirmation pending; the Profile is created on first sign-in.
            return AuthResult(
                redirect_to="/login",
                notice="Check your email to confirm your account, then sign in.",
            )
        try:
            self.user = self.ensure_profile(
                user, first_name=first_name, last_name=last_name
            )
        except GatewayError as exc:
            logger.error(
                "Profile creation failed for %s, retrying on next sign-in: %s",
                user.id,
                exc,
            )
            return AuthResult(
                error=AuthError(
                    "Your account was created but your profile could not be saved. "
                    "Sign in to finish setting it up.",
                    code="profile_create_failed",
                )
            )
        self.session = session
        return AuthResult(redirect_to="/dashboard")

    def sign_out(self) -> AuthResult:
        try:
            self.auth.sign_out()
        except AuthError as exc:
            logger.warning("Provider sign out failed: %s", exc.message)
        if self.session is not None or self.user is not None:
            self.on_session_change(AuthChangeEvent.SIGNED_OUT, None)
        return AuthResult(redirect_to="/")

    def request_password_reset(self, email: str) -> AuthResult:
        try:
            self.auth.reset_password_for_email(
                email, redirect_to=f"{self.site_url}/reset-password"
            )
        except AuthError as exc:
            logger.info("Password reset request failed for %s: %s", email, exc.message)
            return AuthResult(error=exc)
        return AuthResult(notice="Check your inbox for a password reset link.")

    def verify_recovery(self, token: str) -> AuthResult:
        try:
            self.auth.verify_recovery(token)
        except AuthError as exc:
            return AuthResult(error=exc)
        if self.session is None:
            self._publish(self.auth.get_session())
        return AuthResult()

    def reset_password(self, new_password: str) -> AuthResult:
        if self.session is None:
            return AuthResult(
                error=AuthError(
                    "Your reset link has expired. Request a new one.",
                    code="session_missing",
                )
            )
        try:
            self.auth.update_user(password=new_password)
        except AuthError as exc:
            return AuthResult(error=exc)
        self.sign_out()
        return AuthResult(
            redirect_to="/login",
            notice="Your password has been reset. Please sign in with your new password.",
        )

    def update_profile(self, changes: ProfileUpdate) -> Profile:
        if self.user is None:
            raise AuthError("Not signed in", code="session_missing")
        self.user = self.gateway.update_profile(self.user.id, changes)
        return self.user
