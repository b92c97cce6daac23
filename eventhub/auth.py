"""Auth providers: the identity half of the backend service."""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from . import models
from .utils import utcnow

logger = logging.getLogger(__name__)

MIN_PROVIDER_PASSWORD_LENGTH = 6


class AuthChangeEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    user: AuthUser
    expires_at: datetime | None = None


class AuthError(Exception):
    """Raised by a provider when it rejects an auth request."""

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class Subscription:
    """Handle returned by observer registrations.

    A subscription stops receiving notifications as soon as it is
    unsubscribed, even if a notification is already being dispatched.
    """

    def __init__(self, callback: Callable[..., None], registry: list[Subscription]):
        self.callback = callback
        self.active = True
        self._registry = registry
        registry.append(self)

    def unsubscribe(self) -> None:
        self.active = False
        if self in self._registry:
            self._registry.remove(self)

    def notify(self, *args: Any) -> None:
        if self.active:
            self.callback(*args)


def notify_all(registry: list[Subscription], *args: Any) -> None:
    for subscription in list(registry):
        subscription.notify(*args)


class AuthProvider(ABC):
    """Identity service contract, modelled on hosted GoTrue semantics."""

    def __init__(self) -> None:
        self._session: AuthSession | None = None
        self._subscriptions: list[Subscription] = []

    def get_session(self) -> AuthSession | None:
        return self._session

    def current_user_id(self) -> str | None:
        return self._session.user.id if self._session else None

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()

    def on_auth_state_change(
        self, callback: Callable[[AuthChangeEvent, AuthSession | None], None]
    ) -> Subscription:
        return Subscription(callback, self._subscriptions)

    def _set_session(
        self, event: AuthChangeEvent, session: AuthSession | None
    ) -> None:
        self._session = session
        notify_all(self._subscriptions, event, session)

    @abstractmethod
    def restore_session(
        self, access_token: str, refresh_token: str | None
    ) -> AuthSession | None:
        """Adopt persisted tokens, refreshing them when the access token expired."""

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    @abstractmethod
    def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> tuple[AuthUser, AuthSession | None]:
        """Create an identity; the session is None while email confirmation is pending."""

    @abstractmethod
    def sign_out(self) -> None: ...

    @abstractmethod
    def reset_password_for_email(self, email: str, *, redirect_to: str) -> None: ...

    @abstractmethod
    def verify_recovery(self, token: str) -> AuthSession: ...

    @abstractmethod
    def update_user(self, *, password: str) -> AuthUser: ...


def log_recovery_link(email: str, link: str) -> None:
    logger.info("Password recovery link for %s: %s", email, link)


class LocalAuthProvider(AuthProvider):
    """Password auth stored in the SQL backend's ``auth_*`` tables."""

    def __init__(
        self,
        db: Session,
        *,
        access_token_ttl: timedelta = timedelta(hours=1),
        recovery_token_ttl: timedelta = timedelta(minutes=30),
        send_recovery_link: Callable[[str, str], None] = log_recovery_link,
    ):
        super().__init__()
        self.db = db
        self.access_token_ttl = access_token_ttl
        self.recovery_token_ttl = recovery_token_ttl
        self.send_recovery_link = send_recovery_link

    @staticmethod
    def _to_user(row: models.AuthUser) -> AuthUser:
        return AuthUser(
            id=row.id, email=row.email, user_metadata=dict(row.user_metadata or {})
        )

    def _issue_session(self, user: models.AuthUser) -> AuthSession:
        row = models.AuthSession(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            user_id=user.id,
            expires_at=utcnow() + self.access_token_ttl,
        )
        self.db.add(row)
        self.db.flush()
        return AuthSession(
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            user=self._to_user(user),
            expires_at=row.expires_at,
        )

    def _find_user(self, email: str) -> models.AuthUser | None:
        normalized = (email or "").strip().lower()
        stmt = select(models.AuthUser).where(models.AuthUser.email == normalized)
        return self.db.scalars(stmt).first()

    def restore_session(
        self, access_token: str, refresh_token: str | None
    ) -> AuthSession | None:
        row = self.db.get(models.AuthSession, access_token) if access_token else None
        if row is not None and row.expires_at > utcnow():
            self._session = AuthSession(
                access_token=row.access_token,
                refresh_token=row.refresh_token,
                user=self._to_user(row.user),
                expires_at=row.expires_at,
            )
            return self._session
        if not refresh_token:
            return None
        stmt = select(models.AuthSession).where(
            models.AuthSession.refresh_token == refresh_token
        )
        stale = self.db.scalars(stmt).first()
        if stale is None:
            return None
        user = stale.user
        self.db.delete(stale)
        session = self._issue_session(user)
        self._set_session(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        user = self._find_user(email)
        if user is None or not check_password_hash(user.password_hash, password or ""):
            raise AuthError("Invalid login credentials", code="invalid_credentials")
        session = self._issue_session(user)
        logger.info("User %s signed in", user.id)
        self._set_session(AuthChangeEvent.SIGNED_IN, session)
        return session

    def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> tuple[AuthUser, AuthSession | None]:
        normalized = (email or "").strip().lower()
        if not normalized:
            raise AuthError("Email is required", code="validation_failed")
        if len(password or "") < MIN_PROVIDER_PASSWORD_LENGTH:
            raise AuthError(
                f"Password should be at least {MIN_PROVIDER_PASSWORD_LENGTH} characters.",
                code="weak_password",
            )
        if self._find_user(normalized) is not None:
            raise AuthError("User already registered", code="user_already_exists")
        user = models.AuthUser(
            email=normalized,
            password_hash=generate_password_hash(password),
            user_metadata=dict(metadata or {}),
        )
        self.db.add(user)
        self.db.flush()
        session = self._issue_session(user)
        logger.info("Registered user %s", user.id)
        self._set_session(AuthChangeEvent.SIGNED_IN, session)
        return self._to_user(user), session

    def sign_out(self) -> None:
        if self._session is not None:
            row = self.db.get(models.AuthSession, self._session.access_token)
            if row is not None:
                self.db.delete(row)
                self.db.flush()
        self._set_session(AuthChangeEvent.SIGNED_OUT, None)

    def reset_password_for_email(self, email: str, *, redirect_to: str) -> None:
        user = self._find_user(email)
        if user is None:
            # Unknown addresses get the same response as known ones.
            return
        token = secrets.token_urlsafe(32)
        self.db.add(
            models.AuthRecoveryToken(
                token=token,
                user_id=user.id,
                expires_at=utcnow() + self.recovery_token_ttl,
            )
        )
        self.db.flush()
        self.send_recovery_link(
            user.email, f"{redirect_to}?token_hash={token}&type=recovery"
        )

    def verify_recovery(self, token: str) -> AuthSession:
        row = self.db.get(models.AuthRecoveryToken, token) if token else None
        if row is None or row.used or row.expires_at <= utcnow():
            raise AuthError("Token has expired or is invalid", code="otp_expired")
        row.used = True
        user = self.db.get(models.AuthUser, row.user_id)
        session = self._issue_session(user)
        self._set_session(AuthChangeEvent.PASSWORD_RECOVERY, session)
        return session

    def update_user(self, *, password: str) -> AuthUser:
        if self._session is None:
            raise AuthError("Auth session missing!", code="session_missing")
        if len(password or "") < MIN_PROVIDER_PASSWORD_LENGTH:
            raise AuthError(
                f"Password should be at least {MIN_PROVIDER_PASSWORD_LENGTH} characters.",
                code="weak_password",
            )
        user = self.db.get(models.AuthUser, self._session.user.id)
        if user is None:
            raise AuthError("User not found", code="user_not_found")
        user.password_hash = generate_password_hash(password)
        self.db.flush()
        self._set_session(AuthChangeEvent.USER_UPDATED, self._session)
        return self._to_user(user)
