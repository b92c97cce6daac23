"""Hosted backend: Supabase auth (GoTrue) and PostgREST tables."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from supabase import AuthError as SupabaseAuthError
from supabase import Client, PostgrestAPIError, create_client
from supabase.client import ClientOptions

from .auth import AuthChangeEvent, AuthError, AuthProvider, AuthSession, AuthUser
from .config import Settings
from .gateway import DataGateway, GatewayError, NotFoundError, PermissionDeniedError
from .records import (
    AttendeeWithProfile,
    Event,
    EventAttendee,
    EventCreate,
    EventUpdate,
    Profile,
    ProfileCreate,
    ProfileUpdate,
)

logger = logging.getLogger(__name__)

# SQLSTATE PostgREST reports when a row-level policy rejects an insert.
RLS_VIOLATION = "42501"


def create_supabase_client(settings: Settings) -> Client:
    """Return a fresh client for one browser session.

    Clients are not shared between requests: the auth half keeps the signed-in
    user's tokens and the table half sends them with every query.
    """
    return create_client(
        settings.supabase_url,
        settings.supabase_key,
        options=ClientOptions(persist_session=False, auto_refresh_token=False),
    )


def _to_user(raw: Any) -> AuthUser:
    return AuthUser(
        id=str(raw.id),
        email=raw.email or "",
        user_metadata=dict(getattr(raw, "user_metadata", None) or {}),
    )


def _to_session(raw: Any) -> AuthSession | None:
    if raw is None or raw.user is None:
        return None
    expires_at = None
    if getattr(raw, "expires_at", None):
        expires_at = datetime.fromtimestamp(raw.expires_at, UTC).replace(tzinfo=None)
    return AuthSession(
        access_token=raw.access_token,
        refresh_token=raw.refresh_token,
        user=_to_user(raw.user),
        expires_at=expires_at,
    )


def _auth_error(exc: Exception) -> AuthError:
    message = getattr(exc, "message", None) or str(exc) or "Authentication failed"
    return AuthError(message, code=getattr(exc, "code", None))


class SupabaseAuthProvider(AuthProvider):
    """Relays GoTrue's session notifications and maps its errors."""

    def __init__(self, client: Client):
        super().__init__()
        self.client = client
        self._muted = False
        self._upstream = client.auth.on_auth_state_change(self._relay)

    def _relay(self, event: str, raw_session: Any) -> None:
        if self._muted:
            return
        try:
            change = AuthChangeEvent(str(getattr(event, "value", event)))
        except ValueError:
            logger.debug("Ignoring auth event %s", event)
            return
        self._set_session(change, _to_session(raw_session))

    def close(self) -> None:
        self._upstream.unsubscribe()
        super().close()

    def restore_session(
        self, access_token: str, refresh_token: str | None
    ) -> AuthSession | None:
        self._muted = True
        try:
            response = self.client.auth.set_session(access_token, refresh_token or "")
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            logger.info("Persisted session rejected: %s", exc)
            return None
        finally:
            self._muted = False
        session = _to_session(response.session)
        if session is None:
            return None
        if session.access_token != access_token:
            self._set_session(AuthChangeEvent.TOKEN_REFRESHED, session)
        else:
            self._session = session
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            response = self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        session = _to_session(response.session)
        if session is None:
            raise AuthError("Sign in did not return a session")
        self._session = session
        return session

    def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> tuple[AuthUser, AuthSession | None]:
        try:
            response = self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": dict(metadata or {})},
                }
            )
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        if response.user is None:
            raise AuthError("Sign up did not return a user")
        session = _to_session(response.session)
        if session is not None:
            self._session = session
        return _to_user(response.user), session

    def sign_out(self) -> None:
        try:
            self.client.auth.sign_out()
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        if self._session is not None:
            self._set_session(AuthChangeEvent.SIGNED_OUT, None)

    def reset_password_for_email(self, email: str, *, redirect_to: str) -> None:
        try:
            self.client.auth.reset_password_for_email(
                email, {"redirect_to": redirect_to}
            )
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc

    def verify_recovery(self, token: str) -> AuthSession:
        try:
            response = self.client.auth.verify_otp(
                {"token_hash": token, "type": "recovery"}
            )
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        session = _to_session(response.session)
        if session is None:
            raise AuthError("Token has expired or is invalid", code="otp_expired")
        self._session = session
        return session

    def update_user(self, *, password: str) -> AuthUser:
        try:
            response = self.client.auth.update_user({"password": password})
        except (SupabaseAuthError, httpx.HTTPError) as exc:
            raise _auth_error(exc) from exc
        return _to_user(response.user)


def _sort_by_date(events: list[Event]) -> list[Event]:
    return sorted(events, key=lambda event: (event.date, event.created_at))


class SupabaseGateway(DataGateway):
    """Gateway over the hosted tables.

    Organizer-only writes are enforced by row-level security; an update or
    delete that matches no row on an existing record means the policy refused.
    """

    def __init__(self, client: Client):
        self.client = client

    def _table(self, name: str):
        return self.client.table(name)

    def _execute(self, query, action: str) -> list[dict[str, Any]]:
        try:
            response = query.execute()
        except PostgrestAPIError as exc:
            code = getattr(exc, "code", None)
            logger.error("Supabase failed to %s: %s (%s)", action, exc, code)
            if code == RLS_VIOLATION:
                raise PermissionDeniedError(f"Not allowed to {action}") from exc
            raise GatewayError(f"Failed to {action}") from exc
        except httpx.HTTPError as exc:
            logger.error("Supabase unreachable while trying to %s: %s", action, exc)
            raise GatewayError(f"Failed to {action}") from exc
        return list(response.data or [])

    def get_events(self) -> list[Event]:
        rows = self._execute(
            self._table("events").select("*").order("date"),
            "load events",
        )
        return [Event.model_validate(row) for row in rows]

    def get_event(self, event_id: str) -> Event:
        rows = self._execute(
            self._table("events").select("*").eq("id", event_id).limit(1),
            "load event",
        )
        if not rows:
            raise NotFoundError(f"Event {event_id} not found")
        return Event.model_validate(rows[0])

    def get_user_events(self, user_id: str) -> list[Event]:
        rows = self._execute(
            self._table("events")
            .select("*")
            .eq("user_id", user_id)
            .order("date"),
            "load events",
        )
        return [Event.model_validate(row) for row in rows]

    def create_event(self, payload: EventCreate, *, user_id: str) -> Event:
        data = {**payload.model_dump(mode="json"), "user_id": user_id}
        rows = self._execute(self._table("events").insert(data), "create event")
        logger.info("Event %s created by %s", rows[0]["id"], user_id)
        return Event.model_validate(rows[0])

    def _refused_or_missing(self, event_id: str, action: str) -> PermissionDeniedError:
        self.get_event(event_id)
        return PermissionDeniedError(f"Only the organizer can {action} this event")

    def update_event(self, event_id: str, changes: EventUpdate) -> Event:
        data = changes.changes(mode="json")
        if not data:
            return self.get_event(event_id)
        rows = self._execute(
            self._table("events").update(data).eq("id", event_id), "update event"
        )
        if not rows:
            raise self._refused_or_missing(event_id, "update")
        return Event.model_validate(rows[0])

    def delete_event(self, event_id: str) -> None:
        rows = self._execute(
            self._table("events").delete().eq("id", event_id), "delete event"
        )
        if not rows:
            raise self._refused_or_missing(event_id, "delete")
        logger.info("Event %s deleted", event_id)

    def get_profile(self, user_id: str) -> Profile:
        rows = self._execute(
            self._table("profiles").select("*").eq("id", user_id).limit(1),
            "load profile",
        )
        if not rows:
            raise NotFoundError(f"Profile {user_id} not found")
        return Profile.model_validate(rows[0])

    def create_profile(self, payload: ProfileCreate) -> Profile:
        rows = self._execute(
            self._table("profiles").insert(payload.model_dump()), "create profile"
        )
        return Profile.model_validate(rows[0])

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Profile:
        data = changes.changes()
        if not data:
            return self.get_profile(user_id)
        rows = self._execute(
            self._table("profiles").update(data).eq("id", user_id), "update profile"
        )
        if not rows:
            self.get_profile(user_id)
            raise PermissionDeniedError("Only the owner can update this profile")
        return Profile.model_validate(rows[0])

    def _attendance(self, event_id: str, user_id: str) -> list[dict[str, Any]]:
        return self._execute(
            self._table("event_attendees")
            .select("*")
            .eq("event_id", event_id)
            .eq("user_id", user_id),
            "load attendance",
        )

    def join_event(self, event_id: str, user_id: str) -> EventAttendee:
        rows = self._execute(
            self._table("event_attendees").upsert(
                {"event_id": event_id, "user_id": user_id},
                on_conflict="event_id,user_id",
                ignore_duplicates=True,
            ),
            "join event",
        )
        if not rows:
            # Duplicate ignored: the user already attends.
            rows = self._attendance(event_id, user_id)
        if not rows:
            raise GatewayError("Failed to join event")
        return EventAttendee.model_validate(rows[0])

    def leave_event(self, event_id: str, user_id: str) -> int:
        rows = self._execute(
            self._table("event_attendees")
            .delete()
            .eq("event_id", event_id)
            .eq("user_id", user_id),
            "leave event",
        )
        return len(rows)

    def get_event_attendees(self, event_id: str) -> list[AttendeeWithProfile]:
        rows = self._execute(
            self._table("event_attendees")
            .select("*, profiles(*)")
            .eq("event_id", event_id)
            .order("created_at"),
            "load attendees",
        )
        attendees = []
        for row in rows:
            profile = row.pop("profiles", None)
            attendees.append(AttendeeWithProfile.model_validate({**row, "profile": profile}))
        return attendees

    def get_user_attending_events(self, user_id: str) -> list[Event]:
        rows = self._execute(
            self._table("event_attendees").select("*, events(*)").eq("user_id", user_id),
            "load events",
        )
        events = [Event.model_validate(row["events"]) for row in rows if row.get("events")]
        return _sort_by_date(events)
