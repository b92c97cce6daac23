"""FastAPI application for EventHub."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from urllib.parse import urlencode
import tomllib

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthError, AuthSession
from .backend import Backend, open_backend
from .config import ConfigError, settings
from .forms import (
    ForgotPasswordForm,
    LoginForm,
    RegisterForm,
    ResetPasswordForm,
    form_errors,
    parse_event_edit_form,
    parse_event_form,
    parse_profile_form,
)
from .gateway import GatewayError, NotFoundError, PermissionDeniedError
from .records import Event, EventCreate, EventStatus, EventUpdate, Profile, ProfileUpdate
from .search import filter_events, filter_view, normalize_view
from .session import SessionManager
from .storage import init_db
from .utils import format_event_date, humanize_time, initials

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

ACCESS_COOKIE = "eventhub_access"
REFRESH_COOKIE = "eventhub_refresh"
SESSION_COOKIE_MAX_AGE = 30 * 24 * 3600


def _no_cache(response: Response) -> Response:
    """Prevent clients from caching dynamic pages so fresh data is shown."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("eventhub")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        settings.validate()
    except ConfigError as exc:
        logger.critical("Invalid configuration: %s", exc)
        raise
    if settings.backend == "sql":
        init_db()
    logger.info("EventHub %s started with the %s backend", APP_VERSION, settings.backend)
    yield


app = FastAPI(title="EventHub", version=APP_VERSION, lifespan=lifespan)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

templates.env.globals["app_version"] = APP_VERSION
templates.env.globals["initials"] = initials
templates.env.globals["event_statuses"] = [status.value for status in EventStatus]
templates.env.filters["event_date"] = format_event_date
templates.env.filters["relative_time"] = humanize_time


class LoginRequired(Exception):
    """Raised by page dependencies when no user is signed in."""


# Session plumbing


def _stage_session(request: Request, session: AuthSession | None) -> None:
    request.state.staged_session = session
    request.state.session_changed = True


def _write_session_cookies(response: Response, session: AuthSession | None) -> None:
    if session is None:
        response.delete_cookie(ACCESS_COOKIE, path="/")
        response.delete_cookie(REFRESH_COOKIE, path="/")
        return
    for name, value in (
        (ACCESS_COOKIE, session.access_token),
        (REFRESH_COOKIE, session.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            max_age=SESSION_COOKIE_MAX_AGE,
            path="/",
            httponly=True,
            samesite="lax",
            secure=settings.session_cookie_secure,
        )


@app.middleware("http")
async def persist_session_cookies(request: Request, call_next):
    response = await call_next(request)
    if getattr(request.state, "session_changed", False):
        _write_session_cookies(response, request.state.staged_session)
    if request.url.path.startswith("/dashboard"):
        _no_cache(response)
    return response


def get_backend():
    with open_backend(settings) as backend:
        yield backend


def get_session_manager(
    request: Request,
    backend: Backend = Depends(get_backend, scope="function"),
):
    """Session manager for a browser request, restored from the session cookies."""
    manager = SessionManager(backend, site_url=settings.site_url)
    manager.subscribe(lambda _event, _user, session: _stage_session(request, session))
    access_token = request.cookies.get(ACCESS_COOKIE)
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    manager.bootstrap(access_token, refresh_token)
    if (access_token or refresh_token) and manager.session is None:
        _stage_session(request, None)
    try:
        yield manager
    finally:
        manager.close()


def require_user(
    manager: SessionManager = Depends(get_session_manager, scope="function"),
) -> SessionManager:
    if manager.user is None:
        raise LoginRequired()
    return manager


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_api_session(
    request: Request,
    backend: Backend = Depends(get_backend, scope="function"),
):
    manager = SessionManager(backend, site_url=settings.site_url)
    manager.bootstrap(_get_bearer_token(request), None)
    try:
        yield manager
    finally:
        manager.close()


def require_api_user(
    manager: SessionManager = Depends(get_api_session, scope="function"),
) -> SessionManager:
    if manager.user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return manager


# Rendering and errors


def _url(path: str, **params: str | None) -> str:
    query = {key: value for key, value in params.items() if value}
    return f"{path}?{urlencode(query)}" if query else path


def _redirect(path: str, *, notice: str | None = None) -> RedirectResponse:
    return RedirectResponse(url=_url(path, notice=notice), status_code=303)


def _render(
    request: Request,
    template_name: str,
    context: dict | None = None,
    *,
    manager: SessionManager | None = None,
    status_code: int = 200,
):
    payload = {
        "request": request,
        "current_user": manager.user if manager else None,
        "notice": request.query_params.get("notice"),
        "error": None,
        "errors": {},
        "values": {},
    }
    payload.update(context or {})
    return templates.TemplateResponse(
        request, template_name, payload, status_code=status_code
    )


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _render_error(request: Request, status_code: int, message: str | None):
    context = {
        "request": request,
        "status_code": status_code,
        "notice": None,
        "current_user": None,
        "error_message": message or "Something went wrong.",
    }
    return templates.TemplateResponse(
        request, "error.html", context, status_code=status_code
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as friendly pages unless JSON was requested."""
    if _wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return _render_error(request, exc.status_code, detail)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return _redirect("/login")


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    logger.warning(
        "Permission denied on %s %s: %s", request.method, request.url.path, exc
    )
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=403)
    event_id = request.path_params.get("event_id")
    if event_id:
        return _redirect(f"/dashboard/events/{event_id}", notice="Unauthorized")
    return _redirect("/dashboard", notice="Unauthorized")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=404)
    return _redirect("/dashboard", notice="That event no longer exists.")


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.error(
        "Backend error on %s %s: %s", request.method, request.url.path, exc
    )
    if _wants_json(request):
        return JSONResponse({"detail": str(exc)}, status_code=502)
    return _render_error(request, 502, f"{exc}. Please try again.")


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    if _wants_json(request):
        return JSONResponse({"detail": exc.message}, status_code=401)
    return _redirect("/login", notice=exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if _wants_json(request):
        return JSONResponse(
            {"detail": jsonable_encoder(exc.errors())}, status_code=422
        )
    return _render_error(
        request,
        422,
        "Some of the fields were invalid. Please double-check and try again.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    if _wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return _render_error(
        request,
        500,
        "We hit a snag while processing that request. Please try again.",
    )


def _auth_message(error: AuthError | None) -> str:
    if error is None:
        return ""
    return error.message or "Something went wrong. Please try again."


# Public pages


@app.get("/")
def landing_page(
    request: Request,
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    if manager.user is not None:
        return _redirect("/dashboard")
    return _render(request, "landing.html", manager=manager)


@app.get("/login")
def login_page(
    request: Request,
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    if manager.user is not None:
        return _redirect("/dashboard")
    return _render(request, "login.html", manager=manager)


@app.post("/login")
def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    values = {"email": email}
    try:
        form = LoginForm(email=email.strip(), password=password)
    except ValidationError as exc:
        return _render(
            request,
            "login.html",
            {"errors": form_errors(exc), "values": values},
            manager=manager,
            status_code=400,
        )
    result = manager.sign_in(form.email, form.password)
    if not result.ok:
        return _render(
            request,
            "login.html",
            {"error": _auth_message(result.error), "values": values},
            manager=manager,
            status_code=400,
        )
    return _redirect(result.redirect_to or "/dashboard")


@app.get("/register")
def register_page(
    request: Request,
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    if manager.user is not None:
        return _redirect("/dashboard")
    return _render(request, "register.html", manager=manager)


@app.post("/register")
def register_submit(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    values = {"first_name": first_name, "last_name": last_name, "email": email}
    try:
        form = RegisterForm(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip(),
            password=password,
            confirm_password=confirm_password,
        )
    except ValidationError as exc:
        return _render(
            request,
            "register.html",
            {"errors": form_errors(exc), "values": values},
            manager=manager,
            status_code=400,
        )
    result = manager.sign_up(form.email, form.password, form.first_name, form.last_name)
    if not result.ok:
        return _render(
            request,
            "register.html",
            {"error": _auth_message(result.error), "values": values},
            manager=manager,
            status_code=400,
        )
    return _redirect(result.redirect_to or "/dashboard", notice=result.notice)


@app.get("/forgot-password")
def forgot_password_page(
    request: Request,
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    return _render(request, "forgot_password.html", manager=manager)


@app.post("/forgot-password")
def forgot_password_submit(
    request: Request,
    email: str = Form(""),
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    values = {"email": email}
    try:
        form = ForgotPasswordForm(email=email.strip())
    except ValidationError as exc:
        return _render(
            request,
            "forgot_password.html",
            {"errors": form_errors(exc), "values": values},
            manager=manager,
            status_code=400,
        )
    result = manager.request_password_reset(form.email)
    if not result.ok:
        return _render(
            request,
            "forgot_password.html",
            {"error": _auth_message(result.error), "values": values},
            manager=manager,
            status_code=400,
        )
    return _render(
        request,
        "forgot_password.html",
        {"notice": result.notice, "sent": True},
        manager=manager,
    )


@app.get("/reset-password")
def reset_password_page(
    request: Request,
    token_hash: str | None = Query(None),
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    if token_hash:
        result = manager.verify_recovery(token_hash)
        if not result.ok:
            return _render(
                request,
                "reset_password.html",
                {"error": "This reset link is invalid or has expired.", "expired": True},
                manager=manager,
                status_code=400,
            )
        # Drop the single-use token from the address bar.
        return _redirect("/reset-password")
    if manager.session is None:
        return _render(
            request,
            "reset_password.html",
            {"error": "This reset link is invalid or has expired.", "expired": True},
            manager=manager,
        )
    return _render(request, "reset_password.html", manager=manager)


@app.post("/reset-password")
def reset_password_submit(
    request: Request,
    password: str = Form(""),
    confirm_password: str = Form(""),
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    try:
        form = ResetPasswordForm(password=password, confirm_password=confirm_password)
    except ValidationError as exc:
        return _render(
            request,
            "reset_password.html",
            {"errors": form_errors(exc)},
            manager=manager,
            status_code=400,
        )
    result = manager.reset_password(form.password)
    if not result.ok:
        return _render(
            request,
            "reset_password.html",
            {
                "error": _auth_message(result.error),
                "expired": result.error.code == "session_missing",
            },
            manager=manager,
            status_code=400,
        )
    return _redirect(result.redirect_to or "/login", notice=result.notice)


@app.post("/logout")
def logout(
    manager: SessionManager = Depends(get_session_manager, scope="function"),
):
    result = manager.sign_out()
    return _redirect(result.redirect_to or "/")


# Dashboard


def _load_events(loader, *args) -> tuple[list[Event], str | None]:
    try:
        return loader(*args), None
    except GatewayError as exc:
        logger.error("Failed to load events: %s", exc)
        return [], "Failed to load events. Please try again."


@app.get("/dashboard")
def dashboard(
    request: Request,
    q: str = Query(""),
    view: str = Query("upcoming"),
    manager: SessionManager = Depends(require_user),
):
    view = normalize_view(view)
    events, error = _load_events(manager.gateway.get_events)
    events = filter_events(filter_view(events, view), q)
    return _render(
        request,
        "dashboard.html",
        {"events": events, "q": q, "view": view, "error": error},
        manager=manager,
    )


@app.get("/dashboard/my-events")
def my_events(
    request: Request,
    q: str = Query(""),
    manager: SessionManager = Depends(require_user),
):
    events, error = _load_events(manager.gateway.get_user_events, manager.user.id)
    return _render(
        request,
        "my_events.html",
        {"events": filter_events(events, q), "q": q, "error": error},
        manager=manager,
    )


@app.get("/dashboard/attending")
def attending_events(
    request: Request,
    q: str = Query(""),
    manager: SessionManager = Depends(require_user),
):
    events, error = _load_events(
        manager.gateway.get_user_attending_events, manager.user.id
    )
    return _render(
        request,
        "attending.html",
        {"events": filter_events(events, q), "q": q, "error": error},
        manager=manager,
    )


def _event_form_values(
    title: str,
    description: str,
    date: str,
    time: str,
    location: str,
    status: str,
    image_url: str,
) -> dict[str, str]:
    return {
        "title": title,
        "description": description,
        "date": date,
        "time": time,
        "location": location,
        "status": status,
        "image_url": image_url,
    }


def _organizer_event(manager: SessionManager, event_id: str) -> Event:
    event = manager.gateway.get_event(event_id)
    if event.user_id != manager.user.id:
        raise PermissionDeniedError("Unauthorized")
    return event


@app.get("/dashboard/events/new")
def new_event_page(request: Request, manager: SessionManager = Depends(require_user)):
    return _render(
        request,
        "event_form.html",
        {"values": {"status": EventStatus.UPCOMING.value}, "editing": False},
        manager=manager,
    )


@app.post("/dashboard/events/new")
def new_event_submit(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    date: str = Form(""),
    time: str = Form(""),
    location: str = Form(""),
    status: str = Form(EventStatus.UPCOMING.value),
    image_url: str = Form(""),
    manager: SessionManager = Depends(require_user),
):
    values = _event_form_values(title, description, date, time, location, status, image_url)
    try:
        payload = parse_event_form(values)
    except ValidationError as exc:
        return _render(
            request,
            "event_form.html",
            {"errors": form_errors(exc), "values": values, "editing": False},
            manager=manager,
            status_code=400,
        )
    event = manager.gateway.create_event(payload, user_id=manager.user.id)
    return _redirect(f"/dashboard/events/{event.id}", notice="Event created.")


@app.get("/dashboard/events/{event_id}")
def event_detail(
    event_id: str, request: Request, manager: SessionManager = Depends(require_user)
):
    event = manager.gateway.get_event(event_id)
    try:
        organizer = manager.gateway.get_profile(event.user_id)
    except NotFoundError:
        organizer = None
    attendees = manager.gateway.get_event_attendees(event_id)
    is_attending = any(row.user_id == manager.user.id for row in attendees)
    return _render(
        request,
        "event_detail.html",
        {
            "event": event,
            "organizer": organizer,
            "attendees": attendees,
            "is_attending": is_attending,
            "is_organizer": event.user_id == manager.user.id,
        },
        manager=manager,
    )


@app.post("/dashboard/events/{event_id}/join")
def join_event(event_id: str, manager: SessionManager = Depends(require_user)):
    manager.gateway.join_event(event_id, manager.user.id)
    return _redirect(
        f"/dashboard/events/{event_id}", notice="You're attending this event."
    )


@app.get("/dashboard/events/{event_id}/leave")
def leave_event_page(
    event_id: str, request: Request, manager: SessionManager = Depends(require_user)
):
    event = manager.gateway.get_event(event_id)
    return _render(
        request,
        "confirm.html",
        {
            "event": event,
            "heading": "Leave this event?",
            "body": f"You will no longer be listed as attending {event.title}.",
            "action": f"/dashboard/events/{event.id}/leave",
            "confirm_label": "Leave event",
        },
        manager=manager,
    )


@app.post("/dashboard/events/{event_id}/leave")
def leave_event(event_id: str, manager: SessionManager = Depends(require_user)):
    manager.gateway.leave_event(event_id, manager.user.id)
    return _redirect(
        f"/dashboard/events/{event_id}", notice="You're no longer attending this event."
    )


@app.get("/dashboard/events/{event_id}/edit")
def edit_event_page(
    event_id: str, request: Request, manager: SessionManager = Depends(require_user)
):
    event = _organizer_event(manager, event_id)
    values = event.model_dump(mode="json")
    values["image_url"] = values.get("image_url") or ""
    return _render(
        request,
        "event_form.html",
        {"event": event, "values": values, "editing": True},
        manager=manager,
    )


@app.post("/dashboard/events/{event_id}/edit")
def edit_event_submit(
    event_id: str,
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    date: str = Form(""),
    time: str = Form(""),
    location: str = Form(""),
    status: str = Form(EventStatus.UPCOMING.value),
    image_url: str = Form(""),
    manager: SessionManager = Depends(require_user),
):
    event = _organizer_event(manager, event_id)
    values = _event_form_values(title, description, date, time, location, status, image_url)
    try:
        changes = parse_event_edit_form(values)
    except ValidationError as exc:
        return _render(
            request,
            "event_form.html",
            {
                "event": event,
                "errors": form_errors(exc),
                "values": values,
                "editing": True,
            },
            manager=manager,
            status_code=400,
        )
    manager.gateway.update_event(event_id, changes)
    return _redirect(f"/dashboard/events/{event_id}", notice="Event updated.")


@app.get("/dashboard/events/{event_id}/delete")
def delete_event_page(
    event_id: str, request: Request, manager: SessionManager = Depends(require_user)
):
    event = _organizer_event(manager, event_id)
    return _render(
        request,
        "confirm.html",
        {
            "event": event,
            "heading": "Delete this event?",
            "body": f"{event.title} and its attendee list will be removed permanently.",
            "action": f"/dashboard/events/{event.id}/delete",
            "confirm_label": "Delete event",
            "danger": True,
        },
        manager=manager,
    )


@app.post("/dashboard/events/{event_id}/delete")
def delete_event(event_id: str, manager: SessionManager = Depends(require_user)):
    _organizer_event(manager, event_id)
    manager.gateway.delete_event(event_id)
    return _redirect("/dashboard/my-events", notice="Event deleted.")


@app.get("/dashboard/profile")
def profile_page(request: Request, manager: SessionManager = Depends(require_user)):
    values = manager.user.model_dump(mode="json")
    return _render(request, "profile.html", {"values": values}, manager=manager)


@app.post("/dashboard/profile")
def profile_submit(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    avatar_url: str = Form(""),
    bio: str = Form(""),
    manager: SessionManager = Depends(require_user),
):
    values = {
        "first_name": first_name,
        "last_name": last_name,
        "avatar_url": avatar_url,
        "bio": bio,
        "email": manager.user.email,
    }
    try:
        changes = parse_profile_form(
            {
                "first_name": first_name,
                "last_name": last_name,
                "avatar_url": avatar_url,
                "bio": bio,
            }
        )
    except ValidationError as exc:
        return _render(
            request,
            "profile.html",
            {"errors": form_errors(exc), "values": values},
            manager=manager,
            status_code=400,
        )
    manager.update_profile(changes)
    return _redirect("/dashboard/profile", notice="Profile updated.")


# JSON API


def _event_payload(event: Event) -> dict:
    return event.model_dump(mode="json")


def _profile_payload(profile: Profile) -> dict:
    return {**profile.model_dump(mode="json"), "full_name": profile.full_name}


@app.get("/api/v1/me")
def api_me(manager: SessionManager = Depends(require_api_user)):
    return {"profile": _profile_payload(manager.user)}


@app.patch("/api/v1/me")
def api_update_me(
    payload: ProfileUpdate, manager: SessionManager = Depends(require_api_user)
):
    return {"profile": _profile_payload(manager.update_profile(payload))}


@app.get("/api/v1/me/events")
def api_my_events(
    q: str = Query(""), manager: SessionManager = Depends(require_api_user)
):
    events = manager.gateway.get_user_events(manager.user.id)
    return {"events": [_event_payload(event) for event in filter_events(events, q)]}


@app.get("/api/v1/me/attending")
def api_my_attending(
    q: str = Query(""), manager: SessionManager = Depends(require_api_user)
):
    events = manager.gateway.get_user_attending_events(manager.user.id)
    return {"events": [_event_payload(event) for event in filter_events(events, q)]}


@app.get("/api/v1/events")
def api_list_events(
    q: str = Query(""),
    view: str = Query("all"),
    manager: SessionManager = Depends(require_api_user),
):
    events = filter_view(manager.gateway.get_events(), normalize_view(view))
    return {
        "events": [_event_payload(event) for event in filter_events(events, q)],
        "filters": {"q": q, "view": normalize_view(view)},
    }


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreate, manager: SessionManager = Depends(require_api_user)
):
    event = manager.gateway.create_event(payload, user_id=manager.user.id)
    return {"event": _event_payload(event)}


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, manager: SessionManager = Depends(require_api_user)):
    event = manager.gateway.get_event(event_id)
    return {"event": _event_payload(event)}


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdate,
    manager: SessionManager = Depends(require_api_user),
):
    event = manager.gateway.update_event(event_id, payload)
    return {"event": _event_payload(event)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str, manager: SessionManager = Depends(require_api_user)
):
    manager.gateway.delete_event(event_id)
    return Response(status_code=204)


@app.get("/api/v1/events/{event_id}/attendees")
def api_event_attendees(
    event_id: str, manager: SessionManager = Depends(require_api_user)
):
    manager.gateway.get_event(event_id)
    attendees = manager.gateway.get_event_attendees(event_id)
    return {"attendees": [row.model_dump(mode="json") for row in attendees]}


@app.post("/api/v1/events/{event_id}/attendees")
def api_join_event(event_id: str, manager: SessionManager = Depends(require_api_user)):
    attendee = manager.gateway.join_event(event_id, manager.user.id)
    return {"attendee": attendee.model_dump(mode="json")}


@app.delete("/api/v1/events/{event_id}/attendees")
def api_leave_event(
    event_id: str, manager: SessionManager = Depends(require_api_user)
):
    removed = manager.gateway.leave_event(event_id, manager.user.id)
    return {"removed": removed}
