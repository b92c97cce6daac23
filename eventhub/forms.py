"""Form payloads and field-level error messages for the HTML views."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, EmailStr, Field, ValidationError, model_validator

from .records import EventCreate, EventUpdate, ProfileUpdate

MIN_PASSWORD_LENGTH = 8

FIELD_LABELS = {
    "title": "Title",
    "description": "Description",
    "date": "Date",
    "time": "Time",
    "location": "Location",
    "status": "Status",
    "image_url": "Image URL",
    "first_name": "First name",
    "last_name": "Last name",
    "avatar_url": "Avatar URL",
    "bio": "Bio",
    "email": "Email",
    "password": "Password",
    "confirm_password": "Confirm password",
}


class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class PasswordConfirmation(BaseModel):
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        return self


class RegisterForm(PasswordConfirmation):
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    email: EmailStr


class ForgotPasswordForm(BaseModel):
    email: EmailStr


class ResetPasswordForm(PasswordConfirmation):
    pass


def _message(error: Mapping[str, Any]) -> str:
    field = str(error["loc"][0]) if error.get("loc") else ""
    label = FIELD_LABELS.get(field, field.replace("_", " ").capitalize())
    kind = error.get("type")
    ctx = error.get("ctx") or {}
    if kind == "missing" or (kind == "string_too_short" and ctx.get("min_length") == 1):
        return f"{label} is required."
    if kind == "string_too_short":
        return f"{label} must be at least {ctx['min_length']} characters."
    if kind == "string_too_long":
        return f"{label} must be at most {ctx['max_length']} characters."
    if kind and kind.startswith("date"):
        return "Please enter a valid date."
    if kind == "enum":
        return f"Please choose a valid {label.lower()}."
    if field == "email":
        return "Please enter a valid email address."
    message = str(error.get("msg") or "Invalid value.")
    return message.removeprefix("Value error, ")


def form_errors(exc: ValidationError) -> dict[str, str]:
    """Map a validation error to ``{field: message}``, first message per field.

    Errors raised by model-level validators are reported under
    ``confirm_password``.
    """
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error.get("loc") else "confirm_password"
        errors.setdefault(field, _message(error))
    return errors


def _clean(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key, value in data.items():
        if isinstance(value, str):
            value = value.strip()
        if key == "date" and not value:
            continue
        cleaned[key] = value
    return cleaned


def parse_event_form(data: Mapping[str, Any]) -> EventCreate:
    return EventCreate.model_validate(_clean(data))


def parse_event_edit_form(data: Mapping[str, Any]) -> EventUpdate:
    """The edit form posts every field, so it validates like a create."""
    payload = parse_event_form(data)
    return EventUpdate.model_validate(payload.model_dump())


def parse_profile_form(data: Mapping[str, Any]) -> ProfileUpdate:
    return ProfileUpdate.model_validate(_clean(data))
