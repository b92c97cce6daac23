from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from eventhub.forms import (
    LoginForm,
    RegisterForm,
    ResetPasswordForm,
    form_errors,
    parse_event_edit_form,
    parse_event_form,
    parse_profile_form,
)
from eventhub.records import EventStatus


def _errors(model, data) -> dict[str, str]:
    with pytest.raises(ValidationError) as excinfo:
        model.model_validate(data)
    return form_errors(excinfo.value)


def _event_form(**overrides) -> dict[str, str]:
    data = {
        "title": "  Community Meetup ",
        "description": "Monthly get-together for local builders.",
        "date": "2030-05-17",
        "time": "6:30 PM",
        "location": "Town Hall",
        "status": "upcoming",
        "image_url": "",
    }
    data.update(overrides)
    return data


def test_register_form_reports_each_field():
    errors = _errors(
        RegisterForm,
        {
            "first_name": "A",
            "last_name": "",
            "email": "not-an-email",
            "password": "short",
            "confirm_password": "short",
        },
    )

    assert errors["first_name"] == "First name must be at least 2 characters."
    assert errors["last_name"] == "Last name must be at least 2 characters."
    assert errors["email"] == "Please enter a valid email address."
    assert errors["password"] == "Password must be at least 8 characters."


def test_password_mismatch_is_reported_on_confirmation():
    errors = _errors(
        ResetPasswordForm,
        {"password": "correct-horse", "confirm_password": "battery-staple"},
    )
    assert errors == {"confirm_password": "Passwords do not match."}


def test_login_form_requires_password():
    errors = _errors(LoginForm, {"email": "ada@example.com", "password": ""})
    assert errors == {"password": "Password is required."}


def test_event_form_strips_and_defaults():
    payload = parse_event_form(_event_form())

    assert payload.title == "Community Meetup"
    assert payload.date == date(2030, 5, 17)
    assert payload.image_url is None
    assert payload.status == EventStatus.UPCOMING.value


def test_event_form_messages():
    with pytest.raises(ValidationError) as excinfo:
        parse_event_form(
            _event_form(
                title="Hi",
                description="Too short",
                date="",
                location="",
                image_url="ftp://example.com/a.png",
                status="cancelled",
            )
        )
    errors = form_errors(excinfo.value)

    assert errors["title"] == "Title must be at least 3 characters."
    assert errors["description"] == "Description must be at least 10 characters."
    assert errors["date"] == "Date is required."
    assert errors["location"] == "Location must be at least 3 characters."
    assert errors["image_url"] == "Please enter a valid URL."
    assert errors["status"] == "Please choose a valid status."


def test_event_form_rejects_malformed_date():
    with pytest.raises(ValidationError) as excinfo:
        parse_event_form(_event_form(date="17/05/2030"))
    assert form_errors(excinfo.value) == {"date": "Please enter a valid date."}


def test_edit_form_clears_image_and_sets_status():
    changes = parse_event_edit_form(_event_form(status="completed")).changes()

    assert changes["image_url"] is None
    assert changes["status"] == "completed"
    assert changes["title"] == "Community Meetup"


def test_profile_form_blank_optional_fields_become_none():
    update = parse_profile_form(
        {"first_name": "Ada", "last_name": "Lovelace", "avatar_url": " ", "bio": ""}
    )

    assert update.changes() == {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "avatar_url": None,
        "bio": None,
    }


def test_profile_form_rejects_long_bio():
    with pytest.raises(ValidationError) as excinfo:
        parse_profile_form({"first_name": "Ada", "last_name": "Lovelace", "bio": "x" * 501})
    assert form_errors(excinfo.value) == {"bio": "Bio must be at most 500 characters."}
