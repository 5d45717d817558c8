import pytest

from jobtracker.errors import ValidationFailure
from jobtracker.forms import JobForm, RegistrationForm, parse_form
from jobtracker.models import JobStatus


def test_job_form_trims_text_and_defaults_status() -> None:
    form = parse_form(JobForm, {"company": "  Acme ", "position": " Engineer ", "status": ""})

    assert form.company == "Acme"
    assert form.position == "Engineer"
    assert form.status is JobStatus.PENDING


def test_job_form_accepts_status_case_insensitively() -> None:
    form = parse_form(JobForm, {"company": "Acme", "position": "Engineer", "status": "Interview"})

    assert form.status is JobStatus.INTERVIEW


def test_job_form_reports_every_invalid_field() -> None:
    with pytest.raises(ValidationFailure) as excinfo:
        parse_form(JobForm, {"company": "   ", "position": "x" * 101, "status": "hired"})

    errors = excinfo.value.field_errors
    assert errors["company"] == ["Please provide a company name."]
    assert errors["position"] == ["Please provide a position of at most 100 characters."]
    assert errors["status"][0].startswith("Status must be one of")
    assert excinfo.value.values["status"] == "hired"


def test_registration_form_keeps_password_whitespace() -> None:
    form = parse_form(
        RegistrationForm,
        {"name": " Ada ", "email": "ada@example.com", "password": " secret "},
    )

    assert form.name == "Ada"
    assert form.password == " secret "


def test_registration_form_rejects_short_password_and_bad_email() -> None:
    with pytest.raises(ValidationFailure) as excinfo:
        parse_form(
            RegistrationForm,
            {"name": "Ada", "email": "not-an-email", "password": "abc"},
        )

    errors = excinfo.value.field_errors
    assert errors["email"] == ["Please provide a valid email address."]
    assert errors["password"] == ["Please provide a password of at least 6 characters."]
