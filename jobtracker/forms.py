"""Form payload validation backed by pydantic models."""
from __future__ import annotations

from typing import Annotated, Dict, List, Mapping, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from .errors import ValidationFailure
from .models import DEFAULT_JOB_STATUS, JobStatus

PASSWORD_MIN_LENGTH = 6

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

FIELD_LABELS: Dict[str, str] = {
    "name": "a name",
    "email": "an email address",
    "password": "a password",
    "company": "a company name",
    "position": "a position",
    "status": "a status",
}


class _Form(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _strip(value: object) -> object:
    if isinstance(value, str):
        return value.strip()
    return value


StrippedText = Annotated[str, BeforeValidator(_strip)]


class RegistrationForm(_Form):
    name: StrippedText = Field(..., min_length=1, max_length=50)
    email: StrippedText = Field(..., min_length=1, max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=256)


class JobForm(_Form):
    company: StrippedText = Field(..., min_length=1, max_length=50)
    position: StrippedText = Field(..., min_length=1, max_length=100)
    status: JobStatus = DEFAULT_JOB_STATUS

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_means_default(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_JOB_STATUS
        if isinstance(value, str):
            return value.strip().lower()
        return value


def _message_for(field: str, error: Mapping[str, object]) -> str:
    label = FIELD_LABELS.get(field, field)
    error_type = str(error.get("type", ""))
    ctx = error.get("ctx") or {}
    if error_type in {"missing", "string_too_short"} and field == "password":
        return f"Please provide a password of at least {PASSWORD_MIN_LENGTH} characters."
    if error_type in {"missing", "string_too_short", "string_type"}:
        return f"Please provide {label}."
    if error_type == "string_too_long":
        limit = ctx.get("max_length") if isinstance(ctx, Mapping) else None
        return f"Please provide {label} of at most {limit} characters."
    if error_type == "string_pattern_mismatch":
        return f"Please provide a valid {label.split(' ', 1)[-1]}."
    if error_type == "enum":
        return f"Status must be one of: {', '.join(JobStatus.choices())}."
    return str(error.get("msg", "Invalid value."))


def field_errors_from(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = error.get("loc") or ("__root__",)
        field = str(location[0])
        errors.setdefault(field, []).append(_message_for(field, error))
    return errors


FormT = TypeVar("FormT", bound=_Form)


def parse_form(model: Type[FormT], data: Mapping[str, object]) -> FormT:
    """Validate ``data`` or raise :class:`ValidationFailure` carrying the raw input."""

    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise ValidationFailure(field_errors_from(exc), values=data) from exc


__all__ = [
    "JobForm",
    "PASSWORD_MIN_LENGTH",
    "RegistrationForm",
    "field_errors_from",
    "parse_form",
]
