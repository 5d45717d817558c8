"""Credential checks, registration, and the per-request identity gate."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from .csrf import rotate_secret
from .database import Database
from .errors import AuthFailure, AuthenticationRequired, DuplicateKeyFailure, ValidationFailure
from .forms import RegistrationForm, parse_form
from .models import User
from .sessions import destroy_session, regenerate_session

logger = logging.getLogger("jobtracker.auth")

USER_SESSION_KEY = "user_id"
RETURN_TO_SESSION_KEY = "return_to"

DEFAULT_LANDING_PATH = "/"


def _is_local_path(path: object) -> bool:
    return (
        isinstance(path, str)
        and path.startswith("/")
        and not path.startswith("//")
        and "\\" not in path
    )


class Authenticator:
    """Verify credentials and bind identities to sessions."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def authenticate(self, email: str, password: str) -> User:
        """Return the matching user or raise :class:`AuthFailure`.

        Unknown emails, wrong passwords and blank input all raise the same
        failure with the same message.
        """

        if not email.strip() or not password:
            raise AuthFailure()
        user = self._database.authenticate_user(email, password)
        if user is None:
            raise AuthFailure()
        return user

    def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> User:
        """Create an account, raising :class:`ValidationFailure` on bad input.

        ``ValidationFailure.values`` never contains the submitted passwords.
        """

        preserved = {"name": name, "email": email}
        if password != confirm_password:
            raise ValidationFailure(
                {"password1": ["The passwords entered do not match."]},
                values=preserved,
            )

        try:
            form = parse_form(
                RegistrationForm,
                {"name": name, "email": email, "password": password},
            )
        except ValidationFailure as exc:
            raise ValidationFailure(exc.field_errors, values=preserved) from exc

        try:
            user = self._database.create_user(form.name, form.email, form.password)
        except DuplicateKeyFailure as exc:
            raise ValidationFailure(
                {"email": ["That email address is already registered."]},
                values=preserved,
            ) from exc

        logger.info("Registered user %s", user.id)
        return user

    def establish_session(self, request: Request, user: User) -> str:
        """Log ``user`` in on this request and return where to send them next.

        The stored return path is consumed here so it is used at most once.
        """

        return_to = request.session.pop(RETURN_TO_SESSION_KEY, None)
        request.session.clear()
        regenerate_session(request)
        request.session[USER_SESSION_KEY] = user.id
        rotate_secret(request.session)
        request.state.user = user
        logger.info("User %s signed in", user.id)
        if _is_local_path(return_to):
            return str(return_to)
        return DEFAULT_LANDING_PATH

    def end_session(self, request: Request) -> None:
        user = getattr(request.state, "user", None)
        destroy_session(request)
        request.state.user = None
        if user is not None:
            logger.info("User %s signed out", user.id)


def remember_return_path(request: Request) -> None:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    request.session[RETURN_TO_SESSION_KEY] = path


async def resolve_identity(request: Request) -> Optional[User]:
    """Dependency that attaches the authenticated user (if any) to the request."""

    user: Optional[User] = None
    user_id = request.session.get(USER_SESSION_KEY)
    if user_id:
        try:
            numeric_id = int(user_id)
        except (TypeError, ValueError):
            numeric_id = None
        database: Database = request.app.state.database
        if numeric_id is not None:
            user = database.get_user(numeric_id)
        if user is None:
            request.session.pop(USER_SESSION_KEY, None)
    request.state.user = user
    return user


async def require_user(request: Request) -> User:
    """Authorization gate placed in front of every protected route."""

    user = getattr(request.state, "user", None)
    if user is None:
        raise AuthenticationRequired()
    return user


__all__ = [
    "Authenticator",
    "remember_return_path",
    "require_user",
    "resolve_identity",
]
