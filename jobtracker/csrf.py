"""Anti-forgery protection for state-changing form submissions.

Each session holds one long-lived secret. Every rendered page gets a fresh
token derived from it, so a token leaked from one page does not repeat, yet
any form rendered since the secret was issued still validates.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
from typing import MutableMapping, Optional

from fastapi import Request

from .errors import CSRFFailure

logger = logging.getLogger("jobtracker.csrf")

CSRF_FIELD_NAME = "_csrf"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_SESSION_KEY = "csrf_secret"

PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_SALT_BYTES = 8


def _digest(secret: str, salt: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), salt.encode("ascii"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(mac).decode("ascii").rstrip("=")


def ensure_secret(session: MutableMapping[str, object]) -> str:
    secret = session.get(CSRF_SESSION_KEY)
    if not isinstance(secret, str) or not secret:
        secret = rotate_secret(session)
    return secret


def rotate_secret(session: MutableMapping[str, object]) -> str:
    secret = secrets.token_urlsafe(32)
    session[CSRF_SESSION_KEY] = secret
    return secret


def generate_token(secret: str) -> str:
    salt = secrets.token_urlsafe(_SALT_BYTES)
    return f"{salt}.{_digest(secret, salt)}"


def verify_token(secret: Optional[str], token: Optional[str]) -> bool:
    if not secret or not token or "." not in token:
        return False
    salt, _, provided = token.partition(".")
    try:
        salt.encode("ascii")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), _digest(secret, salt).encode("ascii"))


async def _submitted_token(request: Request) -> Optional[str]:
    header = request.headers.get(CSRF_HEADER_NAME)
    if header:
        return header
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        value = form.get(CSRF_FIELD_NAME)
        if isinstance(value, str):
            return value
    return None


def refresh_token(request: Request) -> str:
    """Derive a new token from the session secret and expose it to templates."""

    secret = ensure_secret(request.session)
    token = generate_token(secret)
    request.state.csrf_token = token
    return token


async def csrf_protect(request: Request) -> None:
    """Dependency that guards every routed request.

    Safe methods only get a token; protected methods must present a token
    derived from this session's secret or the request is rejected.
    """

    if request.method in PROTECTED_METHODS:
        secret = request.session.get(CSRF_SESSION_KEY)
        token = await _submitted_token(request)
        if not verify_token(secret if isinstance(secret, str) else None, token):
            logger.warning(
                "Rejected %s %s: missing or invalid CSRF token",
                request.method,
                request.url.path,
            )
            raise CSRFFailure()
    refresh_token(request)


__all__ = [
    "CSRF_FIELD_NAME",
    "PROTECTED_METHODS",
    "csrf_protect",
    "ensure_secret",
    "generate_token",
    "refresh_token",
    "rotate_secret",
    "verify_token",
]
