"""Server-side session handling for the web interface.

The browser only ever holds a signed, opaque session identifier. The session
contents live in the ``sessions`` table and are exposed to request handlers as
``request.session`` for the lifetime of a single request.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import anyio
from itsdangerous import BadSignature, TimestampSigner
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .database import Database

logger = logging.getLogger("jobtracker.sessions")

SESSION_ID_SCOPE_KEY = "jobtracker.session_id"
_REGENERATE_SCOPE_KEY = "jobtracker.session_regenerate"
_DESTROY_SCOPE_KEY = "jobtracker.session_destroy"

FLASH_SESSION_KEY = "flash_messages"


class SessionManager:
    """Generate, sign, persist, and revoke web sessions."""

    def __init__(
        self,
        database: Database,
        *,
        secret_key: str,
        ttl: timedelta = timedelta(hours=8),
    ) -> None:
        self._database = database
        self._ttl = ttl
        self._signer = TimestampSigner(secret_key, salt="jobtracker.session")

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def new_session_id(self) -> str:
        return secrets.token_urlsafe(32)

    def sign(self, session_id: str) -> str:
        return self._signer.sign(session_id).decode("utf-8")

    def unsign(self, cookie_value: str) -> Optional[str]:
        """Return the session id carried by a cookie, or ``None`` if it was tampered with."""

        try:
            raw = self._signer.unsign(cookie_value, max_age=self.cookie_max_age)
        except BadSignature:
            return None
        return raw.decode("utf-8")

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = self._database.load_session(session_id)
        if record is None:
            return None
        data, expires_at = record
        if expires_at <= self._now():
            self._database.delete_session(session_id)
            return None
        return data

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        self._database.save_session(session_id, data, self._now() + self._ttl)

    def destroy(self, session_id: str) -> None:
        self._database.delete_session(session_id)

    def purge_expired(self) -> int:
        removed = self._database.purge_expired_sessions(self._now())
        if removed:
            logger.info("Purged %s expired session(s)", removed)
        return removed

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


class SessionMiddleware:
    """Attach a server-side session to every HTTP request.

    A missing, forged, expired or unknown cookie simply yields a fresh empty
    session. Non-empty sessions are persisted when the response starts and
    the cookie is re-issued so its lifetime slides with activity.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        manager: SessionManager,
        session_cookie: str,
        https_only: bool = False,
        same_site: str = "lax",
        path: str = "/",
    ) -> None:
        self.app = app
        self.manager = manager
        self.session_cookie = session_cookie
        self.path = path
        self.security_flags = f"httponly; samesite={same_site}"
        if https_only:
            self.security_flags += "; secure"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        raw_cookie = connection.cookies.get(self.session_cookie)
        session_id: Optional[str] = None
        data: Dict[str, Any] = {}

        if raw_cookie:
            session_id = self.manager.unsign(raw_cookie)
            if session_id is None:
                logger.info("Discarding session cookie with an invalid signature")
            else:
                loaded = await anyio.to_thread.run_sync(self.manager.load, session_id)
                if loaded is None:
                    session_id = None
                else:
                    data = loaded

        scope["session"] = data
        scope[SESSION_ID_SCOPE_KEY] = session_id

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                cookie = await self._commit(scope, had_cookie=bool(raw_cookie))
                if cookie is not None:
                    headers.append("Set-Cookie", cookie)
            await send(message)

        await self.app(scope, receive, send_wrapper)

    async def _commit(self, scope: Scope, *, had_cookie: bool) -> Optional[str]:
        session_id: Optional[str] = scope.get(SESSION_ID_SCOPE_KEY)
        session: Dict[str, Any] = scope.get("session") or {}

        if scope.get(_DESTROY_SCOPE_KEY):
            if session_id:
                await anyio.to_thread.run_sync(self.manager.destroy, session_id)
            scope[SESSION_ID_SCOPE_KEY] = None
            return self._expired_cookie() if had_cookie else None

        if scope.get(_REGENERATE_SCOPE_KEY) and session_id:
            await anyio.to_thread.run_sync(self.manager.destroy, session_id)
            session_id = None

        if not session:
            if session_id:
                await anyio.to_thread.run_sync(self.manager.destroy, session_id)
                return self._expired_cookie()
            return None

        if session_id is None:
            session_id = self.manager.new_session_id()
            # New visitors are the only source of table growth.
            await anyio.to_thread.run_sync(self.manager.purge_expired)
        await anyio.to_thread.run_sync(self.manager.save, session_id, dict(session))
        scope[SESSION_ID_SCOPE_KEY] = session_id
        return (
            f"{self.session_cookie}={self.manager.sign(session_id)}; path={self.path}; "
            f"Max-Age={self.manager.cookie_max_age}; {self.security_flags}"
        )

    def _expired_cookie(self) -> str:
        return (
            f"{self.session_cookie}=null; path={self.path}; "
            f"expires=Thu, 01 Jan 1970 00:00:00 GMT; {self.security_flags}"
        )


def regenerate_session(request: Request) -> None:
    """Issue a new session identifier for this request's session data."""

    request.scope[_REGENERATE_SCOPE_KEY] = True


def destroy_session(request: Request) -> None:
    """Forget the session entirely, including its CSRF secret and flash queue."""

    request.session.clear()
    request.scope[_DESTROY_SCOPE_KEY] = True


def flash(request: Request, message: str, *, category: str = "info") -> None:
    messages = request.session.get(FLASH_SESSION_KEY)
    if not isinstance(messages, list):
        messages = []
    messages.append({"message": message, "category": category})
    request.session[FLASH_SESSION_KEY] = messages


def consume_flash(request: Request) -> List[Dict[str, str]]:
    messages = request.session.pop(FLASH_SESSION_KEY, [])
    if isinstance(messages, list):
        return messages
    return []


__all__ = [
    "SessionManager",
    "SessionMiddleware",
    "consume_flash",
    "destroy_session",
    "flash",
    "regenerate_session",
]
