"""Browser-facing application: sessions, job pages, and error translation."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, Depends, FastAPI, Form, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .auth import Authenticator, remember_return_path, require_user, resolve_identity
from .config import Settings, load_settings
from .csrf import CSRF_FIELD_NAME, csrf_protect, refresh_token
from .database import Database
from .errors import (
    AuthFailure,
    FailureKind,
    JobTrackerError,
    StorageError,
    ValidationFailure,
)
from .jobs import JobController
from .models import JobStatus, User
from .sessions import SessionManager, SessionMiddleware, consume_flash, flash

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

GENERIC_SERVER_ERROR = "Internal Server Error: Something went wrong on our end."
PAGE_NOT_FOUND = "Page not found"

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'self'; form-action 'self'; frame-ancestors 'none'",
}

logger = logging.getLogger("jobtracker.web")


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Create the jobs tracker web application."""

    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    session_manager = SessionManager(
        database,
        secret_key=settings.session_secret,
        ttl=settings.session_ttl,
    )
    session_manager.purge_expired()

    app = FastAPI(
        title="Jobs Tracker",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        dependencies=[Depends(resolve_identity), Depends(csrf_protect)],
    )
    app.state.settings = settings
    app.state.database = database
    app.state.session_manager = session_manager
    app.state.authenticator = Authenticator(database)
    app.state.jobs = JobController(database)

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.globals["now"] = datetime.now
    templates.env.globals["csrf_field_name"] = CSRF_FIELD_NAME
    templates.env.globals["job_statuses"] = JobStatus.choices()
    app.state.templates = templates

    app.add_middleware(
        SessionMiddleware,
        manager=session_manager,
        session_cookie=settings.session_cookie,
        https_only=settings.secure_cookies,
        same_site="lax",
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.trusted_proxies)

    register_error_handlers(app)
    register_session_routes(app)
    register_job_routes(app)

    return app


def render(
    request: Request,
    template_name: str,
    context: Optional[Mapping[str, Any]] = None,
    *,
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    """Render a full page, draining the flash queue exactly once."""

    templates: Jinja2Templates = request.app.state.templates
    csrf_token = getattr(request.state, "csrf_token", None) or refresh_token(request)
    payload: Dict[str, Any] = {
        "user": getattr(request.state, "user", None),
        "csrf_token": csrf_token,
        "messages": consume_flash(request),
    }
    payload.update(context or {})
    return templates.TemplateResponse(request, template_name, payload, status_code=status_code)


def redirect_to(request: Request, route_name: str, **path_params: Any) -> RedirectResponse:
    return RedirectResponse(
        request.url_for(route_name, **path_params),
        status_code=status.HTTP_303_SEE_OTHER,
    )


def render_error(request: Request, message: str, status_code: int) -> HTMLResponse:
    return render(
        request,
        "error.html",
        {"status_code": status_code, "message": message},
        status_code=status_code,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Translate every failure kind into an HTTP response."""

    settings: Settings = app.state.settings

    @app.exception_handler(JobTrackerError)
    async def handle_application_failure(request: Request, exc: JobTrackerError):
        kind = exc.kind
        if kind is FailureKind.UNAUTHENTICATED:
            if request.method in {"GET", "HEAD"}:
                remember_return_path(request)
                return redirect_to(request, "logon_form")
            return render_error(request, exc.message, exc.status_code)
        if kind is FailureKind.CSRF:
            return render_error(request, exc.message, exc.status_code)
        if kind is FailureKind.NOT_FOUND:
            return render_error(request, exc.message, exc.status_code)
        if kind in {FailureKind.VALIDATION, FailureKind.AUTH, FailureKind.DUPLICATE_KEY}:
            return render_error(request, exc.message, exc.status_code)

        logger.error(
            "%s failure while handling %s %s: %s",
            kind.value,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        message = exc.message if settings.show_error_details else GENERIC_SERVER_ERROR
        return PlainTextResponse(message, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return render_error(
            request,
            ValidationFailure({}).message,
            status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return render_error(request, PAGE_NOT_FOUND, exc.status_code)
        return render_error(request, str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error while processing %s %s", request.method, request.url.path)
        message = str(exc) or GENERIC_SERVER_ERROR
        if not settings.show_error_details:
            message = GENERIC_SERVER_ERROR
        return PlainTextResponse(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_session_routes(app: FastAPI) -> None:
    """Landing page plus register/logon/logoff."""

    authenticator: Authenticator = app.state.authenticator

    @app.get("/", response_class=HTMLResponse, name="home")
    async def home(request: Request):
        return render(request, "index.html")

    @app.get("/healthz", name="healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/sessions/register", response_class=HTMLResponse, name="register_form")
    async def register_form(request: Request):
        return render(request, "register.html", {"values": {}, "errors": {}})

    @app.post("/sessions/register", name="register")
    async def register(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        password: str = Form(""),
        password1: str = Form(""),
    ):
        try:
            user = authenticator.register(name, email, password, password1)
        except ValidationFailure as exc:
            return render(
                request,
                "register.html",
                {"values": exc.values, "errors": exc.field_errors},
                status_code=exc.status_code,
            )

        target = authenticator.establish_session(request, user)
        flash(request, f"Welcome, {user.name}! Your account has been created.", category="success")
        return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/sessions/logon", response_class=HTMLResponse, name="logon_form")
    async def logon_form(request: Request):
        if getattr(request.state, "user", None) is not None:
            return redirect_to(request, "home")
        return render(request, "logon.html")

    @app.post("/sessions/logon", name="logon")
    async def logon(
        request: Request,
        email: str = Form(""),
        password: str = Form(""),
    ):
        try:
            user = authenticator.authenticate(email, password)
        except AuthFailure as exc:
            logger.warning("Failed logon attempt")
            flash(request, exc.message, category="error")
            return redirect_to(request, "logon_form")

        target = authenticator.establish_session(request, user)
        flash(request, f"Welcome back, {user.name}.", category="success")
        return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/sessions/logoff", name="logoff", dependencies=[Depends(require_user)])
    async def logoff(request: Request):
        authenticator.end_session(request)
        return redirect_to(request, "home")


def register_job_routes(app: FastAPI) -> None:
    """Job pages. Every route sits behind the authorization gate."""

    controller: JobController = app.state.jobs
    router = APIRouter(prefix="/jobs", dependencies=[Depends(require_user)])

    def _render_form(
        request: Request,
        job: Mapping[str, object],
        *,
        job_id: Optional[int] = None,
        errors: Optional[Mapping[str, object]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return render(
            request,
            "job.html",
            {"job": job, "job_id": job_id, "errors": errors or {}},
            status_code=status_code,
        )

    @router.get("", response_class=HTMLResponse, name="jobs")
    async def list_jobs(request: Request, user: User = Depends(require_user)):
        try:
            jobs = controller.list_jobs(user.id)
        except StorageError:
            logger.exception("Failed to load jobs for user %s", user.id)
            flash(request, "Unable to fetch your jobs. Please try again.", category="error")
            return redirect_to(request, "home")
        return render(request, "jobs.html", {"jobs": jobs})

    @router.get("/new", response_class=HTMLResponse, name="new_job")
    async def new_job(request: Request):
        return _render_form(request, controller.new_form())

    @router.post("", name="create_job")
    async def create_job(
        request: Request,
        user: User = Depends(require_user),
        company: str = Form(""),
        position: str = Form(""),
        job_status: str = Form("", alias="status"),
    ):
        fields = {"company": company, "position": position, "status": job_status}
        try:
            controller.create(user.id, fields)
        except ValidationFailure as exc:
            return _render_form(
                request,
                exc.values,
                errors=exc.field_errors,
                status_code=exc.status_code,
            )
        except StorageError:
            logger.exception("Failed to create job for user %s", user.id)
            flash(request, "Unable to create job. Please try again.", category="error")
            return redirect_to(request, "jobs")

        flash(request, "Job application added successfully!", category="success")
        return redirect_to(request, "jobs")

    @router.get("/edit/{job_id}", response_class=HTMLResponse, name="edit_job")
    async def edit_job(request: Request, job_id: str, user: User = Depends(require_user)):
        try:
            job = controller.get_for_edit(user.id, job_id)
        except StorageError:
            logger.exception("Failed to load job %s for user %s", job_id, user.id)
            flash(request, "Unable to fetch job details. Please try again.", category="error")
            return redirect_to(request, "jobs")
        return _render_form(request, job.to_form(), job_id=job.id)

    @router.post("/update/{job_id}", name="update_job")
    async def update_job(
        request: Request,
        job_id: str,
        user: User = Depends(require_user),
        company: str = Form(""),
        position: str = Form(""),
        job_status: str = Form("", alias="status"),
    ):
        fields = {"company": company, "position": position, "status": job_status}
        try:
            job = controller.update(user.id, job_id, fields)
        except ValidationFailure as exc:
            return _render_form(
                request,
                exc.values,
                job_id=int(job_id),
                errors=exc.field_errors,
                status_code=exc.status_code,
            )
        except StorageError:
            logger.exception("Failed to update job %s for user %s", job_id, user.id)
            flash(request, "Unable to update job. Please try again.", category="error")
            return redirect_to(request, "jobs")

        flash(request, f"Job at {job.company} updated successfully!", category="success")
        return redirect_to(request, "jobs")

    @router.post("/delete/{job_id}", name="delete_job")
    async def delete_job(request: Request, job_id: str, user: User = Depends(require_user)):
        try:
            controller.delete(user.id, job_id)
        except StorageError:
            logger.exception("Failed to delete job %s for user %s", job_id, user.id)
            flash(request, "Unable to delete job. Please try again.", category="error")
            return redirect_to(request, "jobs")

        flash(request, "Job deleted successfully!", category="success")
        return redirect_to(request, "jobs")

    app.include_router(router)


__all__ = ["create_app", "render", "redirect_to"]
