"""
TaskDesk API: owner-scoped tasks and notes behind bearer authentication.

Run with ``taskdesk-api`` (or ``python -m taskdesk.backend.main``); settings
come from the environment, see ``config.py``.
"""

import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Type

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import IdentityVerifier, optional_identity, require_identity
from .config import Settings
from .domain import (
    AppError, AuthRejected, PayloadTooLarge, ProviderError, RejectReason,
    RequestContext, StoreError, ValidationError,
)
from .identity import IdentityProvider, LocalIdentityProvider, SupabaseIdentityProvider
from .models import (
    Envelope, HealthReport, NoteCreate, NoteRecord, NoteUpdate, ServiceStatus, TaskCreate, TaskRecord,
    TaskUpdate, UserCreds, parse_body,
)
from .services import NoteService, ResourceService, TaskService
from .store import MemoryStore, RecordStore, SqliteStore, SupabaseStore
from .utils import configure_logging, time_now

logger = logging.getLogger(__name__)

API_NAME = "TaskDesk API"
API_VERSION = "1.0.0"
MAX_BODY_BYTES = 10 * 1024

def respond(status_code: int = 200, success: bool = True, **fields) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Envelope(success=success, **fields).body())

# -------------------------------
# Dependencies
# -------------------------------

def json_body(model: Type[BaseModel]):
    """
    Dependency validating the request body against ``model``.

    Route handlers declare it after the auth dependency, so an unauthenticated
    request is rejected before its body is decoded.
    """
    async def decode(request: Request) -> BaseModel:
        raw = await request.body()
        if len(raw) > MAX_BODY_BYTES:
            raise PayloadTooLarge(f"Request body must be at most {MAX_BODY_BYTES} bytes")
        return parse_body(model, raw)
    return decode

def task_service(request: Request) -> TaskService:
    return request.app.state.tasks

def note_service(request: Request) -> NoteService:
    return request.app.state.notes

# -------------------------------
# Public routes
# -------------------------------

public = APIRouter()

@public.get("/")
def read_root(ctx: RequestContext = Depends(optional_identity)):
    identity = None if ctx.identity.is_anonymous else ctx.identity.to_dict()
    return respond(data={
        "name": API_NAME,
        "version": API_VERSION,
        "status": "running",
        "authenticated_as": identity,
        "endpoints": {
            "health": "GET /health",
            "auth": {"register": "POST /auth/register", "login": "POST /auth/login"},
            "tasks": {"list": "GET /tasks", "get": "GET /tasks/:id", "create": "POST /tasks",
                      "update": "PATCH /tasks/:id", "delete": "DELETE /tasks/:id"},
            "notes": {"list": "GET /notes", "get": "GET /notes/:id", "create": "POST /notes",
                      "update": "PATCH /notes/:id", "delete": "DELETE /notes/:id"},
        },
    })

@public.get("/health")
def health_check(request: Request):
    report = HealthReport(
        timestamp=time_now(),
        uptime=round(time.monotonic() - request.app.state.started, 3),
        services=ServiceStatus(),
    )
    try:
        request.app.state.store.ping()
        report.services.database = "ok"
    except Exception:
        logger.exception("database health check failed")
        report.status = "degraded"
        report.services.database = "error"
    ok = report.status == "ok"
    return respond(200 if ok else 503, success=ok, data=report.model_dump(), message=report.status)

@public.post("/auth/register")
def register(creds: UserCreds, request: Request):
    provider: IdentityProvider = request.app.state.identity
    try:
        identity = provider.sign_up(creds.email, creds.password)
    except ProviderError as e:
        if e.status_code is None or e.status_code >= 500:
            logger.error("sign-up failed: %s", e.message)
            raise AppError("Identity provider unavailable")
        raise ValidationError(e.message)
    return respond(201, data=identity.to_dict(), message="User registered successfully")

@public.post("/auth/login")
def login(creds: UserCreds, request: Request):
    provider: IdentityProvider = request.app.state.identity
    try:
        session = provider.sign_in(creds.email, creds.password)
    except ProviderError as e:
        if e.status_code is None or e.status_code >= 500:
            logger.error("sign-in failed: %s", e.message)
            raise AppError("Identity provider unavailable")
        raise AuthRejected(RejectReason.INVALID_OR_EXPIRED, e.message)
    return respond(data=session.to_dict(), message="Login successful")

# -------------------------------
# Protected resource routes
# -------------------------------

def resource_router(prefix: str, service_dep, record_model: Type[BaseModel],
                    create_model: Type[BaseModel], update_model: Type[BaseModel], label: str) -> APIRouter:
    """Build the five owner-scoped routes for one resource."""
    router = APIRouter(prefix=prefix, tags=[prefix.strip("/")])

    def serialize(row: Dict[str, Any]) -> Dict[str, Any]:
        return record_model.model_validate(row).model_dump()

    @router.get("")
    def list_records(ctx: RequestContext = Depends(require_identity),
                     service: ResourceService = Depends(service_dep)):
        rows, count = service.list(ctx.user_id)
        return respond(data=[serialize(r) for r in rows], count=count)

    @router.post("")
    def create_record(ctx: RequestContext = Depends(require_identity),
                      body: BaseModel = Depends(json_body(create_model)),
                      service: ResourceService = Depends(service_dep)):
        row = service.create(body, ctx.user_id)
        return respond(201, data=serialize(row), message=f"{label} created successfully")

    @router.get("/{record_id}")
    def get_record(record_id: str, ctx: RequestContext = Depends(require_identity),
                   service: ResourceService = Depends(service_dep)):
        return respond(data=serialize(service.get(record_id, ctx.user_id)))

    @router.patch("/{record_id}")
    def update_record(record_id: str, ctx: RequestContext = Depends(require_identity),
                      body: BaseModel = Depends(json_body(update_model)),
                      service: ResourceService = Depends(service_dep)):
        row = service.update(record_id, ctx.user_id, body)
        return respond(data=serialize(row), message=f"{label} updated successfully")

    @router.delete("/{record_id}")
    def delete_record(record_id: str, ctx: RequestContext = Depends(require_identity),
                      service: ResourceService = Depends(service_dep)):
        service.delete(record_id, ctx.user_id)
        return respond(message=f"{label} deleted successfully")

    return router

# -------------------------------
# Error handling
# -------------------------------

def install_error_handlers(app: FastAPI, settings: Settings) -> None:

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("store error on %s %s: %s", request.method, request.url.path, exc.message)
        return respond(exc.status_code, success=False, error=exc.label, message="Database operation failed")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.label, request.method, request.url.path, exc.message)
        return respond(exc.status_code, success=False, error=exc.label, message=exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        failures = []
        for err in exc.errors():
            where = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            failures.append(f"{where}: {err.get('msg')}" if where else str(err.get("msg")))
        return respond(400, success=False, error=ValidationError.label, message="; ".join(failures))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return respond(404, success=False, error="Not Found",
                           message=f"Route {request.method} {request.url.path} not found")
        return respond(exc.status_code, success=False, error="Error", message=str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        if settings.is_production:
            return respond(500, success=False, error="Internal Server Error", message="Internal Server Error")
        return respond(500, success=False, error=type(exc).__name__, message=str(exc) or "Internal Server Error",
                       stack=traceback.format_exception(exc))

# -------------------------------
# App factory
# -------------------------------

def build_store(settings: Settings) -> RecordStore:
    if settings.backend == "supabase":
        return SupabaseStore(settings.supabase_url, settings.supabase_key)
    if settings.backend == "sqlite":
        return SqliteStore(settings.db_path)
    return MemoryStore()

def build_identity(settings: Settings) -> IdentityProvider:
    if settings.backend == "supabase":
        return SupabaseIdentityProvider(settings.supabase_url, settings.supabase_key)
    return LocalIdentityProvider()

def create_app(settings: Optional[Settings] = None,
               store: Optional[RecordStore] = None,
               identity: Optional[IdentityProvider] = None) -> FastAPI:
    """
    Assemble the API around injected collaborators.

    ``store`` and ``identity`` default to the backends named by ``settings``;
    tests pass fakes instead.
    """
    settings = settings or Settings.from_env()
    store = store or build_store(settings)
    identity = identity or build_identity(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting (env=%s, backend=%s)", API_NAME, settings.env, settings.backend)
        yield
        logger.info("%s shutting down", API_NAME)
        store.close()
        identity.close()

    app = FastAPI(title=API_NAME, description="Owner-scoped tasks and notes", version=API_VERSION,
                  lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.identity = identity
    app.state.verifier = IdentityVerifier(identity, debug=not settings.is_production)
    app.state.tasks = TaskService(store)
    app.state.notes = NoteService(store)
    app.state.started = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_and_limit(request: Request, call_next):
        started = time.perf_counter()
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > MAX_BODY_BYTES:
            response = respond(413, success=False, error=PayloadTooLarge.label,
                               message=f"Request body must be at most {MAX_BODY_BYTES} bytes")
        else:
            response = await call_next(request)
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code,
                    (time.perf_counter() - started) * 1000)
        return response

    install_error_handlers(app, settings)
    app.include_router(public)
    app.include_router(resource_router("/tasks", task_service, TaskRecord, TaskCreate, TaskUpdate, "Task"))
    app.include_router(resource_router("/notes", note_service, NoteRecord, NoteCreate, NoteUpdate, "Note"))
    return app

def run() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())

if __name__ == "__main__":
    run()
