"""
Backend API for the iNFORiA application.

This FastAPI application drafts psychological session reports with an LLM,
saves finished reports to the professional's Google Drive while tracking the
subscription quota, and exposes the calendar, search, subscription and help
center data held by the hosted backend.  Every failure is returned as a JSON
envelope ``{"error", "code", "message"?}`` built from a typed error kind.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, Form, Header, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog.contextvars import bind_contextvars, unbind_contextvars

from inforia import appointments as appointments_api
from inforia import search as search_api
from inforia import subscriptions as subscriptions_api
from inforia import support as support_api
from inforia.auth import AuthenticatedUser, authenticate, require_token
from inforia.config import get_settings
from inforia.drafting import draft_report
from inforia.errors import ErrorKind, PipelineError
from inforia.reports import SaveReportRequest, save_report
from inforia.responses import error_response
from inforia.store import HostedStore, StoreError, get_store

settings = get_settings()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format="%(message)s")

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

_TRACE_ID_CTX: ContextVar[str | None] = ContextVar("trace_id", default=None)

app = FastAPI(title="iNFORiA API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def inject_trace_id(request: Request, call_next):
    """Attach or propagate a trace identifier for each request."""

    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
    token = _TRACE_ID_CTX.set(trace_id)
    bind_contextvars(trace_id=trace_id, path=request.url.path, method=request.method)
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        logger.exception("request_failed", path=request.url.path, method=request.method)
        raise
    finally:
        if response is not None:
            response.headers["X-Trace-Id"] = trace_id
        try:
            unbind_contextvars("trace_id", "path", "method")
        except LookupError:  # pragma: no cover
            pass
        _TRACE_ID_CTX.reset(token)


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", code=exc.kind.value, error=exc.error)
    else:
        logger.info("request_rejected", code=exc.kind.value, status=exc.status_code)
    return error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error=str(exc))
    return error_response(PipelineError(ErrorKind.INTERNAL))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request shapes as 400 validation errors."""

    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return error_response(PipelineError(ErrorKind.VALIDATION, message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=dict(exc.headers or {}),
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

bearer = HTTPBearer(auto_error=False)


def store_dependency() -> HostedStore:
    return get_store()


def _token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    return credentials.credentials if credentials else None


def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: HostedStore = Depends(store_dependency),
) -> AuthenticatedUser:
    return authenticate(_token(credentials), store)


async def json_body(request: Request) -> Any:
    """Decoded JSON body, or ``None`` when it is missing or malformed."""

    try:
        return await request.json()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"])
async def health() -> Dict[str, Any]:
    return {"status": "ok", "store_configured": bool(settings.supabase_url)}


@app.get("/metrics", tags=["system"], response_model=None)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT, tags=["auth"])
def logout(
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Response:
    try:
        store.sign_out(user.access_token)
    except StoreError as exc:
        logger.warning("sign_out_failed", user_id=user.id, error=exc.message)
        raise PipelineError(ErrorKind.STORE_UNAVAILABLE, message=exc.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@app.post("/informe-inteligente", tags=["reports"])
def informe_inteligente(
    transcription: Optional[str] = Form(None),
    sessionNotes: Optional[str] = Form(None),
    user: AuthenticatedUser = Depends(current_user),
) -> Dict[str, str]:
    """Draft a Markdown report from a session transcript and/or notes."""

    return {"report": draft_report(transcription, sessionNotes)}


@app.post("/save-report", status_code=status.HTTP_201_CREATED, tags=["reports"])
def save_report_endpoint(
    body: Any = Depends(json_body),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: HostedStore = Depends(store_dependency),
    provider_token: Optional[str] = Header(None, alias="X-Provider-Token"),
) -> JSONResponse:
    """Save a finished report to Google Drive and record it.

    The bearer header and the body are checked locally before any network
    call is made.
    """

    token = require_token(_token(credentials))
    payload = SaveReportRequest.parse(body)
    user = authenticate(token, store)
    envelope = save_report(store, user, payload, provider_token)
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=envelope)


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


@app.get("/subscription", tags=["subscription"])
def subscription_status(
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return subscriptions_api.get_subscription_status(store, user)


@app.post("/subscription/renew", tags=["subscription"])
def subscription_renew(
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return subscriptions_api.renew_subscription_plan(store, user)


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


@app.get("/appointments", tags=["appointments"])
def list_appointments(
    start: Optional[str] = None,
    end: Optional[str] = None,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> List[Dict[str, Any]]:
    return appointments_api.list_appointments(store, user, start, end)


@app.post("/appointments", status_code=status.HTTP_201_CREATED, tags=["appointments"])
def create_appointment(
    data: appointments_api.AppointmentCreate,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return appointments_api.create_appointment(store, user, data)


@app.get("/appointments/{appointment_id}", tags=["appointments"])
def get_appointment(
    appointment_id: str,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return appointments_api.get_appointment(store, user, appointment_id)


@app.patch("/appointments/{appointment_id}", tags=["appointments"])
def update_appointment(
    appointment_id: str,
    data: appointments_api.AppointmentUpdate,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return appointments_api.update_appointment(store, user, appointment_id, data)


@app.patch("/appointments/{appointment_id}/status", tags=["appointments"])
def update_appointment_status(
    appointment_id: str,
    data: appointments_api.AppointmentStatusUpdate,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Dict[str, Any]:
    return appointments_api.update_appointment_status(store, user, appointment_id, data.status)


@app.delete(
    "/appointments/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["appointments"],
)
def delete_appointment(
    appointment_id: str,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Response:
    appointments_api.delete_appointment(store, user, appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@app.get("/search", tags=["search"], response_model=None)
def search(
    q: str = "",
    advanced: bool = False,
    limit: int = Query(search_api.DEFAULT_MAX_RESULTS, ge=1, le=100),
    type: Optional[str] = None,
    grouped: bool = False,
    user: AuthenticatedUser = Depends(current_user),
    store: HostedStore = Depends(store_dependency),
) -> Any:
    """Search the caller's records, optionally narrowed to one result type
    or grouped by type."""

    if type is not None:
        search_api.validate_result_type(type)
    results = search_api.universal_search(store, user, q, max_results=limit, advanced=advanced)
    if type is not None:
        results = search_api.filter_results_by_type(results, type)
    if grouped:
        return search_api.group_results_by_type(results)
    return results


@app.get("/search/suggestions", tags=["search"])
def search_suggestions() -> List[str]:
    return list(search_api.SEARCH_SUGGESTIONS)


# ---------------------------------------------------------------------------
# Help center
# ---------------------------------------------------------------------------


@app.get("/help/faqs", tags=["help"])
def faqs(
    category: Optional[str] = None,
    q: Optional[str] = None,
    store: HostedStore = Depends(store_dependency),
) -> List[Dict[str, Any]]:
    q = (q or "").strip()
    if q:
        return support_api.search_faqs(store, q)
    if category:
        return support_api.get_faqs_by_category(store, category)
    return support_api.get_faqs(store)


@app.get("/help/faqs/categories", tags=["help"])
def faq_categories(store: HostedStore = Depends(store_dependency)) -> List[str]:
    return support_api.get_faq_categories(store)


@app.get("/help/tutorials", tags=["help"])
def tutorials(
    category: Optional[str] = None,
    q: Optional[str] = None,
    store: HostedStore = Depends(store_dependency),
) -> List[Dict[str, Any]]:
    q = (q or "").strip()
    if q:
        return [support_api.decorate_tutorial(t) for t in support_api.search_tutorials(store, q)]
    if category:
        return [
            support_api.decorate_tutorial(t)
            for t in support_api.get_tutorials_by_category(store, category)
        ]
    return [
        {
            "category": group["category"],
            "tutorials": [support_api.decorate_tutorial(t) for t in group["tutorials"]],
        }
        for group in support_api.get_tutorials(store)
    ]


@app.get("/help/tutorials/categories", tags=["help"])
def tutorial_categories(store: HostedStore = Depends(store_dependency)) -> List[str]:
    return support_api.get_tutorial_categories(store)


@app.get("/help/tutorials/{tutorial_id}", tags=["help"])
def tutorial(tutorial_id: str, store: HostedStore = Depends(store_dependency)) -> Dict[str, Any]:
    return support_api.decorate_tutorial(support_api.get_tutorial_by_id(store, tutorial_id))


def run() -> None:  # pragma: no cover - process entry point
    import uvicorn

    uvicorn.run("inforia.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
