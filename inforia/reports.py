"""Saving finished reports to Google Drive.

:func:`save_report` runs the stages strictly in order and stops at the first
failure:

1. quota guard (subscription row, status, usage)
2. patient resolver (owned by the caller)
3. Google token resolution and document export
4. report metadata insert
5. usage counter increment (server-side, atomic)

Only the last stage is allowed to fail without failing the request: the
document and its metadata row already exist, so an undercounted quota is
logged and the save is still reported as successful.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Mapping, Optional

import structlog
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError, validation_error
from inforia.google_docs import (
    ExternalDocument,
    build_report_title,
    export_document,
    resolve_google_token,
)
from inforia.patients import resolve_patient, validate_patient_id
from inforia.responses import subscription_after_save, success_envelope
from inforia.store import HostedStore, StoreError
from inforia.subscriptions import check_quota
from inforia.time_utils import utc_today

logger = structlog.get_logger(__name__)

REPORT_SAVES = Counter(
    "inforia_report_saves_total",
    "Report save requests by outcome",
    ("outcome",),
)

INCREMENT_FUNCTION = "increment_reports_used"


class SaveReportRequest(BaseModel):
    """Body of ``POST /save-report``.

    Fields are checked in declaration order and only the first failure is
    reported, with the UUID format checked after all three are present.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    patient_id: Any = None
    report_content: Optional[str] = None
    session_type: Optional[str] = None

    @field_validator("patient_id", mode="before")
    @classmethod
    def _patient_present(cls, value: Any) -> Any:
        if not value:
            raise PydanticCustomError("required", "patient_id is required")
        return value

    @field_validator("report_content", "session_type", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any, info: ValidationInfo) -> str:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError(
                "non_empty_string",
                "{field} is required and must be a non-empty string",
                {"field": info.field_name},
            )
        return value

    @classmethod
    def parse(cls, payload: Any) -> "SaveReportRequest":
        """Validate a decoded JSON body; raises a 400 on the first bad field."""

        if not isinstance(payload, Mapping):
            raise validation_error("Request body must be a JSON object")
        try:
            request = cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise validation_error(exc.errors()[0]["msg"])
        validate_patient_id(request.patient_id)
        return request


def record_report(
    store: HostedStore,
    user_id: str,
    patient_id: str,
    document: ExternalDocument,
    file_name: str,
) -> Dict[str, Any]:
    """Insert the metadata row pointing at ``document``."""

    try:
        return store.insert(
            "reports",
            {
                "user_id": user_id,
                "patient_id": patient_id,
                "gdrive_file_url": document.url,
                "gdrive_file_id": document.id,
                "file_name": file_name,
                "file_size": document.size,
            },
        )
    except StoreError as exc:
        logger.error(
            "report_insert_failed",
            user_id=user_id,
            document_id=document.id,
            error=exc.message,
        )
        raise PipelineError(ErrorKind.PERSISTENCE_FAILED, details=exc.message)


def increment_usage(store: HostedStore, user_id: str) -> Optional[Dict[str, Any]]:
    """Atomically bump ``reports_used``; ``None`` when the call failed."""

    try:
        result = store.rpc(INCREMENT_FUNCTION, {"p_user_id": user_id})
    except StoreError as exc:
        logger.error("usage_increment_failed", user_id=user_id, error=exc.message)
        return None
    if isinstance(result, list):
        result = result[0] if result else None
    # A function declared "returns integer" answers with the new count only.
    if isinstance(result, int) and not isinstance(result, bool):
        return {"reports_used": result}
    return result if isinstance(result, dict) else None


def save_report(
    store: HostedStore,
    user: AuthenticatedUser,
    request: SaveReportRequest,
    provider_token: Optional[str],
    *,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Export ``request`` to Drive and record it; returns the success envelope."""

    try:
        subscription = check_quota(store, user.id)
        patient = resolve_patient(store, user.id, request.patient_id)
        title = build_report_title(
            today or utc_today(), patient.display_name, request.session_type
        )
        google_token = resolve_google_token(user, provider_token)
        document = export_document(google_token, title, request.report_content)
        row = record_report(store, user.id, patient.id, document, title)
    except PipelineError as exc:
        REPORT_SAVES.labels(outcome=exc.kind.value).inc()
        raise

    increment = increment_usage(store, user.id)
    REPORT_SAVES.labels(outcome="success" if increment is not None else "success_uncounted").inc()
    logger.info(
        "report_saved",
        user_id=user.id,
        patient_id=patient.id,
        report_id=row.get("id"),
        document_id=document.id,
        counted=increment is not None,
    )

    report = {
        "id": row.get("id"),
        "created_at": row.get("created_at"),
        "gdrive_file_url": row.get("gdrive_file_url", document.url),
        "gdrive_file_id": document.id,
        "file_name": row.get("file_name", title),
        "patient_name": patient.full_name,
        "session_type": request.session_type,
    }
    return success_envelope(report, subscription_after_save(subscription, increment))


__all__ = [
    "REPORT_SAVES",
    "SaveReportRequest",
    "increment_usage",
    "record_report",
    "save_report",
]
