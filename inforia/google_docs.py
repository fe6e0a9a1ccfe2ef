"""Export reports to the caller's Google Drive as Google Docs.

A report is written in two calls made with the user's own Google access
token: the document is created through the Docs API, then its share link and
size are read back through the Drive API.  Both must succeed.  Nothing is
deduplicated, so resubmitting the same report creates another document.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import requests
import structlog

from inforia.auth import AuthenticatedUser
from inforia.config import get_settings
from inforia.egress import secure_get, secure_post
from inforia.errors import ErrorKind, PipelineError

logger = structlog.get_logger(__name__)

GOOGLE_PROVIDER = "google"
DRIVE_FIELDS = "id,name,webViewLink,size"


@dataclass(frozen=True)
class ExternalDocument:
    id: str
    name: str
    url: str
    size: Optional[int] = None


def build_report_title(day: date, patient_name: str, session_type: str) -> str:
    """Return ``YYYY-MM-DD - {patient} - {session type}``."""

    return f"{day.isoformat()} - {patient_name.strip()} - {session_type.strip()}"


def resolve_google_token(user: AuthenticatedUser, provider_token: Optional[str]) -> str:
    """Return the caller's Google access token.

    A user who never linked Google gets ``integration_not_connected``; a
    linked user without a usable token must sign in with Google again
    (``token_expired``).
    """

    if not user.has_provider(GOOGLE_PROVIDER):
        raise PipelineError(ErrorKind.INTEGRATION_NOT_CONNECTED)
    if not provider_token or not provider_token.strip():
        raise PipelineError(ErrorKind.TOKEN_EXPIRED)
    return provider_token.strip()


def _document_body(title: str, content: str) -> Dict[str, Any]:
    return {
        "title": title,
        "body": {
            "content": [
                {"paragraph": {"elements": [{"textRun": {"content": content}}]}}
            ]
        },
    }


def _parse_size(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _call(step: str, func, url: str, **kwargs: Any) -> Dict[str, Any]:
    try:
        response = func(url, **kwargs)
        data = response.json()
    except requests.exceptions.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        logger.error("google_export_failed", step=step, status=status)
        if status == 401:
            raise PipelineError(ErrorKind.TOKEN_EXPIRED)
        raise PipelineError(ErrorKind.EXPORT_FAILED)
    except (requests.exceptions.RequestException, RuntimeError, ValueError) as exc:
        logger.error("google_export_failed", step=step, error=str(exc))
        raise PipelineError(ErrorKind.EXPORT_FAILED)
    if not isinstance(data, dict):
        logger.error("google_export_failed", step=step, error="unexpected body")
        raise PipelineError(ErrorKind.EXPORT_FAILED)
    return data


def export_document(access_token: str, title: str, content: str) -> ExternalDocument:
    """Create a Google Doc named ``title`` holding ``content``."""

    settings = get_settings()
    headers = {"Authorization": f"Bearer {access_token}"}

    created = _call(
        "create",
        secure_post,
        f"{settings.google_docs_url}/documents",
        json=_document_body(title, content),
        headers=headers,
    )
    document_id = created.get("documentId")
    if not document_id:
        logger.error("google_export_failed", step="create", error="missing documentId")
        raise PipelineError(ErrorKind.EXPORT_FAILED)

    meta = _call(
        "metadata",
        secure_get,
        f"{settings.google_drive_url}/files/{document_id}",
        params={"fields": DRIVE_FIELDS},
        headers=headers,
    )
    if not meta.get("id") or not meta.get("webViewLink"):
        logger.error("google_export_failed", step="metadata", error="incomplete metadata")
        raise PipelineError(ErrorKind.EXPORT_FAILED)

    document = ExternalDocument(
        id=str(meta["id"]),
        name=str(meta.get("name") or title),
        url=str(meta["webViewLink"]),
        size=_parse_size(meta.get("size")),
    )
    logger.info("google_doc_created", document_id=document.id)
    return document


__all__ = [
    "ExternalDocument",
    "build_report_title",
    "export_document",
    "resolve_google_token",
]
