"""Typed error kinds shared by every request handler.

Each integration boundary (store, auth, Google, LLM) converts its own failures
into a :class:`PipelineError` carrying an :class:`ErrorKind`.  Handlers never
inspect upstream error strings; the kind alone decides the HTTP status and the
remediation hint returned to the client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH_MISSING = "auth_missing"
    AUTH_INVALID = "auth_invalid"
    SUBSCRIPTION_NOT_FOUND = "subscription_not_found"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    QUOTA_EXCEEDED = "quota_exceeded"
    PATIENT_NOT_FOUND = "patient_not_found"
    INTEGRATION_NOT_CONNECTED = "integration_not_connected"
    TOKEN_EXPIRED = "token_expired"
    EXPORT_FAILED = "export_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    NO_INPUT = "no_input"
    DRAFT_FAILED = "draft_failed"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        return _KIND_DEFAULTS[self][0]

    @property
    def default_error(self) -> str:
        return _KIND_DEFAULTS[self][1]

    @property
    def default_message(self) -> Optional[str]:
        return _KIND_DEFAULTS[self][2]


# kind -> (HTTP status, short error, remediation message)
_KIND_DEFAULTS: Dict[ErrorKind, Tuple[int, str, Optional[str]]] = {
    ErrorKind.VALIDATION: (400, "Invalid request", None),
    ErrorKind.AUTH_MISSING: (401, "Authentication token is missing", None),
    ErrorKind.AUTH_INVALID: (401, "Authentication failed. Invalid JWT.", None),
    ErrorKind.SUBSCRIPTION_NOT_FOUND: (
        404,
        "Subscription not found",
        "Please contact support to set up your subscription",
    ),
    ErrorKind.SUBSCRIPTION_INACTIVE: (
        403,
        "Subscription not active",
        "Your subscription is not active. Please renew your plan to continue creating reports.",
    ),
    ErrorKind.QUOTA_EXCEEDED: (
        403,
        "Report limit reached",
        "You have reached your monthly report limit. Please upgrade your plan to continue.",
    ),
    ErrorKind.PATIENT_NOT_FOUND: (
        404,
        "Patient not found or access denied",
        "The specified patient does not exist or you don't have access to it",
    ),
    ErrorKind.INTEGRATION_NOT_CONNECTED: (
        400,
        "Google Drive integration not connected",
        "Please connect your Google account to save reports to Google Drive",
    ),
    ErrorKind.TOKEN_EXPIRED: (
        401,
        "Google access token not available",
        "Please re-authenticate with Google to save reports",
    ),
    ErrorKind.EXPORT_FAILED: (
        500,
        "Failed to create Google Doc",
        "Unable to save report to Google Drive",
    ),
    ErrorKind.PERSISTENCE_FAILED: (500, "Failed to save report metadata to database", None),
    ErrorKind.NO_INPUT: (
        400,
        "No se proporcionó ni transcripción ni notas de sesión.",
        None,
    ),
    ErrorKind.DRAFT_FAILED: (500, "Report generation failed", None),
    ErrorKind.NOT_FOUND: (404, "Resource not found", None),
    ErrorKind.STORE_UNAVAILABLE: (500, "Internal server error", None),
    ErrorKind.INTERNAL: (500, "Internal server error", None),
}


class PipelineError(Exception):
    """Terminal failure of a request stage.

    ``error`` and ``message`` default to the kind's canned strings; ``extra``
    is merged into the response envelope (e.g. ``subscription`` for quota
    errors, ``details`` for persistence failures).
    """

    def __init__(
        self,
        kind: ErrorKind,
        error: Optional[str] = None,
        message: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.kind = kind
        self.error = error or kind.default_error
        self.message = message if message is not None else kind.default_message
        self.extra = extra
        super().__init__(self.error)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "code": self.kind.value}
        if self.message:
            payload["message"] = self.message
        for key, value in self.extra.items():
            if key not in payload:
                payload[key] = value
        return payload


def validation_error(error: str) -> PipelineError:
    return PipelineError(ErrorKind.VALIDATION, error)


__all__ = ["ErrorKind", "PipelineError", "validation_error"]
