"""JSON envelopes returned by the report endpoints."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi.responses import JSONResponse

from inforia.errors import PipelineError
from inforia.subscriptions import Subscription

SAVE_SUCCESS_MESSAGE = "Report saved successfully to Google Drive"


def subscription_after_save(
    snapshot: Subscription, increment: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Return the usage summary to report once a save succeeded.

    Values reported by the atomic increment win; when the increment failed
    the snapshot read before the save is advanced by one.
    """

    increment = increment or {}
    used = increment.get("reports_used")
    if used is None:
        used = snapshot.reports_used + 1
    remaining = increment.get("reports_remaining")
    if remaining is None:
        remaining = max(snapshot.reports_limit - used, 0)
    status = increment.get("status")
    if status is None:
        status = snapshot.status
    return {
        "plan_id": snapshot.plan_id,
        "reports_limit": snapshot.reports_limit,
        "reports_used": used,
        "reports_remaining": remaining,
        "status": status,
    }


def success_envelope(report: Mapping[str, Any], subscription: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "success": True,
        "message": SAVE_SUCCESS_MESSAGE,
        "report": dict(report),
        "subscription": dict(subscription),
    }


def error_response(exc: PipelineError, headers: Optional[Mapping[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=dict(headers or {}),
    )


__all__ = ["error_response", "subscription_after_save", "success_envelope"]
