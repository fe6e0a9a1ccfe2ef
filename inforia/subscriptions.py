"""Subscription plans, report quotas and renewal.

Subscriptions live in the hosted store; this module only reads snapshots of
them and asks the store's server-side functions to mutate them.  The quota
check in :func:`check_quota` and the increment performed after a report is
saved are two separate round trips, so concurrent saves from the same user
can overshoot ``reports_limit`` by up to ``concurrency - 1``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog

from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError
from inforia.store import HostedStore, StoreError

logger = structlog.get_logger(__name__)

STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"
STATUS_LIMIT_REACHED = "limit_reached"
STATUS_EXPIRED = "expired"


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    reports_limit: int
    monthly_price_eur: int


PLANS: Dict[str, Plan] = {
    "free": Plan("free", "Plan Gratuito", 10, 0),
    "profesional": Plan("profesional", "Plan Profesional", 100, 29),
    "clinica": Plan("clinica", "Plan Clínica", 500, 79),
    "enterprise": Plan("enterprise", "Plan Enterprise", 2000, 199),
}

_STATUS_LABELS = {
    STATUS_ACTIVE: "Activo",
    STATUS_CANCELED: "Cancelado",
    STATUS_LIMIT_REACHED: "Límite Alcanzado",
    STATUS_EXPIRED: "Expirado",
}


def format_plan_name(plan_id: str) -> str:
    plan = PLANS.get(plan_id)
    return plan.name if plan else "Plan Desconocido"


def get_plan_limit(plan_id: str) -> int:
    return PLANS.get(plan_id, PLANS["free"]).reports_limit


def get_plan_price(plan_id: str) -> int:
    plan = PLANS.get(plan_id)
    return plan.monthly_price_eur if plan else 0


def format_subscription_status(status: str) -> str:
    return _STATUS_LABELS.get(status, "Desconocido")


def usage_percentage(used: int, limit: int) -> int:
    """Return report usage as a whole percentage capped at 100."""

    if limit == 0:
        return 0
    return min(round(used / limit * 100), 100)


@dataclass(frozen=True)
class Subscription:
    """Read-only snapshot of a subscription row."""

    user_id: str
    plan_id: str
    status: str
    reports_limit: int
    reports_used: int
    current_period_start: Optional[str] = None
    current_period_end: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Subscription":
        return cls(
            id=row.get("id"),
            user_id=str(row.get("user_id") or ""),
            plan_id=str(row.get("plan_id") or ""),
            status=str(row.get("status") or ""),
            reports_limit=int(row.get("reports_limit") or 0),
            reports_used=int(row.get("reports_used") or 0),
            current_period_start=row.get("current_period_start"),
            current_period_end=row.get("current_period_end"),
        )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def reports_remaining(self) -> int:
        return max(self.reports_limit - self.reports_used, 0)

    @property
    def quota_exhausted(self) -> bool:
        return self.reports_used >= self.reports_limit


def needs_renewal(subscription: Subscription) -> bool:
    return (
        subscription.status in (STATUS_LIMIT_REACHED, STATUS_EXPIRED)
        or subscription.quota_exhausted
    )


def check_quota(store: HostedStore, user_id: str) -> Subscription:
    """Return the caller's subscription if another report may be created.

    Raises :class:`PipelineError` with ``subscription_not_found``,
    ``subscription_inactive`` or ``quota_exceeded``.
    """

    try:
        rows = store.select("subscriptions", {"user_id": user_id}, limit=2)
    except StoreError as exc:
        logger.warning("subscription_lookup_failed", user_id=user_id, error=exc.message)
        rows = []
    if len(rows) > 1:
        logger.error("subscription_duplicated", user_id=user_id)
    if len(rows) != 1:
        raise PipelineError(ErrorKind.SUBSCRIPTION_NOT_FOUND)

    subscription = Subscription.from_row(rows[0])
    if not subscription.is_active:
        raise PipelineError(ErrorKind.SUBSCRIPTION_INACTIVE)
    if subscription.quota_exhausted:
        raise PipelineError(
            ErrorKind.QUOTA_EXCEEDED,
            message=(
                f"You have reached your monthly limit of {subscription.reports_limit} "
                "reports. Please upgrade your plan to continue."
            ),
            subscription={
                "plan_id": subscription.plan_id,
                "reports_limit": subscription.reports_limit,
                "reports_used": subscription.reports_used,
                "reports_remaining": 0,
            },
        )
    return subscription


def _rpc_result(store: HostedStore, function: str, user: AuthenticatedUser) -> Dict[str, Any]:
    try:
        data = store.rpc(function, access_token=user.access_token)
    except StoreError as exc:
        logger.error("subscription_rpc_failed", function=function, error=exc.message)
        raise PipelineError(ErrorKind.STORE_UNAVAILABLE, message=exc.message)
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict) or not data.get("success"):
        error = data.get("error") if isinstance(data, dict) else None
        raise PipelineError(
            ErrorKind.SUBSCRIPTION_NOT_FOUND,
            message=error or ErrorKind.SUBSCRIPTION_NOT_FOUND.default_message,
        )
    return data


def get_subscription_status(store: HostedStore, user: AuthenticatedUser) -> Dict[str, Any]:
    """Return the caller's subscription decorated with plan details."""

    data = _rpc_result(store, "get_subscription_status", user)
    raw = data.get("subscription") or {}
    subscription = Subscription.from_row(raw)
    return {
        "success": True,
        "subscription": {
            **raw,
            "reports_remaining": raw.get("reports_remaining", subscription.reports_remaining),
            "plan_name": format_plan_name(subscription.plan_id),
            "plan_price": get_plan_price(subscription.plan_id),
            "status_label": format_subscription_status(subscription.status),
            "usage_percentage": usage_percentage(
                subscription.reports_used, subscription.reports_limit
            ),
            "needs_renewal": needs_renewal(subscription),
        },
    }


def renew_subscription_plan(store: HostedStore, user: AuthenticatedUser) -> Dict[str, Any]:
    """Start a new billing period for the caller (resets ``reports_used``)."""

    data = _rpc_result(store, "renew_subscription_plan", user)
    logger.info("subscription_renewed", user_id=user.id)
    return {
        "success": True,
        "message": data.get("message"),
        "new_period_end": data.get("new_period_end"),
    }


__all__ = [
    "PLANS",
    "Plan",
    "Subscription",
    "check_quota",
    "format_plan_name",
    "format_subscription_status",
    "get_plan_limit",
    "get_plan_price",
    "get_subscription_status",
    "needs_renewal",
    "renew_subscription_plan",
    "usage_percentage",
]
