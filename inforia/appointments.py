"""Appointment calendar backed by the hosted ``appointments`` table.

Every query is filtered by the calling professional's id; an appointment
belonging to someone else behaves as if it did not exist.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import structlog
from pydantic import BaseModel, field_validator

from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError, validation_error
from inforia.patients import validate_patient_id
from inforia.store import HostedStore, StoreError
from inforia.time_utils import parse_timestamp

logger = structlog.get_logger(__name__)

TABLE = "appointments"

AppointmentStatus = Literal["scheduled", "completed", "cancelled", "no_show"]
AppointmentType = Literal["session", "consultation", "follow_up", "initial_assessment"]


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


class AppointmentCreate(BaseModel):
    patient_id: str
    title: str
    start_time: str
    end_time: str
    description: Optional[str] = None
    appointment_type: AppointmentType = "session"
    location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("title", "description", "location", "notes")
    @classmethod
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)


class AppointmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    appointment_type: Optional[AppointmentType] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


def _require_time(value: Optional[str], label: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise validation_error(f"{label} must be a valid ISO 8601 timestamp")
    return parsed


def _check_order(start: datetime, end: datetime) -> None:
    if end <= start:
        raise validation_error("end_time must be after start_time")


def _store_failure(action: str, exc: StoreError) -> PipelineError:
    logger.error("appointment_store_failed", action=action, error=exc.message)
    return PipelineError(ErrorKind.STORE_UNAVAILABLE, message=exc.message)


def _not_found() -> PipelineError:
    return PipelineError(ErrorKind.NOT_FOUND, "Appointment not found")


def list_appointments(
    store: HostedStore,
    user: AuthenticatedUser,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Return the caller's appointments ordered by start time.

    When ``start``/``end`` are given only appointments fully inside the
    range are returned.
    """

    filters: Dict[str, Any] = {"user_id": user.id}
    if start:
        filters["start_time"] = ("gte", _require_time(start, "start").isoformat())
    if end:
        filters["end_time"] = ("lte", _require_time(end, "end").isoformat())
    try:
        return store.select(TABLE, filters, order=[("start_time", True)])
    except StoreError as exc:
        raise _store_failure("list", exc)


def _check_id(appointment_id: str) -> None:
    # Non-UUID literals are rejected by the store as a server error.
    validate_patient_id(appointment_id, "appointment_id")


def get_appointment(store: HostedStore, user: AuthenticatedUser, appointment_id: str) -> Dict[str, Any]:
    _check_id(appointment_id)
    try:
        row = store.select_one(TABLE, {"id": appointment_id, "user_id": user.id})
    except StoreError as exc:
        raise _store_failure("get", exc)
    if not row:
        raise _not_found()
    return row


def create_appointment(
    store: HostedStore, user: AuthenticatedUser, data: AppointmentCreate
) -> Dict[str, Any]:
    validate_patient_id(data.patient_id)
    if not data.title:
        raise validation_error("title is required")
    start = _require_time(data.start_time, "start_time")
    end = _require_time(data.end_time, "end_time")
    _check_order(start, end)

    row = {
        "user_id": user.id,
        "patient_id": data.patient_id,
        "title": data.title,
        "description": data.description,
        "start_time": data.start_time,
        "end_time": data.end_time,
        "appointment_type": data.appointment_type,
        "location": data.location,
        "notes": data.notes,
        "status": "scheduled",
    }
    try:
        created = store.insert(TABLE, row)
    except StoreError as exc:
        raise _store_failure("create", exc)
    logger.info("appointment_created", appointment_id=created.get("id"), user_id=user.id)
    return created


def update_appointment(
    store: HostedStore,
    user: AuthenticatedUser,
    appointment_id: str,
    data: AppointmentUpdate,
) -> Dict[str, Any]:
    _check_id(appointment_id)
    values = {k: _strip(v) for k, v in data.model_dump(exclude_unset=True).items()}
    if not values:
        raise validation_error("No fields to update")
    if "title" in values and not values["title"]:
        raise validation_error("title cannot be empty")
    times = {
        field: _require_time(values[field], field)
        for field in ("start_time", "end_time")
        if field in values
    }

    current = get_appointment(store, user, appointment_id)
    if times:
        # A single moved bound is checked against the stored other one.
        start = times.get("start_time") or parse_timestamp(current.get("start_time"))
        end = times.get("end_time") or parse_timestamp(current.get("end_time"))
        if start and end:
            _check_order(start, end)
    try:
        rows = store.update(TABLE, values, {"id": appointment_id, "user_id": user.id})
    except StoreError as exc:
        raise _store_failure("update", exc)
    if not rows:
        raise _not_found()
    return rows[0]


def update_appointment_status(
    store: HostedStore,
    user: AuthenticatedUser,
    appointment_id: str,
    status: AppointmentStatus,
) -> Dict[str, Any]:
    return update_appointment(store, user, appointment_id, AppointmentUpdate(status=status))


def delete_appointment(store: HostedStore, user: AuthenticatedUser, appointment_id: str) -> None:
    _check_id(appointment_id)
    try:
        store.delete(TABLE, {"id": appointment_id, "user_id": user.id})
    except StoreError as exc:
        raise _store_failure("delete", exc)
    logger.info("appointment_deleted", appointment_id=appointment_id, user_id=user.id)


__all__ = [
    "AppointmentCreate",
    "AppointmentStatusUpdate",
    "AppointmentUpdate",
    "create_appointment",
    "delete_appointment",
    "get_appointment",
    "list_appointments",
    "update_appointment",
    "update_appointment_status",
]
