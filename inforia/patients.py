"""Patient lookups scoped to the owning professional.

Patients are created and edited elsewhere; here they are read-only
projections resolved by id and owner.  A patient that exists but belongs to
another user is reported exactly like a missing one so that ids cannot be
enumerated across accounts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

import structlog

from inforia.errors import ErrorKind, PipelineError, validation_error
from inforia.store import HostedStore, StoreError

logger = structlog.get_logger(__name__)

# Version nibble 1-5, variant 8/9/a/b.
UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Patient:
    id: str
    user_id: str
    full_name: str

    @property
    def display_name(self) -> str:
        return self.full_name.strip()

    @classmethod
    def from_row(cls, row: Mapping[str, Any], user_id: str) -> "Patient":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or user_id),
            full_name=str(row.get("full_name") or ""),
        )


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def validate_patient_id(value: Any, field: str = "patient_id") -> str:
    """Return ``value`` if it is a well-formed UUID, else raise a 400."""

    if not is_valid_uuid(value):
        raise validation_error(f"{field} must be a valid UUID")
    return value


def resolve_patient(store: HostedStore, user_id: str, patient_id: str) -> Patient:
    """Return the patient ``patient_id`` owned by ``user_id``."""

    try:
        row = store.select_one(
            "patients",
            {"id": patient_id, "user_id": user_id},
            columns="id, full_name",
        )
    except StoreError as exc:
        logger.warning("patient_lookup_failed", patient_id=patient_id, error=exc.message)
        row = None
    if not row:
        raise PipelineError(ErrorKind.PATIENT_NOT_FOUND)
    return Patient.from_row(row, user_id)


__all__ = ["Patient", "UUID_RE", "is_valid_uuid", "resolve_patient", "validate_patient_id"]
