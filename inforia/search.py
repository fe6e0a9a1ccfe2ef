"""Universal search across patients, reports and appointments."""

from __future__ import annotations

from typing import Any, Dict, List

import structlog

from inforia.auth import AuthenticatedUser
from inforia.errors import ErrorKind, PipelineError, validation_error
from inforia.store import HostedStore, StoreError

logger = structlog.get_logger(__name__)

DEFAULT_MIN_LENGTH = 2
DEFAULT_MAX_RESULTS = 20

RESULT_TYPES = ("patient", "report", "appointment")

SEARCH_SUGGESTIONS = (
    "María García",
    "Sesión de seguimiento",
    "Evaluación inicial",
    "Informe de sesión",
    "Terapia cognitiva",
    "Mindfulness",
    "EMDR",
    "Ansiedad",
    "Depresión",
)


def universal_search(
    store: HostedStore,
    user: AuthenticatedUser,
    term: str,
    *,
    min_length: int = DEFAULT_MIN_LENGTH,
    max_results: int = DEFAULT_MAX_RESULTS,
    advanced: bool = False,
) -> List[Dict[str, Any]]:
    """Search the caller's records; short terms return ``[]`` without a call."""

    term = (term or "").strip()
    if len(term) < min_length:
        return []

    function = "search_all_advanced" if advanced else "search_all"
    try:
        results = store.rpc(function, {"search_term": term}, access_token=user.access_token)
    except StoreError as exc:
        logger.error("search_failed", function=function, error=exc.message)
        raise PipelineError(
            ErrorKind.STORE_UNAVAILABLE,
            message="No se pudo realizar la búsqueda. Inténtelo de nuevo.",
        )
    if not isinstance(results, list):
        return []
    return results[:max_results]


def validate_result_type(result_type: str) -> str:
    if result_type not in RESULT_TYPES:
        raise validation_error(f"type must be one of: {', '.join(RESULT_TYPES)}")
    return result_type


def filter_results_by_type(results: List[Dict[str, Any]], result_type: str) -> List[Dict[str, Any]]:
    validate_result_type(result_type)
    return [r for r in results if r.get("type") == result_type]


def group_results_by_type(results: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group results under their ``type`` keeping the original order."""

    groups: Dict[str, List[Dict[str, Any]]] = {}
    for result in results:
        groups.setdefault(result.get("type") or "", []).append(result)
    return groups


__all__ = [
    "RESULT_TYPES",
    "SEARCH_SUGGESTIONS",
    "filter_results_by_type",
    "group_results_by_type",
    "universal_search",
    "validate_result_type",
]
