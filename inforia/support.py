"""Help center content: FAQs and video tutorials.

Both tables hold public, read-only content.  Only active rows are served,
ordered by category and then by their explicit ``order_index``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import structlog

from inforia.errors import ErrorKind, PipelineError
from inforia.patients import is_valid_uuid
from inforia.store import HostedStore, StoreError

logger = structlog.get_logger(__name__)

_ORDER = [("category", True), ("order_index", True)]

YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)


def _select(store: HostedStore, table: str, **kwargs: Any) -> List[Dict[str, Any]]:
    try:
        return store.select(table, **kwargs)
    except StoreError as exc:
        logger.error("help_content_failed", table=table, error=exc.message)
        raise PipelineError(
            ErrorKind.STORE_UNAVAILABLE,
            message="No se pudo cargar el contenido de ayuda. Inténtelo de nuevo.",
        )


def group_by_category(rows: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    """Group ``rows`` by category keeping the first-seen category order."""

    groups: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(row.get("category") or "", []).append(row)
    return [{"category": category, key: items} for category, items in groups.items()]


def _unique_categories(rows: List[Dict[str, Any]]) -> List[str]:
    seen: Dict[str, None] = {}
    for row in rows:
        seen.setdefault(row.get("category") or "", None)
    return list(seen)


def _search_clause(columns: List[str], term: str) -> List[str]:
    # PostgREST wildcard is "*"; commas and parentheses would break the or= list.
    cleaned = re.sub(r"[,()*]", " ", term or "").strip()
    if not cleaned:
        return []
    return [f"{column}.ilike.*{cleaned}*" for column in columns]


# -- FAQs -------------------------------------------------------------------

def get_faqs(store: HostedStore) -> List[Dict[str, Any]]:
    rows = _select(store, "faqs", filters={"is_active": True}, order=_ORDER)
    return group_by_category(rows, "faqs")


def get_faqs_by_category(store: HostedStore, category: str) -> List[Dict[str, Any]]:
    return _select(
        store,
        "faqs",
        filters={"category": category, "is_active": True},
        order=[("order_index", True)],
    )


def search_faqs(store: HostedStore, term: str) -> List[Dict[str, Any]]:
    clause = _search_clause(["question", "answer"], term)
    if not clause:
        return []
    return _select(
        store,
        "faqs",
        filters={"is_active": True},
        or_=clause,
        order=_ORDER,
    )


def get_faq_categories(store: HostedStore) -> List[str]:
    rows = _select(
        store, "faqs", filters={"is_active": True}, columns="category", order=[("category", True)]
    )
    return _unique_categories(rows)


# -- Tutorials --------------------------------------------------------------

def get_tutorials(store: HostedStore) -> List[Dict[str, Any]]:
    rows = _select(store, "tutorials", filters={"is_active": True}, order=_ORDER)
    return group_by_category(rows, "tutorials")


def get_tutorials_by_category(store: HostedStore, category: str) -> List[Dict[str, Any]]:
    return _select(
        store,
        "tutorials",
        filters={"category": category, "is_active": True},
        order=[("order_index", True)],
    )


def search_tutorials(store: HostedStore, term: str) -> List[Dict[str, Any]]:
    clause = _search_clause(["title", "description"], term)
    if not clause:
        return []
    return _select(
        store,
        "tutorials",
        filters={"is_active": True},
        or_=clause,
        order=_ORDER,
    )


def get_tutorial_by_id(store: HostedStore, tutorial_id: str) -> Dict[str, Any]:
    if not is_valid_uuid(tutorial_id):
        raise PipelineError(ErrorKind.NOT_FOUND, "Tutorial no encontrado.")
    rows = _select(
        store, "tutorials", filters={"id": tutorial_id, "is_active": True}, limit=1
    )
    if not rows:
        raise PipelineError(ErrorKind.NOT_FOUND, "Tutorial no encontrado.")
    return rows[0]


def get_tutorial_categories(store: HostedStore) -> List[str]:
    rows = _select(
        store,
        "tutorials",
        filters={"is_active": True},
        columns="category",
        order=[("category", True)],
    )
    return _unique_categories(rows)


# -- Presentation helpers ---------------------------------------------------

def format_duration(minutes: Optional[int]) -> str:
    """Render a tutorial length, e.g. ``"5 min"``, ``"2h"`` or ``"1h 30 min"``."""

    if not minutes:
        return "Duración no especificada"
    if minutes < 60:
        return f"{minutes} min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining} min"


def extract_youtube_video_id(url: str) -> Optional[str]:
    match = YOUTUBE_ID_RE.search(url or "")
    return match.group(1) if match else None


def convert_to_embed_url(url: str) -> str:
    video_id = extract_youtube_video_id(url)
    if video_id:
        return f"https://www.youtube.com/embed/{video_id}"
    return url


def decorate_tutorial(tutorial: Dict[str, Any]) -> Dict[str, Any]:
    """Add ``embed_url`` and ``duration_label`` for the player UI."""

    return {
        **tutorial,
        "embed_url": convert_to_embed_url(tutorial.get("video_url") or ""),
        "duration_label": format_duration(tutorial.get("duration_minutes")),
    }


__all__ = [
    "convert_to_embed_url",
    "decorate_tutorial",
    "extract_youtube_video_id",
    "format_duration",
    "get_faq_categories",
    "get_faqs",
    "get_faqs_by_category",
    "get_tutorial_by_id",
    "get_tutorial_categories",
    "get_tutorials",
    "get_tutorials_by_category",
    "group_by_category",
    "search_faqs",
    "search_tutorials",
]
