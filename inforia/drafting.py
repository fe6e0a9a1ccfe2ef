"""AI-assisted drafting of session reports."""

from __future__ import annotations

from typing import Optional

import structlog
from prometheus_client import Counter

from inforia.errors import ErrorKind, PipelineError
from inforia.openai_client import call_openai
from inforia.prompts import build_report_messages

logger = structlog.get_logger(__name__)

REPORT_DRAFTS = Counter(
    "inforia_report_drafts_total",
    "Report drafting requests by outcome",
    ("outcome",),
)


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def draft_report(transcription: Optional[str], session_notes: Optional[str]) -> str:
    """Return a Markdown report drafted from a transcript and/or notes.

    At least one input must carry text; otherwise ``no_input`` is raised
    before the model is contacted.  Model failures surface as
    ``draft_failed`` with the upstream message and are never retried.
    """

    if _blank(transcription) and _blank(session_notes):
        REPORT_DRAFTS.labels(outcome=ErrorKind.NO_INPUT.value).inc()
        raise PipelineError(ErrorKind.NO_INPUT)

    messages = build_report_messages(transcription, session_notes)
    try:
        report = call_openai(messages)
    except RuntimeError as exc:
        REPORT_DRAFTS.labels(outcome=ErrorKind.DRAFT_FAILED.value).inc()
        logger.error("report_draft_failed", error=str(exc))
        raise PipelineError(ErrorKind.DRAFT_FAILED, error=str(exc))

    REPORT_DRAFTS.labels(outcome="success").inc()
    logger.info(
        "report_drafted",
        has_transcription=not _blank(transcription),
        has_notes=not _blank(session_notes),
        length=len(report),
    )
    return report


__all__ = ["draft_report", "REPORT_DRAFTS"]
