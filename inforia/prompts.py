"""
Prompt templates for the report drafting assistant.

The system instruction and the structure of the user message are fixed: the
session transcript comes first, then the therapist's own notes, separated by
a horizontal rule.  The model is asked for a Markdown report and its answer is
returned to the caller untouched.
"""

from typing import Dict, List, Optional


REPORT_SYSTEM_PROMPT = (
    "Eres un asistente experto en la redacción de informes psicológicos para el "
    "software iNFORiA. Tu tarea es generar un informe claro, estructurado y "
    "profesional en formato Markdown, basándote en la transcripción y las notas "
    "proporcionadas."
)

TRANSCRIPT_HEADING = "Transcripción de la sesión:"
NOTES_HEADING = "Notas adicionales del terapeuta:"


def build_report_prompt(transcription: Optional[str], session_notes: Optional[str]) -> str:
    """Return the user message body combining transcript and notes."""

    return (
        f"{TRANSCRIPT_HEADING}\n"
        f"{(transcription or '').strip()}\n"
        "\n---\n\n"
        f"{NOTES_HEADING}\n"
        f"{(session_notes or '').strip()}\n"
    )


def build_report_messages(
    transcription: Optional[str], session_notes: Optional[str]
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": REPORT_SYSTEM_PROMPT},
        {"role": "user", "content": build_report_prompt(transcription, session_notes)},
    ]
