"""
Simple wrapper for an OpenAI-compatible Chat Completion API.

Behaviour hierarchy:
1. If USE_OFFLINE_MODEL is set, return a deterministic placeholder without any
   external calls.
2. Otherwise call the configured endpoint (OpenRouter by default) through the
   ``openai`` SDK.

Any exception during the remote call is converted into a RuntimeError so
callers have a consistent error path.
"""

from typing import Dict, List, Optional
import hashlib
import os

from inforia.config import APP_NAME, get_settings


def _use_offline() -> bool:
    return os.getenv("USE_OFFLINE_MODEL", "").lower() in {"1", "true", "yes"}


def _deterministic_placeholder(messages: List[Dict[str, str]]) -> str:
    """Return a deterministic placeholder string based on the message content."""
    joined = "\n".join(f"{m.get('role')}:{m.get('content','')}" for m in messages)
    h = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]
    return f"Offline response ({h})"


def call_openai(
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> str:
    """Chat completion returning the first choice's text verbatim.

    Args:
        messages: OpenAI-style message dicts.
        model: Model name; defaults to ``LLM_MODEL``.
        temperature: Sampling temperature; provider default when ``None``.
    Returns:
        Assistant response content string.
    Raises:
        RuntimeError on failure (missing key, network or SDK issues).
    """
    if _use_offline():
        return _deterministic_placeholder(messages)

    settings = get_settings()
    if not settings.llm_api_key:
        raise RuntimeError("LLM API key not configured.")
    try:
        from openai import OpenAI  # type: ignore

        client = OpenAI(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            max_retries=0,
        )
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        completion = client.chat.completions.create(
            model=model or settings.llm_model,
            messages=messages,
            extra_headers={"HTTP-Referer": settings.app_url, "X-Title": APP_NAME},
            **kwargs,
        )
        content = completion.choices[0].message.content
    except Exception as exc:  # network errors / SDK issues
        raise RuntimeError(f"Error calling LLM: {exc}") from exc
    if content is None:
        raise RuntimeError("LLM returned an empty completion")
    return content
