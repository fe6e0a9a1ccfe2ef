"""Runtime configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

# Values from a .env file never override the real environment.
load_dotenv()


APP_NAME = "iNFORiA"

DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "https://inforia.app")


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for the API process."""

    supabase_url: str
    supabase_service_key: str
    supabase_jwt_secret: Optional[str]
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_model: str
    app_url: str
    google_docs_url: str
    google_drive_url: str
    http_timeout: int
    cors_origins: Tuple[str, ...]
    log_level: str = "INFO"


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the active settings derived from the environment."""

    return Settings(
        supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET") or None,
        llm_api_key=os.getenv("OPENROUTER_API_KEY") or None,
        llm_base_url=os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
        llm_model=os.getenv("LLM_MODEL", "openai/gpt-4o-mini"),
        app_url=os.getenv("APP_URL", "https://inforia.app"),
        google_docs_url=os.getenv("GOOGLE_DOCS_URL", "https://docs.googleapis.com/v1").rstrip("/"),
        google_drive_url=os.getenv(
            "GOOGLE_DRIVE_URL", "https://www.googleapis.com/drive/v3"
        ).rstrip("/"),
        http_timeout=_get_int_env("HTTP_TIMEOUT", 10),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")) or DEFAULT_CORS_ORIGINS,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


__all__ = ["APP_NAME", "Settings", "get_settings"]
