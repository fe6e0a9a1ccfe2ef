"""Outbound HTTP helpers enforcing TLS verification and a host allowlist."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse
import os

import requests
from prometheus_client import Counter

from inforia.config import get_settings


EGRESS_FAILURES = Counter(
    "inforia_egress_failures_total",
    "Outbound HTTP calls blocked or failed",
    ("reason",),
)


def _allowed_hosts() -> set[str]:
    settings = get_settings()
    raw = os.getenv("ALLOWED_EGRESS_HOSTS")
    hosts: set[str] = set()
    if raw:
        hosts.update(host.strip().lower() for host in raw.split(",") if host.strip())
    else:
        hosts.update(
            {
                "openrouter.ai",
                "docs.googleapis.com",
                "www.googleapis.com",
                "localhost",
                "127.0.0.1",
            }
        )
    for value in (
        settings.supabase_url,
        settings.llm_base_url,
        settings.google_docs_url,
        settings.google_drive_url,
    ):
        if not value:
            continue
        parsed = urlparse(value)
        if parsed.hostname:
            hosts.add(parsed.hostname.lower())
    return hosts


def _verify_host(url: str) -> None:
    host = (urlparse(url).hostname or "").lower()
    if host not in _allowed_hosts():
        EGRESS_FAILURES.labels(reason="disallowed_host").inc()
        raise RuntimeError(f"Egress to host '{host}' is not permitted")


def secure_request(method: str, url: str, **kwargs: Any) -> requests.Response:
    """Dispatch a HTTP request; non-2xx responses raise ``HTTPError``."""

    _verify_host(url)
    kwargs.setdefault("timeout", get_settings().http_timeout)
    kwargs.setdefault("verify", True)
    try:
        response = requests.request(method=method, url=url, **kwargs)
        response.raise_for_status()
        return response
    except requests.exceptions.SSLError:
        EGRESS_FAILURES.labels(reason="tls_failure").inc()
        raise
    except requests.exceptions.HTTPError:
        EGRESS_FAILURES.labels(reason="http_status").inc()
        raise
    except requests.exceptions.RequestException:
        EGRESS_FAILURES.labels(reason="network_failure").inc()
        raise


def secure_get(url: str, **kwargs: Any) -> requests.Response:
    return secure_request("GET", url, **kwargs)


def secure_post(url: str, **kwargs: Any) -> requests.Response:
    return secure_request("POST", url, **kwargs)


__all__ = ["secure_get", "secure_post", "secure_request", "EGRESS_FAILURES"]
