"""Caller identity for authenticated endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import jwt
import structlog

from inforia.config import get_settings
from inforia.errors import ErrorKind, PipelineError
from inforia.store import HostedStore, StoreError

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    access_token: str
    email: Optional[str] = None
    providers: Tuple[str, ...] = field(default_factory=tuple)

    def has_provider(self, name: str) -> bool:
        return name in self.providers


def _providers_from_metadata(app_metadata: Any) -> Tuple[str, ...]:
    if not isinstance(app_metadata, Mapping):
        return ()
    providers = app_metadata.get("providers")
    if isinstance(providers, (list, tuple)):
        return tuple(str(p) for p in providers if p)
    single = app_metadata.get("provider")
    return (str(single),) if single else ()


def _from_claims(token: str, secret: str) -> AuthenticatedUser:
    try:
        claims: Dict[str, Any] = jwt.decode(
            token, secret, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE
        )
    except jwt.PyJWTError:
        raise PipelineError(ErrorKind.AUTH_INVALID)
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise PipelineError(ErrorKind.AUTH_INVALID)
    return AuthenticatedUser(
        id=user_id,
        access_token=token,
        email=claims.get("email"),
        providers=_providers_from_metadata(claims.get("app_metadata")),
    )


def _from_auth_api(token: str, store: HostedStore) -> AuthenticatedUser:
    try:
        data = store.get_user(token)
    except StoreError as exc:
        logger.info("auth_rejected", status=exc.status)
        raise PipelineError(ErrorKind.AUTH_INVALID)
    return AuthenticatedUser(
        id=str(data["id"]),
        access_token=token,
        email=data.get("email"),
        providers=_providers_from_metadata(data.get("app_metadata")),
    )


def require_token(token: Optional[str]) -> str:
    """Return ``token`` or fail with ``auth_missing`` without any network call."""

    if not token or not token.strip():
        raise PipelineError(ErrorKind.AUTH_MISSING)
    return token.strip()


def authenticate(token: Optional[str], store: HostedStore) -> AuthenticatedUser:
    """Verify ``token`` and return the calling user.

    Tokens are checked locally when ``SUPABASE_JWT_SECRET`` is configured and
    by the hosted auth API otherwise.
    """

    token = require_token(token)
    secret = get_settings().supabase_jwt_secret
    if secret:
        return _from_claims(token, secret)
    return _from_auth_api(token, store)


__all__ = ["AuthenticatedUser", "authenticate", "require_token"]
