"""FastAPI dependency injection helpers."""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from vivero.config import SETTINGS, Settings
from vivero.core.context import ZoneContext
from vivero.core.errors import UnauthorizedError
from vivero.core.manual_control import Principal
from vivero.models.enums import AuthMethod
from vivero.services.session_service import SessionService

# ---------------------------------------------------------------------------
# Settings dependency
# ---------------------------------------------------------------------------


def get_settings_dependency() -> Settings:
    return SETTINGS


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# ---------------------------------------------------------------------------
# Zone engine dependency
# ---------------------------------------------------------------------------


_zone_context: ZoneContext | None = None


def set_zone_context(context: ZoneContext | None) -> None:
    """Set the shared zone context (called during app startup)."""
    global _zone_context
    _zone_context = context


def get_zone_context() -> ZoneContext:
    if _zone_context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Zone engine not initialised",
        )
    return _zone_context


ZoneContextDep = Annotated[ZoneContext, Depends(get_zone_context)]


# ---------------------------------------------------------------------------
# Session dependency
# ---------------------------------------------------------------------------


_session_service: SessionService | None = None


def set_session_service(service: SessionService | None) -> None:
    global _session_service
    _session_service = service


def get_session_service() -> SessionService:
    if _session_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session service not initialised",
        )
    return _session_service


SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def _presented_api_key(request: Request) -> str:
    return request.headers.get("x-api-key") or request.query_params.get("api_key") or ""


def _api_key_matches(request: Request, settings: Settings) -> bool:
    presented = _presented_api_key(request)
    if not settings.api_key or not presented:
        return False
    return secrets.compare_digest(presented.encode(), settings.api_key.encode())


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_device_key(request: Request, settings: SettingsDep) -> None:
    """Reject device traffic that lacks the shared API key."""
    if not _api_key_matches(request, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: invalid API key",
        )


async def get_operator_principal(
    request: Request, sessions: SessionServiceDep
) -> Principal | None:
    return await sessions.verify(bearer_token(request))


async def get_control_principal(
    request: Request, sessions: SessionServiceDep, settings: SettingsDep
) -> Principal | None:
    """Operator session first, then the shared API key."""
    principal = await sessions.verify(bearer_token(request))
    if principal is not None:
        return principal
    if _api_key_matches(request, settings):
        return Principal(subject="api-key", method=AuthMethod.api_key)
    return None


OperatorPrincipalDep = Annotated[Principal | None, Depends(get_operator_principal)]
ControlPrincipalDep = Annotated[Principal | None, Depends(get_control_principal)]


async def require_operator(principal: OperatorPrincipalDep) -> Principal:
    if principal is None:
        raise UnauthorizedError("Valid operator session required")
    return principal


RequiredOperatorDep = Annotated[Principal, Depends(require_operator)]


__all__ = [
    "ControlPrincipalDep",
    "OperatorPrincipalDep",
    "RequiredOperatorDep",
    "SessionServiceDep",
    "SettingsDep",
    "ZoneContextDep",
    "bearer_token",
    "get_control_principal",
    "get_operator_principal",
    "get_session_service",
    "get_settings_dependency",
    "get_zone_context",
    "require_device_key",
    "require_operator",
    "set_session_service",
    "set_zone_context",
]
