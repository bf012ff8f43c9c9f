"""Operator login and session endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from vivero.api.dependencies import RequiredOperatorDep, SessionServiceDep, bearer_token
from vivero.models.schemas import LoginRequest, LoginResponse, PrincipalResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, sessions: SessionServiceDep) -> LoginResponse:
    session = await sessions.login(body.email, body.password)
    return LoginResponse(token=session.token, expires_at=session.expires_at)


@router.get("/me", response_model=PrincipalResponse)
async def whoami(principal: RequiredOperatorDep) -> PrincipalResponse:
    return PrincipalResponse(
        subject=principal.subject,
        method=principal.method,
        expires_at=principal.expires_at,
    )


@router.post("/logout")
async def logout(
    request: Request, principal: RequiredOperatorDep, sessions: SessionServiceDep
) -> dict[str, bool]:
    token = bearer_token(request)
    removed = await sessions.logout(token) if token else False
    logger.info("Operator %s logged out", principal.subject)
    return {"ok": removed}
