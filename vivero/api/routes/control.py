"""Manual valve control."""

from __future__ import annotations

from fastapi import APIRouter

from vivero.api.dependencies import ControlPrincipalDep, OperatorPrincipalDep, ZoneContextDep
from vivero.api.routes.zones import state_response
from vivero.models.schemas import ControlRequest, ControlResponse

router = APIRouter()


@router.post("/control", response_model=ControlResponse)
async def manual_control(
    body: ControlRequest,
    context: ZoneContextDep,
    principal: ControlPrincipalDep,
) -> ControlResponse:
    """Set a zone's valve with an operator session or the shared API key."""
    state = await context.gateway.apply(body.zone_id, body.action, principal)
    return ControlResponse(zone_id=state.zone_id, action=state.valve, state=state_response(state))


@router.post("/ui/control", response_model=ControlResponse)
async def ui_manual_control(
    body: ControlRequest,
    context: ZoneContextDep,
    principal: OperatorPrincipalDep,
) -> ControlResponse:
    """Set a zone's valve from the dashboard; operator session only."""
    state = await context.gateway.apply(body.zone_id, body.action, principal)
    return ControlResponse(zone_id=state.zone_id, action=state.valve, state=state_response(state))
