"""Read-only zone state queries for dashboards."""

from __future__ import annotations

from fastapi import APIRouter

from vivero.api.dependencies import ZoneContextDep
from vivero.core.zone_store import ZoneState
from vivero.models.schemas import ValveResponse, ZoneStateResponse

router = APIRouter()


def state_response(state: ZoneState) -> ZoneStateResponse:
    return ZoneStateResponse(**state.to_dict())


@router.get("/zones", response_model=list[ZoneStateResponse])
async def list_zones(context: ZoneContextDep) -> list[ZoneStateResponse]:
    return [state_response(state) for state in await context.list_states()]


@router.get("/zones/{zone_id}", response_model=ZoneStateResponse)
async def get_zone(zone_id: str, context: ZoneContextDep) -> ZoneStateResponse:
    return state_response(await context.get(zone_id))


@router.get("/valve/{zone_id}", response_model=ValveResponse)
async def get_valve(zone_id: str, context: ZoneContextDep) -> ValveResponse:
    """Current valve position of a zone, plus its full state."""
    state = await context.get(zone_id)
    return ValveResponse(
        zone_id=zone_id,
        valve=state.valve,
        last_updated=state.last_updated,
        data=state_response(state),
    )
