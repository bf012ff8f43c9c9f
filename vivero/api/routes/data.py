"""Device telemetry ingress."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from vivero.api.dependencies import ZoneContextDep, require_device_key
from vivero.models.schemas import IngestResponse, ZoneReadingIn

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/data",
    response_model=IngestResponse,
    dependencies=[Depends(require_device_key)],
)
async def ingest_reading(reading: ZoneReadingIn, context: ZoneContextDep) -> IngestResponse:
    """Accept one reading from a field device and run the irrigation policy."""
    result = await context.coordinator.ingest(reading.zone_id or "", reading.to_payload())
    return IngestResponse(
        zone_id=result.zone_id,
        valve_action=result.valve_action,
        reason=result.reason.value if result.reason else None,
        advisories=list(result.advisories),
        suggestion_text=result.suggestion_text,
    )
