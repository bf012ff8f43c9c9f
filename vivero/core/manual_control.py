"""Operator-driven valve control that bypasses the irrigation policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from vivero.core.errors import InvalidRequestError, UnauthorizedError
from vivero.core.event_bus import EventBus
from vivero.core.zone_store import ZoneSession, ZoneState, ZoneStateStore
from vivero.core.zones import ZoneConfigTable
from vivero.models.enums import AuthMethod, EventTopic, ValveState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Principal:
    """Opaque authenticated identity handed in by the auth layer."""

    subject: str
    method: AuthMethod
    expires_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return (now or datetime.now(UTC)) < self.expires_at


class ManualControlGateway:
    def __init__(self, *, zones: ZoneConfigTable, store: ZoneStateStore, bus: EventBus) -> None:
        self._zones = zones
        self._store = store
        self._bus = bus

    async def apply(
        self, zone_id: str | None, action: str | None, principal: Principal | None
    ) -> ZoneState:
        """Set the valve of *zone_id* and mark the zone as manually overridden."""
        if principal is None or not principal.is_active():
            raise UnauthorizedError("Manual control requires an authenticated operator")
        if not zone_id or zone_id not in self._zones:
            raise InvalidRequestError(f"Invalid or missing zone: {zone_id!r}")
        if action not in (ValveState.on.value, ValveState.off.value):
            raise InvalidRequestError(f"Invalid valve action: {action!r}")
        valve = ValveState(action)

        async def _apply(zone: ZoneSession) -> ZoneState:
            await zone.set_valve(valve, None, manual_override=True)
            state = await zone.get()
            await self._bus.publish(
                EventTopic.control_update, {"zone_id": zone_id, "action": valve.value}
            )
            return state

        state = await self._store.run_exclusive(zone_id, _apply)

        logger.info("Manual valve %s for zone %s by %s", valve, zone_id, principal.subject)
        return state


__all__ = ["ManualControlGateway", "Principal"]
