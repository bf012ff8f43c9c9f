"""Explicit wiring of the zone engine, built once at startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from vivero.core.event_bus import EventBus
from vivero.core.manual_control import ManualControlGateway
from vivero.core.update_coordinator import UpdateCoordinator
from vivero.core.zone_store import ZoneState, ZoneStateStore
from vivero.core.zones import ZoneConfigTable

if TYPE_CHECKING:
    from vivero.integrations.kv_store import KeyValueBackend


@dataclass(frozen=True, slots=True)
class ZoneContext:
    zones: ZoneConfigTable
    store: ZoneStateStore
    bus: EventBus
    coordinator: UpdateCoordinator
    gateway: ManualControlGateway

    @classmethod
    def build(
        cls,
        zones: ZoneConfigTable,
        backend: KeyValueBackend,
        *,
        bus: EventBus | None = None,
    ) -> ZoneContext:
        store = ZoneStateStore(backend)
        bus = bus or EventBus()
        return cls(
            zones=zones,
            store=store,
            bus=bus,
            coordinator=UpdateCoordinator(zones=zones, store=store, bus=bus),
            gateway=ManualControlGateway(zones=zones, store=store, bus=bus),
        )

    async def get(self, zone_id: str) -> ZoneState:
        """Read-only state query for dashboards."""
        self.zones.require(zone_id)
        return await self.store.get(zone_id)

    async def list_states(self) -> list[ZoneState]:
        return await self.store.list_states(self.zones)

    async def close(self) -> None:
        await self.store.drain()
        await self.coordinator.drain()


__all__ = ["ZoneContext"]
