"""Per-reading orchestration: persist, evaluate, actuate, publish."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from vivero.core.errors import EvaluationError, StorageError
from vivero.core.event_bus import EventBus
from vivero.core.irrigation_policy import PolicyDecision, evaluate
from vivero.core.zone_store import ZoneReading, ZoneSession, ZoneState, ZoneStateStore
from vivero.core.zones import ZoneConfig, ZoneConfigTable
from vivero.models.enums import EventTopic, ValveAction, ValveReason, ValveState

logger = logging.getLogger(__name__)

PolicyFn = Callable[[ZoneConfig, ZoneReading, ZoneState], PolicyDecision]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class IngestResult:
    zone_id: str
    valve_action: ValveAction
    reason: ValveReason | None
    advisories: tuple[str, ...]

    @property
    def suggestion_text(self) -> str:
        return " ".join(self.advisories)


class UpdateCoordinator:
    """Apply device readings to zone state one zone at a time.

    The merge, the policy decision, the primary valve write and the publish for
    a reading all run inside the zone's critical section, and once started they
    finish even if the caller goes away. An automatic close is the exception: it
    is a best-effort background write (see :meth:`_close_if_unchanged`).
    """

    def __init__(
        self,
        *,
        zones: ZoneConfigTable,
        store: ZoneStateStore,
        bus: EventBus,
        policy: PolicyFn = evaluate,
    ) -> None:
        self._zones = zones
        self._store = store
        self._bus = bus
        self._policy = policy
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._pending)

    async def ingest(self, zone_id: str, payload: Mapping[str, Any]) -> IngestResult:
        config = self._zones.require(zone_id)
        reading = ZoneReading.from_payload(zone_id, payload, timestamp=_utc_now())
        record = reading.to_record()

        async def _apply(zone: ZoneSession) -> PolicyDecision:
            # Telemetry is persisted before the decision so it survives a policy failure.
            state = await zone.merge(record)
            try:
                decision = self._policy(config, reading, state)
            except Exception as exc:
                logger.exception("Irrigation policy failed for zone %s", zone_id)
                raise EvaluationError(f"Policy evaluation failed for zone {zone_id!r}") from exc

            if decision.valve_action == ValveAction.on:
                await zone.set_valve(ValveState.on, decision.reason, manual_override=False)
            elif decision.valve_action == ValveAction.off:
                self._schedule_close(zone_id, zone.control_revision)

            await self._bus.publish(
                EventTopic.sensor_update,
                {"zone_id": zone_id, "payload": record, "decision": decision.to_dict()},
            )
            return decision

        decision = await self._store.run_exclusive(zone_id, _apply)

        logger.debug(
            "Ingested reading for zone %s: soil=%s action=%s",
            zone_id,
            reading.soil_moisture,
            decision.valve_action,
        )
        return IngestResult(
            zone_id=zone_id,
            valve_action=decision.valve_action,
            reason=decision.reason,
            advisories=decision.advisories,
        )

    async def drain(self) -> None:
        """Wait for outstanding auto-close writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Best-effort auto-close
    # ------------------------------------------------------------------
    def _schedule_close(self, zone_id: str, revision: int) -> None:
        task = asyncio.create_task(
            self._close_if_unchanged(zone_id, revision), name=f"vivero-auto-close-{zone_id}"
        )
        self._pending.add(task)
        task.add_done_callback(self._on_close_done)

    def _on_close_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Auto-close task crashed", exc_info=task.exception())

    async def _close_if_unchanged(self, zone_id: str, revision: int) -> None:
        """Close the valve unless a newer valve write reached the zone first.

        Fire-and-forget: storage failures are logged and dropped, leaving the
        valve open until the next reading decides again.
        """
        try:
            async with self._store.session(zone_id) as zone:
                if zone.control_revision != revision:
                    logger.debug("Skipping auto-close for zone %s: valve changed", zone_id)
                    return
                state = await zone.get()
                if state.valve != ValveState.on or state.manual_override:
                    return
                await zone.set_valve(ValveState.off, ValveReason.soil_ok, manual_override=False)
        except StorageError:
            logger.warning(
                "Auto-close write failed for zone %s; valve stays open until next reading",
                zone_id,
                exc_info=True,
            )


__all__ = ["IngestResult", "UpdateCoordinator"]
