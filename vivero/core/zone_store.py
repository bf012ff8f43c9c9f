"""Zone state persistence with per-zone serialization."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from vivero.models.enums import ValveState

if TYPE_CHECKING:
    from vivero.integrations.kv_store import KeyValueBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only the coordinator and the manual control gateway may write these.
CONTROL_FIELDS = frozenset({"valve", "manual_override", "reason"})
READING_FIELDS = ("soil_moisture", "temperature", "ambient_humidity", "light_level")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _as_number(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _deep_merge(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(current)
    for key, value in incoming.items():
        existing = merged.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


@dataclass(frozen=True, slots=True)
class ZoneReading:
    """One telemetry sample, stamped by the coordinator at ingest time."""

    zone_id: str
    timestamp: str
    soil_moisture: float | None = None
    temperature: float | None = None
    ambient_humidity: float | None = None
    light_level: float | None = None
    device_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls, zone_id: str, payload: Mapping[str, Any], *, timestamp: datetime
    ) -> ZoneReading:
        data = {k: v for k, v in payload.items() if k not in CONTROL_FIELDS}
        # Device clocks are not trusted.
        data.pop("last_updated", None)
        data.pop("timestamp", None)
        data.pop("zone_id", None)
        numbers = {name: _as_number(data.pop(name, None)) for name in READING_FIELDS}
        device_id = data.pop("device_id", None)
        return cls(
            zone_id=zone_id,
            timestamp=timestamp.isoformat(),
            device_id=str(device_id) if device_id is not None else None,
            extra=data,
            **numbers,
        )

    def to_record(self) -> dict[str, Any]:
        """Fields to merge into the stored state; absent values are omitted."""
        record: dict[str, Any] = dict(self.extra)
        for name in (*READING_FIELDS, "device_id"):
            value = getattr(self, name)
            if value is not None:
                record[name] = value
        record["last_updated"] = self.timestamp
        return record


@dataclass(slots=True)
class ZoneState:
    """Latest known state of a zone: merged telemetry plus valve control."""

    zone_id: str
    soil_moisture: float | None = None
    temperature: float | None = None
    ambient_humidity: float | None = None
    light_level: float | None = None
    device_id: str | None = None
    valve: ValveState = ValveState.off
    manual_override: bool = False
    reason: str | None = None
    last_updated: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, zone_id: str, record: Mapping[str, Any] | None) -> ZoneState:
        if not record:
            return cls(zone_id=zone_id)
        data = dict(record)
        numbers = {name: _as_number(data.pop(name, None)) for name in READING_FIELDS}
        device_id = data.pop("device_id", None)
        try:
            valve = ValveState(data.pop("valve", ValveState.off))
        except ValueError:
            logger.warning("Zone %s has an invalid stored valve value; assuming off", zone_id)
            valve = ValveState.off
        return cls(
            zone_id=zone_id,
            device_id=str(device_id) if device_id is not None else None,
            valve=valve,
            manual_override=data.pop("manual_override", False) is True,
            reason=data.pop("reason", None),
            last_updated=data.pop("last_updated", None),
            extra=data,
            **numbers,
        )

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["valve"] = self.valve.value
        data["extra"] = dict(self.extra)
        return data


def _log_orphan_failure(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Abandoned zone operation failed", exc_info=task.exception())


class ZoneSession:
    """Handle on one zone while its lock is held.

    Obtained from :meth:`ZoneStateStore.session`; every call runs inside the
    same critical section, so a read-modify-write span cannot interleave with
    another operation on the same zone.
    """

    def __init__(self, store: ZoneStateStore, zone_id: str) -> None:
        self._store = store
        self.zone_id = zone_id

    @property
    def control_revision(self) -> int:
        return self._store.control_revision(self.zone_id)

    async def get(self) -> ZoneState:
        return await self._store._read(self.zone_id)

    async def merge(self, partial: Mapping[str, Any]) -> ZoneState:
        return await self._store._merge_unlocked(self.zone_id, partial)

    async def set_valve(
        self, valve: ValveState, reason: str | None, manual_override: bool
    ) -> None:
        await self._store._set_valve_unlocked(self.zone_id, valve, reason, manual_override)


class ZoneStateStore:
    """Latest state per zone on top of a partial-merge key-value backend.

    Same-zone operations are applied in arrival order through a FIFO lock per
    zone; different zones never share a lock.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        self._backend = backend
        self._locks: dict[str, asyncio.Lock] = {}
        self._control_revisions: dict[str, int] = {}
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def _lock_for(self, zone_id: str) -> asyncio.Lock:
        lock = self._locks.get(zone_id)
        if lock is None:
            lock = self._locks[zone_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def session(self, zone_id: str) -> AsyncIterator[ZoneSession]:
        async with self._lock_for(zone_id):
            yield ZoneSession(self, zone_id)

    async def run_exclusive(
        self, zone_id: str, operation: Callable[[ZoneSession], Awaitable[T]]
    ) -> T:
        """Run *operation* inside the zone's critical section until it finishes.

        The span runs in its own task. If the caller is cancelled while waiting,
        the operation still completes (or fails) as a whole and the caller sees
        the cancellation.
        """

        async def _span() -> T:
            async with self.session(zone_id) as zone:
                return await operation(zone)

        task = asyncio.create_task(_span(), name=f"vivero-zone-{zone_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info("Caller left zone %s operation early; finishing it in background", zone_id)
            task.add_done_callback(_log_orphan_failure)
            raise

    async def drain(self) -> None:
        """Wait for zone operations whose callers have gone away."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def control_revision(self, zone_id: str) -> int:
        """Number of valve writes applied to *zone_id* by this process."""
        return self._control_revisions.get(zone_id, 0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get(self, zone_id: str) -> ZoneState:
        return await self._read(zone_id)

    async def list_states(self, zone_ids: Iterable[str]) -> list[ZoneState]:
        return [await self._read(zone_id) for zone_id in zone_ids]

    async def merge(self, zone_id: str, partial: Mapping[str, Any]) -> ZoneState:
        return await self.run_exclusive(zone_id, lambda zone: zone.merge(partial))

    async def set_valve(
        self,
        zone_id: str,
        valve: ValveState,
        reason: str | None,
        manual_override: bool,
    ) -> None:
        await self.run_exclusive(
            zone_id, lambda zone: zone.set_valve(valve, reason, manual_override)
        )

    # ------------------------------------------------------------------
    # Unlocked primitives (callers hold the zone lock)
    # ------------------------------------------------------------------
    async def _read(self, zone_id: str) -> ZoneState:
        return ZoneState.from_record(zone_id, await self._backend.read(zone_id))

    async def _merge_unlocked(self, zone_id: str, partial: Mapping[str, Any]) -> ZoneState:
        dropped = CONTROL_FIELDS.intersection(partial)
        if dropped:
            logger.debug("Ignoring control fields %s for zone %s", sorted(dropped), zone_id)
        changes = {k: v for k, v in partial.items() if k not in CONTROL_FIELDS}
        current = await self._backend.read(zone_id) or {}
        for key, value in list(changes.items()):
            existing = current.get(key)
            if isinstance(existing, Mapping) and isinstance(value, Mapping):
                changes[key] = _deep_merge(existing, value)
        changes.setdefault("last_updated", _utc_now().isoformat())
        await self._backend.update(zone_id, changes)
        return ZoneState.from_record(zone_id, {**current, **changes})

    async def _set_valve_unlocked(
        self,
        zone_id: str,
        valve: ValveState,
        reason: str | None,
        manual_override: bool,
    ) -> None:
        await self._backend.update(
            zone_id,
            {
                "valve": ValveState(valve).value,
                "manual_override": manual_override,
                "reason": reason,
                "last_updated": _utc_now().isoformat(),
            },
        )
        self._control_revisions[zone_id] = self._control_revisions.get(zone_id, 0) + 1
        logger.info(
            "Zone %s valve set to %s (reason=%s, manual_override=%s)",
            zone_id,
            valve,
            reason,
            manual_override,
        )


__all__ = [
    "CONTROL_FIELDS",
    "ZoneReading",
    "ZoneSession",
    "ZoneState",
    "ZoneStateStore",
]
