"""Zone state and irrigation-decision engine for Vivero."""

from __future__ import annotations

from .context import ZoneContext
from .errors import (
    EvaluationError,
    InvalidRequestError,
    StorageError,
    UnauthorizedError,
    UnknownZoneError,
    ViveroError,
)
from .event_bus import Event, EventBus
from .irrigation_policy import PolicyDecision, evaluate
from .manual_control import ManualControlGateway, Principal
from .update_coordinator import IngestResult, UpdateCoordinator
from .zone_store import ZoneReading, ZoneState, ZoneStateStore
from .zones import ZoneConfig, ZoneConfigTable

__all__ = [
    "EvaluationError",
    "Event",
    "EventBus",
    "IngestResult",
    "InvalidRequestError",
    "ManualControlGateway",
    "PolicyDecision",
    "Principal",
    "StorageError",
    "UnauthorizedError",
    "UnknownZoneError",
    "UpdateCoordinator",
    "ViveroError",
    "ZoneConfig",
    "ZoneConfigTable",
    "ZoneContext",
    "ZoneReading",
    "ZoneState",
    "ZoneStateStore",
    "evaluate",
]
