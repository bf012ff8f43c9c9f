"""Threshold-based irrigation valve policy.

The policy is a pure function of the zone config, the incoming reading and the
control fields of the zone's current state. It never performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from vivero.core.zone_store import ZoneReading, ZoneState
from vivero.core.zones import ZoneConfig
from vivero.models.enums import ValveAction, ValveReason, ValveState

# Moisture units above the threshold before an automatic close; keeps the
# valve from flapping while readings sit near the threshold.
HYSTERESIS_MARGIN = 50.0

ADVISORY_SOIL_LOW = "soil moisture low: opening valve automatically"
ADVISORY_SOIL_OK = "soil moisture adequate"
ADVISORY_TEMP_HIGH = "high temperature: check ventilation/shade"
ADVISORY_TEMP_LOW = "low temperature: protect plants if needed"


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    valve_action: ValveAction
    reason: ValveReason | None = None
    advisories: tuple[str, ...] = field(default_factory=tuple)

    @property
    def suggestion_text(self) -> str:
        return " ".join(self.advisories)

    def to_dict(self) -> dict[str, object]:
        return {
            "valve_action": self.valve_action.value,
            "reason": self.reason.value if self.reason else None,
            "advisories": list(self.advisories),
        }


def evaluate(config: ZoneConfig, reading: ZoneReading, current: ZoneState) -> PolicyDecision:
    """Decide the valve action and advisories for one reading.

    A missing moisture value takes the "adequate" branch but can never close
    the valve; a missing temperature produces no temperature advisory.
    """
    advisories: list[str] = []
    action = ValveAction.none
    reason: ValveReason | None = None

    soil = reading.soil_moisture
    if soil is not None and soil <= config.soil_threshold:
        action = ValveAction.on
        reason = ValveReason.auto_soil_low
        advisories.append(ADVISORY_SOIL_LOW)
    else:
        advisories.append(ADVISORY_SOIL_OK)
        if (
            soil is not None
            and current.valve == ValveState.on
            and not current.manual_override
            and soil > config.soil_threshold + HYSTERESIS_MARGIN
        ):
            action = ValveAction.off
            reason = ValveReason.soil_ok

    temp = reading.temperature
    if temp is not None and temp >= config.temp_high:
        advisories.append(ADVISORY_TEMP_HIGH)
    if temp is not None and temp <= config.temp_low:
        advisories.append(ADVISORY_TEMP_LOW)

    return PolicyDecision(valve_action=action, reason=reason, advisories=tuple(advisories))


__all__ = ["HYSTERESIS_MARGIN", "PolicyDecision", "evaluate"]
