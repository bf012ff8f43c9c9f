"""Domain enums for Vivero zone state."""

from enum import StrEnum


class ValveState(StrEnum):
    on = "on"
    off = "off"


class ValveAction(StrEnum):
    on = "on"
    off = "off"
    none = "none"


class ValveReason(StrEnum):
    auto_soil_low = "auto_soil_low"
    soil_ok = "soil_ok"


class EventTopic(StrEnum):
    sensor_update = "sensor-update"
    control_update = "control-update"


class AuthMethod(StrEnum):
    session = "session"
    api_key = "api_key"
