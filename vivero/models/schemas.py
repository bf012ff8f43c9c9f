"""Pydantic schemas for the Vivero HTTP surface."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .enums import AuthMethod, ValveAction, ValveState


class ZoneReadingIn(BaseModel):
    """Reading posted by a field device.

    Field names follow the Python API, but the legacy firmware names
    (``section``, ``humedad_suelo``, ``temp``, ...) are accepted as well.
    Unknown keys are kept and stored alongside the reading.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    zone_id: str | None = Field(
        default=None, validation_alias=AliasChoices("zone_id", "section")
    )
    soil_moisture: float | None = Field(
        default=None, validation_alias=AliasChoices("soil_moisture", "humedad_suelo")
    )
    temperature: float | None = Field(
        default=None, validation_alias=AliasChoices("temperature", "temp")
    )
    ambient_humidity: float | None = Field(
        default=None, validation_alias=AliasChoices("ambient_humidity", "humedad_amb")
    )
    light_level: float | None = Field(
        default=None, validation_alias=AliasChoices("light_level", "luminosidad")
    )
    device_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return the reading fields that were actually sent, extras included."""
        return self.model_dump(exclude={"zone_id"}, exclude_none=True)


class ControlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    zone_id: str | None = Field(default=None, validation_alias=AliasChoices("zone_id", "section"))
    action: str | None = None


class ZoneStateResponse(BaseModel):
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
    extra: dict[str, Any] = Field(default_factory=dict)


class IngestResponse(BaseModel):
    ok: bool = True
    zone_id: str
    valve_action: ValveAction
    reason: str | None = None
    advisories: list[str] = Field(default_factory=list)
    suggestion_text: str = ""


class ControlResponse(BaseModel):
    ok: bool = True
    zone_id: str
    action: ValveState
    state: ZoneStateResponse


class ValveResponse(BaseModel):
    ok: bool = True
    zone_id: str
    valve: ValveState
    last_updated: str | None = None
    data: ZoneStateResponse


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    ok: bool = True
    token: str
    expires_at: datetime


class PrincipalResponse(BaseModel):
    ok: bool = True
    subject: str
    method: AuthMethod
    expires_at: datetime | None = None
