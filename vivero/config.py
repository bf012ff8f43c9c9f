"""Application configuration powered by Pydantic settings."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Final, Literal

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ZoneSettings(BaseModel):
    """Thresholds for a single irrigation zone as declared in configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    soil_threshold: float
    temp_high: float
    temp_low: float

    @model_validator(mode="after")
    def _check_temperature_bounds(self) -> ZoneSettings:
        if self.temp_low >= self.temp_high:
            raise ValueError("temp_low must be lower than temp_high")
        return self


def _default_zones() -> dict[str, ZoneSettings]:
    return {
        "sombra": ZoneSettings(soil_threshold=400, temp_high=32, temp_low=10),
        "semisombra": ZoneSettings(soil_threshold=350, temp_high=34, temp_low=10),
        "sol": ZoneSettings(soil_threshold=300, temp_high=36, temp_low=10),
    }


class Settings(BaseSettings):
    """Centralized configuration object with environment fallbacks."""

    model_config = SettingsConfigDict(env_prefix="VIVERO_", env_file=".env", extra="ignore")

    # App
    app_name: str = "Vivero"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    debug: bool = False
    log_level: Literal["critical", "error", "warning", "info", "debug"] = Field(default="info")

    # Redis (zone state, sessions and cross-instance fan-out)
    redis_url: AnyUrl | str = Field(default="redis://localhost:6379/0")
    store_backend: Literal["redis", "memory"] = Field(default="redis")
    store_namespace: str = Field(default="vivero:secciones")

    # Device ingress shared secret (empty = device ingress refused)
    api_key: str = Field(default="")

    # Operator login
    operator_email: str = Field(default="")
    operator_password: str = Field(default="")
    session_ttl_minutes: int = Field(default=720, ge=1)

    # HTTP
    rate_limit_per_minute: int = Field(default=120, ge=1)
    event_handler_timeout_seconds: float = Field(default=5.0, gt=0)
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # Zones (JSON via VIVERO_ZONES)
    zones: dict[str, ZoneSettings] = Field(default_factory=_default_zones)

    @field_validator("zones")
    @classmethod
    def _validate_zones(cls, v: dict[str, ZoneSettings]) -> dict[str, ZoneSettings]:
        if not v:
            raise ValueError("at least one zone must be configured")
        for zone_id in v:
            if not zone_id.strip():
                raise ValueError("zone ids must be non-empty")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def logging_level(self) -> int:
        """Root logger level; ``debug`` forces DEBUG."""
        if self.debug:
            return logging.DEBUG
        return int(getattr(logging, self.log_level.upper()))


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


SETTINGS: Final[Settings] = get_settings()
