"""Tests for vivero.config."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from vivero.config import Settings, ZoneSettings


class TestSettings:
    def test_default_zones(self) -> None:
        settings = Settings(_env_file=None)
        assert set(settings.zones) == {"sombra", "semisombra", "sol"}
        assert settings.zones["sol"].soil_threshold == 300
        assert settings.zones["sombra"].temp_high == 32

    def test_zones_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "VIVERO_ZONES",
            '{"invernadero": {"soil_threshold": 450, "temp_high": 30, "temp_low": 12}}',
        )
        settings = Settings(_env_file=None)
        assert list(settings.zones) == ["invernadero"]
        assert settings.zones["invernadero"].soil_threshold == 450

    def test_empty_zone_table_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, zones={})

    def test_log_level_drives_root_logger(self) -> None:
        settings = Settings(_env_file=None, debug=False, log_level=" WARNING ")
        assert settings.log_level == "warning"
        assert settings.logging_level == logging.WARNING

    def test_debug_forces_debug_logging(self) -> None:
        settings = Settings(_env_file=None, debug=True, log_level="error")
        assert settings.logging_level == logging.DEBUG

    def test_unknown_log_level_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="verbose")

    def test_event_handler_timeout_must_be_positive(self) -> None:
        assert Settings(_env_file=None).event_handler_timeout_seconds == 5.0
        with pytest.raises(ValidationError):
            Settings(_env_file=None, event_handler_timeout_seconds=0)


class TestZoneSettings:
    def test_temperature_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ZoneSettings(soil_threshold=300, temp_high=10, temp_low=20)

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ZoneSettings(
                soil_threshold=300, temp_high=36, temp_low=10, ph=7  # type: ignore[call-arg]
            )
