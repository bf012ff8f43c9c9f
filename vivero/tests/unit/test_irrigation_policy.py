"""Tests for vivero.core.irrigation_policy."""

from __future__ import annotations

import pytest

from vivero.core.irrigation_policy import (
    ADVISORY_SOIL_LOW,
    ADVISORY_SOIL_OK,
    ADVISORY_TEMP_HIGH,
    ADVISORY_TEMP_LOW,
    HYSTERESIS_MARGIN,
    evaluate,
)
from vivero.core.zone_store import ZoneReading, ZoneState
from vivero.core.zones import ZoneConfig
from vivero.models.enums import ValveAction, ValveReason, ValveState

SOL = ZoneConfig(zone_id="sol", soil_threshold=300, temp_high=36, temp_low=10)


def _reading(soil: float | None = None, temp: float | None = None) -> ZoneReading:
    return ZoneReading(
        zone_id="sol",
        timestamp="2026-01-01T00:00:00+00:00",
        soil_moisture=soil,
        temperature=temp,
    )


def _state(valve: ValveState = ValveState.off, manual_override: bool = False) -> ZoneState:
    return ZoneState(zone_id="sol", valve=valve, manual_override=manual_override)


# ===================================================================
# Valve action
# ===================================================================


class TestValveAction:
    @pytest.mark.parametrize("soil", [0, 120, 299.5, 300])
    @pytest.mark.parametrize("override", [False, True])
    def test_at_or_below_threshold_opens(self, soil: float, override: bool) -> None:
        decision = evaluate(SOL, _reading(soil), _state(ValveState.off, override))
        assert decision.valve_action == ValveAction.on
        assert decision.reason == ValveReason.auto_soil_low
        assert decision.advisories[0] == ADVISORY_SOIL_LOW

    def test_open_valve_with_dry_soil_still_reports_on(self) -> None:
        decision = evaluate(SOL, _reading(250), _state(ValveState.on))
        assert decision.valve_action == ValveAction.on

    def test_inside_hysteresis_band_does_nothing(self) -> None:
        decision = evaluate(SOL, _reading(340), _state(ValveState.on))
        assert decision.valve_action == ValveAction.none
        assert decision.reason is None
        assert decision.advisories == (ADVISORY_SOIL_OK,)

    def test_band_upper_edge_is_inclusive(self) -> None:
        decision = evaluate(SOL, _reading(300 + HYSTERESIS_MARGIN), _state(ValveState.on))
        assert decision.valve_action == ValveAction.none

    def test_above_band_closes_automatic_open_valve(self) -> None:
        decision = evaluate(SOL, _reading(400), _state(ValveState.on))
        assert decision.valve_action == ValveAction.off
        assert decision.reason == ValveReason.soil_ok
        assert decision.advisories == (ADVISORY_SOIL_OK,)

    def test_manual_override_blocks_auto_close(self) -> None:
        decision = evaluate(SOL, _reading(500), _state(ValveState.on, manual_override=True))
        assert decision.valve_action == ValveAction.none

    def test_closed_valve_is_not_closed_again(self) -> None:
        decision = evaluate(SOL, _reading(500), _state(ValveState.off))
        assert decision.valve_action == ValveAction.none

    def test_missing_moisture_never_acts(self) -> None:
        decision = evaluate(SOL, _reading(None, 20), _state(ValveState.on))
        assert decision.valve_action == ValveAction.none
        assert decision.advisories == (ADVISORY_SOIL_OK,)


# ===================================================================
# Advisories
# ===================================================================


class TestAdvisories:
    def test_high_temperature(self) -> None:
        decision = evaluate(SOL, _reading(280, 38), _state())
        assert decision.advisories == (ADVISORY_SOIL_LOW, ADVISORY_TEMP_HIGH)
        assert decision.suggestion_text == f"{ADVISORY_SOIL_LOW} {ADVISORY_TEMP_HIGH}"

    def test_temperature_bounds_are_inclusive(self) -> None:
        assert ADVISORY_TEMP_HIGH in evaluate(SOL, _reading(320, 36), _state()).advisories
        assert ADVISORY_TEMP_LOW in evaluate(SOL, _reading(320, 10), _state()).advisories

    def test_low_temperature_with_adequate_soil(self) -> None:
        decision = evaluate(SOL, _reading(320, 8), _state())
        assert decision.valve_action == ValveAction.none
        assert decision.advisories == (ADVISORY_SOIL_OK, ADVISORY_TEMP_LOW)

    def test_mild_temperature_adds_nothing(self) -> None:
        decision = evaluate(SOL, _reading(320, 25), _state())
        assert decision.advisories == (ADVISORY_SOIL_OK,)

    def test_missing_temperature_adds_nothing(self) -> None:
        decision = evaluate(SOL, _reading(320), _state())
        assert decision.advisories == (ADVISORY_SOIL_OK,)


class TestDecisionSerialization:
    def test_to_dict_uses_plain_values(self) -> None:
        decision = evaluate(SOL, _reading(280, 38), _state())
        assert decision.to_dict() == {
            "valve_action": "on",
            "reason": "auto_soil_low",
            "advisories": [ADVISORY_SOIL_LOW, ADVISORY_TEMP_HIGH],
        }


class TestScenarios:
    def test_dry_sol_opens(self) -> None:
        decision = evaluate(SOL, _reading(250, 20), _state())
        assert decision.valve_action == ValveAction.on
        assert decision.reason == ValveReason.auto_soil_low
        assert "opening valve automatically" in decision.suggestion_text

    def test_wet_sol_closes_automatic_valve(self) -> None:
        decision = evaluate(SOL, _reading(360), _state(ValveState.on, manual_override=False))
        assert decision.valve_action == ValveAction.off
        assert decision.reason == ValveReason.soil_ok

    def test_wet_sol_keeps_manual_valve_open(self) -> None:
        decision = evaluate(SOL, _reading(360), _state(ValveState.on, manual_override=True))
        assert decision.valve_action == ValveAction.none

    def test_warm_sombra_with_adequate_soil(self) -> None:
        sombra = ZoneConfig(zone_id="sombra", soil_threshold=400, temp_high=32, temp_low=10)
        reading = ZoneReading(
            zone_id="sombra", timestamp="t", soil_moisture=500, temperature=33
        )
        decision = evaluate(sombra, reading, ZoneState(zone_id="sombra"))
        assert decision.valve_action == ValveAction.none
        assert decision.advisories == (ADVISORY_SOIL_OK, ADVISORY_TEMP_HIGH)
