"""Static zone configuration table."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from vivero.config import ZoneSettings
from vivero.core.errors import UnknownZoneError


@dataclass(frozen=True, slots=True)
class ZoneConfig:
    """Thresholds for one zone. Lower soil readings mean drier soil."""

    zone_id: str
    soil_threshold: float
    temp_high: float
    temp_low: float


class ZoneConfigTable(Mapping[str, ZoneConfig]):
    """Immutable mapping of zone id to its configuration, fixed at startup."""

    def __init__(self, zones: Mapping[str, ZoneConfig]) -> None:
        self._zones: Mapping[str, ZoneConfig] = MappingProxyType(dict(zones))

    @classmethod
    def from_settings(cls, zones: Mapping[str, ZoneSettings]) -> ZoneConfigTable:
        return cls(
            {
                zone_id: ZoneConfig(
                    zone_id=zone_id,
                    soil_threshold=cfg.soil_threshold,
                    temp_high=cfg.temp_high,
                    temp_low=cfg.temp_low,
                )
                for zone_id, cfg in zones.items()
            }
        )

    def __getitem__(self, zone_id: str) -> ZoneConfig:
        return self._zones[zone_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._zones)

    def __len__(self) -> int:
        return len(self._zones)

    def require(self, zone_id: str | None) -> ZoneConfig:
        """Return the config for *zone_id* or raise :class:`UnknownZoneError`."""
        if zone_id is None or zone_id not in self._zones:
            raise UnknownZoneError(zone_id)
        return self._zones[zone_id]


__all__ = ["ZoneConfig", "ZoneConfigTable"]
