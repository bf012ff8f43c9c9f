"""Error taxonomy shared by the zone engine and its collaborators."""

from __future__ import annotations


class ViveroError(Exception):
    """Base exception for all zone engine errors."""


class UnknownZoneError(ViveroError):
    """Raised when a reading names a zone that is not configured."""

    def __init__(self, zone_id: str | None) -> None:
        super().__init__(f"Unknown zone: {zone_id!r}")
        self.zone_id = zone_id


class InvalidRequestError(ViveroError):
    """Raised on a malformed manual control request."""


class UnauthorizedError(ViveroError):
    """Raised when manual control or login lacks a valid credential."""


class StorageError(ViveroError):
    """Raised when zone state could not be read from or written to persistence."""


class EvaluationError(ViveroError):
    """Raised if the irrigation policy fails; always a programming defect."""


__all__ = [
    "EvaluationError",
    "InvalidRequestError",
    "StorageError",
    "UnauthorizedError",
    "UnknownZoneError",
    "ViveroError",
]
