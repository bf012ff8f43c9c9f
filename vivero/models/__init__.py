"""Domain enums and wire schemas for Vivero."""

from .enums import AuthMethod, EventTopic, ValveAction, ValveReason, ValveState

__all__ = [
    "AuthMethod",
    "EventTopic",
    "ValveAction",
    "ValveReason",
    "ValveState",
]
