"""Vivero application services."""

from .session_service import Session, SessionService

__all__ = [
    "Session",
    "SessionService",
]
