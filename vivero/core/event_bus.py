"""In-process publish/subscribe fan-out for zone events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_HANDLER_TIMEOUT = 5.0


@dataclass(frozen=True, slots=True)
class Event:
    topic: str
    payload: dict[str, Any]
    timestamp: str


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Deliver published events to the currently registered subscribers.

    Delivery is best effort: there is no backlog or replay, and a failing
    subscriber is logged and skipped without affecting the publisher. Each
    handler gets at most *handler_timeout* seconds; publishers hold a zone lock,
    so a stalled viewer must not be able to hold it longer than that.
    """

    def __init__(self, *, handler_timeout: float = DEFAULT_HANDLER_TIMEOUT) -> None:
        self._subscribers: list[tuple[str | None, EventHandler]] = []
        self._handler_timeout = handler_timeout

    def subscribe(self, handler: EventHandler, *, topic: str | None = None) -> Callable[[], None]:
        """Register *handler* for *topic* (all topics when ``None``).

        Returns a callable that removes the subscription.
        """
        entry = (topic, handler)
        self._subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> int:
        """Publish an event and return how many subscribers received it."""
        event = Event(topic=topic, payload=dict(payload), timestamp=datetime.now(UTC).isoformat())
        delivered = 0
        for wanted, handler in list(self._subscribers):
            if wanted is not None and wanted != topic:
                continue
            try:
                await asyncio.wait_for(handler(event), timeout=self._handler_timeout)
                delivered += 1
            except TimeoutError:
                logger.warning(
                    "Event subscriber timed out after %.1fs for topic %s",
                    self._handler_timeout,
                    topic,
                )
            except Exception:
                logger.exception("Event subscriber failed for topic %s", topic)
        return delivered


__all__ = ["Event", "EventBus", "EventHandler"]
