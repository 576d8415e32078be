"""Booking lifecycle events, delivered synchronously in-process."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_STATUS_CHANGED = "booking_status_changed"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    PAYMENT_NOTIFICATION = "payment_notification"


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def booking_id(self) -> int | None:
        return self.data.get("booking_id")


Handler = Callable[[Event], None]


class EventBus:
    """Fans booking events out to handlers.

    Events are published only after the change they describe is committed,
    so handlers may open their own session. A failing handler is logged and
    does not affect the publisher or the other handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        """Register ``handler`` once per event type; repeats are ignored."""
        handlers = self._handlers[event_type]
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("Subscribed %s to %s", handler.__name__, event_type.value)

    def publish(self, event: Event) -> None:
        logger.info(
            "Publishing %s (booking %s)", event.event_type.value, event.booking_id
        )
        for handler in list(self._handlers.get(event.event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed on %s", handler.__name__, event.event_type.value
                )


event_bus = EventBus()
