"""
EventBus -- explicit lifecycle events for execution outcomes.

Contract:
    Subscribers register a callable per ``EventType`` (or ``None`` for every
    event).  ``publish()`` delivers synchronously, in subscription order,
    after the state change has been flushed.  A handler that raises is
    logged and skipped; delivery to the remaining handlers continues and
    the engine operation that published the event still succeeds.

Non-goals:
    - No persistence or replay of events.
    - Handlers run inside the publisher's transaction; a handler that
      needs its own unit of work opens its own session.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.types import EventType, ExecutionEvent

logger = get_logger("engine.events")

EventHandler = Callable[[ExecutionEvent], None]


@dataclass(frozen=True)
class Subscription:
    """Internal subscription record."""

    subscription_id: str
    event_type: EventType | None
    handler: EventHandler


class EventBus:
    """In-process synchronous event bus.

    Example::

        bus = EventBus()
        bus.subscribe(EventType.EXECUTION_COMPLETED, notify_on_completion)
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> str:
        """Subscribe ``handler`` to ``event_type`` (``None`` = all events).

        Returns:
            Subscription ID for ``unsubscribe()``.
        """
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._subscriptions[sub_id] = Subscription(
                subscription_id=sub_id,
                event_type=event_type,
                handler=handler,
            )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)

    def publish(self, event: ExecutionEvent) -> int:
        """Deliver ``event`` to every matching handler.

        Returns:
            Number of handlers that ran without raising.
        """
        with self._lock:
            matching = [
                sub
                for sub in self._subscriptions.values()
                if sub.event_type is None or sub.event_type == event.event_type
            ]

        delivered = 0
        for sub in matching:
            try:
                sub.handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "event_handler_error",
                    extra={
                        "subscription_id": sub.subscription_id,
                        "event_type": event.event_type.value,
                        "execution_id": str(event.execution_id),
                    },
                )
        return delivered

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
