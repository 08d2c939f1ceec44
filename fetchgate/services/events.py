"""In-process observer list for transfer events.

Subscribers receive only events published after they subscribe; nothing is
buffered or replayed. A failing listener is logged and skipped so it cannot
break the transfer that published the event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fetchgate.models.events import TransferEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[TransferEvent], None]
Unsubscribe = Callable[[], None]


class EventBus:
    """Fans transfer events out to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[tuple[EventListener, str | None]] = []
        self._published = 0

    def subscribe(self, listener: EventListener, *, task_id: str | None = None) -> Unsubscribe:
        """Register ``listener`` for all events, or only those of ``task_id``.

        Returns a zero-argument callable that removes the subscription.
        Calling it more than once is harmless.
        """
        entry = (listener, task_id)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def publish(self, event: TransferEvent) -> None:
        self._published += 1
        for listener, task_id in list(self._listeners):
            if task_id is not None and task_id != event.task_id:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Event listener error (event=%s, task=%s)", event.type.value, event.task_id
                )

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def get_stats(self) -> dict:
        return {"subscribers": len(self._listeners), "published_total": self._published}
