import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger("sitedesk.events")


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out of domain events to in-process subscribers.

    A handler is registered at most once per event name. A failing handler is
    logged and never interrupts the publisher or the remaining handlers.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> bool:
        handlers = self._subscribers[event_name]
        if handler in handlers:
            return False
        handlers.append(handler)
        return True

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, event_name: str) -> list[EventHandler]:
        return list(self._subscribers.get(event_name, []))

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.handlers(event_name):
            try:
                handler(event)
            except Exception as exc:
                logger.warning("event_handler_failed", extra={"event_name": event_name, "error": str(exc)})
                continue
            delivered += 1
        return delivered


event_bus = InProcessEventBus()
