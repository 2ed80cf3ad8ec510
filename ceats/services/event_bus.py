from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

Handler = Callable[[dict[str, Any]], None]

logger = logging.getLogger(__name__)


class EventBus:
    """Bus en proceso: los handlers corren en orden y sus errores sólo se loguean."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def handlers_for(self, event_name: str) -> list[Handler]:
        return list(self._handlers.get(event_name, []))

    def emit(self, event_name: str, payload: dict[str, Any]) -> int:
        handlers = self.handlers_for(event_name)
        if not handlers:
            logger.debug("EventBus: sin handlers para %s", event_name)
            return 0
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("EventBus: handler %s falló para %s", getattr(handler, "__name__", handler), event_name)
        return delivered


event_bus = EventBus()
