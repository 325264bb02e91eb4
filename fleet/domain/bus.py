"""In-process dispatch of reservation lifecycle events.

Routes call :meth:`EventBus.publish` while they still hold the booking lock,
so history entries and vehicle status changes land in the same order as the
reservation writes that caused them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)
Handler = Callable[[BaseModel], None]


class EventBus:
    """Maps each event class to the handlers that react to it.

    Dispatch is exact-type and synchronous: handlers run in registration
    order and an exception from one stops the rest and reaches the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseModel], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BaseModel) -> None:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug("No handler for %s", type(event).__name__)
            return
        logger.debug("Dispatching %s to %d handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)
