"""Observer registry for protocol activity events."""

import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Union

from models.events import EVENT_KINDS, ActivityEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ActivityEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Dispatches activity events to any number of subscribers.

    An emitted event proceeds when at least one subscriber accepted it and
    none rejected it. Events without subscribers proceed automatically.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, kind: str, handler: EventHandler) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind!r}. Must be one of {EVENT_KINDS}")
        self._handlers[kind].append(handler)

    def handlers(self, kind: str) -> list[EventHandler]:
        return list(self._handlers.get(kind, []))

    async def emit(self, event: ActivityEvent) -> bool:
        """
        Deliver an event to every subscriber of its kind.

        Args:
            event: The event to deliver.

        Returns:
            bool: True if the operation behind the event may proceed.
        """
        handlers = self.handlers(event.kind)
        if not handlers:
            event.accept()
            return True

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.exception("Event handler failed for %s event on %s", event.kind, event.repo)
                event.reject(f"Event handler failed: {exc}")

        return event.decision.accepted and not event.decision.rejected
