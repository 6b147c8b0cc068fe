"""EventHandlerRegistry: registry and failure-isolating dispatcher for event handlers."""

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventHandlerRegistry:
    """Registry of handlers keyed by event type.

    Handlers are callables (sync or async) that accept a payload dict.
    Multiple handlers can be registered for the same event type. Each
    registry instance owns its handlers, so the workflow hooks and the
    outbox subscribers do not share state.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable]] = defaultdict(list)

    def register(self, event_type: str, handler: Callable) -> None:
        """Register a handler for a given event type."""
        self._handlers[event_type].append(handler)
        logger.debug("Registered handler %s for event type %s", _handler_name(handler), event_type)

    def get_handlers(self, event_type: str) -> list[Callable]:
        return list(self._handlers.get(event_type, []))

    async def dispatch(self, event_type: str, payload: dict) -> list[dict]:
        """Dispatch an event to all registered handlers.

        Returns a list of result dicts with handler name and status.
        Errors are logged and captured but do not stop other handlers and
        are never raised to the caller.
        """
        results = []
        for handler in self.get_handlers(event_type):
            name = _handler_name(handler)
            try:
                outcome = handler(payload)
                if inspect.isawaitable(outcome):
                    await outcome
                results.append({"handler": name, "status": "ok"})
            except Exception as exc:
                logger.exception("Handler %s failed for event type %s", name, event_type)
                results.append({
                    "handler": name,
                    "status": "error",
                    "error": str(exc),
                })
        return results

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", type(handler).__name__)
