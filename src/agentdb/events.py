"""
Synchronous lifecycle notifications for the store.

Handlers run in registration order on the caller's thread, after the
mutation they describe has been applied.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

__all__ = ["StoreEvent", "EventEmitter", "Handler"]

Handler = Callable[[Dict[str, Any]], Any]


class StoreEvent(str, Enum):
    INITIALIZED = "initialized"
    VECTOR_ADDED = "vector_added"
    VECTOR_DELETED = "vector_deleted"
    METADATA_UPDATED = "metadata_updated"
    REASONING_ADDED = "reasoning_added"
    CLEARED = "cleared"
    IMPORTED = "imported"
    COMPACTED = "compacted"


class EventEmitter:
    """Minimal observer registry keyed by :class:`StoreEvent`."""

    def __init__(self) -> None:
        self._handlers: Dict[StoreEvent, List[Handler]] = {}

    def on(self, event: Union[str, StoreEvent], handler: Handler) -> Handler:
        """Subscribe *handler* to *event*. Returns the handler."""
        key = StoreEvent(event)
        self._handlers.setdefault(key, []).append(handler)
        logger.debug("Registered handler for event: %s", key.value)
        return handler

    def off(self, event: Union[str, StoreEvent], handler: Handler) -> bool:
        """Unsubscribe *handler*. Returns ``False`` if it was not registered."""
        handlers = self._handlers.get(StoreEvent(event), [])
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        return True

    def listeners(self, event: Union[str, StoreEvent]) -> List[Handler]:
        return list(self._handlers.get(StoreEvent(event), []))

    def emit(self, event: StoreEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = payload if payload is not None else {}
        for handler in self.listeners(event):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for event '%s' failed", event.value)
