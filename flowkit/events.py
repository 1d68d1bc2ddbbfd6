"""
Flowkit - Engine Hooks

Callbacks around engine operations: sending transactions, deploying
contracts and creating accounts.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class EventType(Enum):
    """Available hook points."""
    # Transaction lifecycle
    BEFORE_SEND = "before_send"
    AFTER_SEND = "after_send"
    TX_SEALED = "tx_sealed"

    # Deployment
    BEFORE_DEPLOY_CONTRACT = "before_deploy_contract"
    AFTER_DEPLOY_CONTRACT = "after_deploy_contract"
    DEPLOY_SKIPPED = "deploy_skipped"

    # Accounts
    ACCOUNT_CREATED = "account_created"

    # Errors
    ON_ERROR = "on_error"


@dataclass
class Event:
    """Event payload passed to handlers."""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Optional[Any]]


class EventEmitter:
    """
    Dispatches engine events to registered handlers.

    A failing handler does not interrupt the engine; the failure is
    logged and re-emitted as ON_ERROR.

    Example:
        emitter = EventEmitter()

        @emitter.on(EventType.AFTER_DEPLOY_CONTRACT)
        def deployed(event):
            print(event.data["name"], event.data["txid"])
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []
        self.logger = logger or logging.getLogger("flowkit.events")

    def on(self, event_type: EventType) -> Callable:
        """Decorator registering a handler for one event type."""
        def decorator(handler: EventHandler) -> EventHandler:
            self.add_handler(event_type, handler)
            return handler
        return decorator

    def add_handler(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type: EventType, handler: EventHandler) -> bool:
        """
        Returns:
            True if the handler was registered.
        """
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def add_global_handler(self, handler: EventHandler) -> None:
        """Register a handler that receives every event."""
        self._global_handlers.append(handler)

    def emit(self, event_type: EventType, data: Dict[str, Any] = None) -> List[Any]:
        """
        Emit an event to global handlers first, then specific ones.

        Returns:
            Handler return values other than None.
        """
        event = Event(type=event_type, data=data or {})
        results = []

        for handler in self._global_handlers + self._handlers.get(event_type, []):
            try:
                result = handler(event)
            except Exception as e:
                self.logger.error(f"Handler error for {event_type.value}: {e}")
                if event_type != EventType.ON_ERROR:
                    self.emit(EventType.ON_ERROR, {
                        "error": e,
                        "error_type": type(e).__name__,
                        "message": str(e),
                        "source_event": event_type.value,
                    })
                continue
            if result is not None:
                results.append(result)

        return results

    def clear(self, event_type: EventType = None) -> None:
        if event_type:
            self._handlers[event_type] = []
        else:
            self._handlers.clear()
            self._global_handlers.clear()

    def handler_count(self, event_type: EventType = None) -> int:
        if event_type:
            return len(self._handlers.get(event_type, []))
        return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)


def create_audit_hook(audit_callback: Callable[[dict], None]) -> EventHandler:
    """
    Hook forwarding every event to an audit sink.

    Args:
        audit_callback: Called with ``{event_type, timestamp, data}``.
    """
    def handler(event: Event) -> None:
        audit_callback({
            "event_type": event.type.value,
            "timestamp": event.timestamp,
            "data": event.data,
        })
    return handler
