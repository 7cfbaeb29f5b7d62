"""
EVENT SYSTEM - How the trading core reports what it does

Every component talks to the outside world through events instead of
calling notification code directly:
- Cycle start / completion
- Order fills and rejections
- Position opened / closed
- Level crossings and price anomalies
- Alerts that need operator attention

Subscribers (notifiers, journals, tests) attach to the bus without the
trading core knowing about them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from enum import Enum
from collections import defaultdict
from loguru import logger
import uuid


class EventType(str, Enum):
    """All system event types."""

    # === SYSTEM ===
    SYSTEM_STARTED = "system_started"
    SYSTEM_STOPPED = "system_stopped"
    SYSTEM_ERROR = "system_error"
    SYSTEM_ALERT = "system_alert"

    # === CYCLE ===
    CYCLE_STARTED = "cycle_started"
    CYCLE_COMPLETED = "cycle_completed"

    # === ORDERS ===
    ORDER_FILLED = "order_filled"
    ORDER_REJECTED = "order_rejected"

    # === POSITIONS ===
    POSITION_OPENED = "position_opened"
    POSITION_UPDATED = "position_updated"
    POSITION_CLOSED = "position_closed"

    # === MARKET ===
    DATA_UNAVAILABLE = "data_unavailable"
    PRICE_ANOMALY = "price_anomaly"
    PROFIT_LIMIT_CROSSED = "profit_limit_crossed"
    STOP_LIMIT_CROSSED = "stop_limit_crossed"
    ENTRY_PRICE_CROSSED = "entry_price_crossed"

    # === CAPITAL ===
    BALANCE_RECONCILED = "balance_reconciled"
    WITHDRAWAL = "withdrawal"


@dataclass
class Event:
    """Base event structure."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType = EventType.SYSTEM_ALERT
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: str = "unknown"  # Module that generated this event
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: int = 5  # 1 = highest, 10 = lowest

    def __post_init__(self):
        if self.payload is None:
            self.payload = {}


# Type alias for event handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Pub/sub bus shared by the trading components.

    Handler failures are logged and isolated - one failing subscriber
    never interrupts a trading cycle.
    """

    _instance: Optional['EventBus'] = None

    def __new__(cls):
        """Singleton pattern - only one event bus exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._global_handlers: List[EventHandler] = []
        self._event_history: List[Event] = []
        self._max_history_size: int = 5000
        self._initialized = True

        logger.info("EventBus initialized")

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe a handler to a specific event type."""
        self._handlers[event_type].append(handler)
        logger.debug(f"Handler subscribed to {event_type.name}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to ALL events (useful for logging)."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Remove a handler from an event type."""
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribed handlers."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size:]

        for handler in self._global_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Global handler error: {e}")

        for handler in self._handlers[event.event_type]:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.event_type.name}: {e}")

    def get_recent_events(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100
    ) -> List[Event]:
        """Retrieve recent events, optionally filtered by type."""
        events = self._event_history
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]

    def clear_history(self) -> None:
        """Clear event history (useful for testing)."""
        self._event_history = []


def get_event_bus() -> EventBus:
    """Get the singleton EventBus instance."""
    return EventBus()


# === Helper functions for creating common events ===

def emit_event(
    event_type: EventType,
    source: str,
    bus: Optional[EventBus] = None,
    **payload
) -> Event:
    """Create and publish an event."""
    event = Event(event_type=event_type, source=source, payload=payload)
    (bus or get_event_bus()).publish(event)
    return event


def emit_alert(
    message: str,
    source: str = "trader",
    bus: Optional[EventBus] = None,
    severity: str = "info",
    **kwargs
) -> Event:
    """
    Surface a message that the operator should see.

    Alerts are logged (WARNING for failures, INFO otherwise) and published
    as SYSTEM_ALERT so notifiers can forward them.
    """
    if severity == "warning":
        logger.warning(message)
    else:
        logger.info(message)

    event = Event(
        event_type=EventType.SYSTEM_ALERT,
        source=source,
        priority=1 if severity == "warning" else 5,
        payload={"message": message, "severity": severity, **kwargs}
    )
    (bus or get_event_bus()).publish(event)
    return event
