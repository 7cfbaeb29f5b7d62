"""
EVENT JOURNAL - Audit trail of what the trader did

Every event published on the bus (fills, rejections, closed positions,
alerts, reconciliations) is stored so the operator can look back at a
run after the process is gone.
"""

import json
from typing import Any, Dict, List, Optional

from loguru import logger

from core.events import Event, EventBus, EventType
from memory.models import Database, JournalEntry


class EventJournal:
    """Stores bus events in the ``journal_entries`` table."""

    def __init__(self, db: Database):
        self._db = db
        self._bus: Optional[EventBus] = None

    def attach(self, bus: EventBus) -> None:
        """Start recording everything published on `bus`."""
        if self._bus is bus:
            return
        bus.subscribe_all(self.record)
        self._bus = bus
        logger.info("EventJournal attached to the event bus")

    def record(self, event: Event) -> None:
        session = self._db.get_session()
        try:
            session.add(JournalEntry(
                event_id=event.event_id,
                event_type=event.event_type.value,
                source=event.source,
                # Payload values may be enums or datetimes
                payload=json.loads(json.dumps(event.payload, default=str)),
                timestamp=event.timestamp
            ))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to journal {event.event_type.value}: {e}")
            raise
        finally:
            session.close()

    def recent(self, event_type: Optional[EventType] = None, limit: int = 20) -> List[Dict[str, Any]]:
        """Newest entries first."""
        with self._db.get_session() as session:
            query = session.query(JournalEntry)
            if event_type:
                query = query.filter(JournalEntry.event_type == event_type.value)
            rows = query.order_by(JournalEntry.id.desc()).limit(limit).all()
            return [
                {
                    "event_type": row.event_type,
                    "source": row.source,
                    "timestamp": row.timestamp.isoformat(),
                    "payload": row.payload,
                }
                for row in rows
            ]
