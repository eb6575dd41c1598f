"""Ledger event emission."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from welfare_loans.models import Event

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: Event) -> None: ...


def emit(
    sink: EventSink | None,
    event_type: str,
    subject: str,
    data: dict[str, Any],
    source: str,
) -> Event | None:
    """Build an event and publish it to ``sink`` if one is configured."""
    if sink is None:
        return None

    event = Event(
        event_id=str(uuid.uuid4()),
        event_type=event_type,
        event_time=datetime.now(timezone.utc),
        source=source,
        subject=subject,
        data=data,
    )
    sink.publish(event)
    logger.debug("Published %s for %s", event_type, subject)
    return event
