"""Processed-events ledger: insert-if-absent deduplication of inbound events.

Each inbound event is recorded once under ``(source, idempotency_key)``. The
row identity is derived from that pair, so a second delivery collides on the
primary key instead of creating a new row.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, String, Text
from protean.utils.globals import current_domain

from dropship.domain import dropship

logger = structlog.get_logger(__name__)


class EventSource(Enum):
    PAYMENT = "payment"
    SUPPLIER = "supplier"
    AUCTION = "auction"


@dropship.aggregate
class ProcessedEvent:
    """One accepted inbound event."""

    id = String(identifier=True, max_length=400)
    source = String(choices=EventSource, required=True)
    idempotency_key = String(max_length=300, required=True)
    event_type = String(max_length=100)
    payload = Text(sanitize=False)
    processed_at = DateTime()


def ledger_id(source: str, idempotency_key: str) -> str:
    return f"{source}:{idempotency_key}"


def claim_event(source: EventSource, idempotency_key: str, event_type: str | None = None, payload=None) -> bool:
    """Record the event; return False if it was already recorded."""
    repo = current_domain.repository_for(ProcessedEvent)
    event_id = ledger_id(source.value, idempotency_key)

    try:
        repo.get(event_id)
        logger.info("Duplicate event ignored", source=source.value, idempotency_key=idempotency_key)
        return False
    except ObjectNotFoundError:
        pass

    try:
        repo.add(
            ProcessedEvent(
                id=event_id,
                source=source.value,
                idempotency_key=idempotency_key,
                event_type=event_type,
                payload=payload,
                processed_at=datetime.now(UTC),
            )
        )
    except ValidationError:
        # Lost the race: a concurrent delivery inserted the same key first
        logger.info("Duplicate event ignored", source=source.value, idempotency_key=idempotency_key)
        return False

    return True


def release_event(source: EventSource, idempotency_key: str) -> None:
    """Forget an event so a redelivery is processed again."""
    repo = current_domain.repository_for(ProcessedEvent)
    try:
        repo._dao.delete(repo.get(ledger_id(source.value, idempotency_key)))
    except ObjectNotFoundError:
        return
