"""Notification aggregate (CQRS): retryable outbox for buyer emails.

Lifecycle emails are written here first and dispatched afterwards, so a
failed send is a visible FAILED row that the sweep retries rather than a
lost side effect.

State Machine:
    PENDING → SENT
    PENDING → FAILED → (retry) → PENDING
    PENDING → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text

from dropship.domain import dropship


class NotificationType(Enum):
    PAYMENT_RECEIVED = "payment_received"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_REFUNDED = "order_refunded"
    ORDER_CANCELLED = "order_cancelled"


class NotificationStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    NotificationStatus.PENDING: {
        NotificationStatus.SENT,
        NotificationStatus.FAILED,
        NotificationStatus.CANCELLED,
    },
    NotificationStatus.FAILED: {
        NotificationStatus.PENDING,  # Via retry
    },
    NotificationStatus.SENT: set(),  # Terminal
    NotificationStatus.CANCELLED: set(),  # Terminal
}


@dropship.aggregate
class Notification:
    """A single buyer email waiting for, or past, dispatch."""

    recipient = String(max_length=255, required=True, sanitize=False)
    notification_type = String(choices=NotificationType, required=True)
    lot_id = String(max_length=100)

    # One notification per (lot, type); repeated enqueues are ignored
    dedupe_key = String(max_length=200, required=True)

    subject = String(max_length=500, sanitize=False)
    body = Text(required=True, sanitize=False)

    status = String(choices=NotificationStatus, default=NotificationStatus.PENDING.value)
    message_id = String(max_length=200)
    sent_at = DateTime()
    failure_reason = String(max_length=500, sanitize=False)

    retry_count = Integer(default=0)
    max_retries = Integer(default=3)

    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, recipient, notification_type, dedupe_key, body, subject=None, lot_id=None, max_retries=3):
        """Create a new notification in PENDING status."""
        now = datetime.now(UTC)
        return cls(
            recipient=recipient,
            notification_type=notification_type,
            lot_id=lot_id,
            dedupe_key=dedupe_key,
            subject=subject,
            body=body,
            status=NotificationStatus.PENDING.value,
            retry_count=0,
            max_retries=max_retries,
            created_at=now,
            updated_at=now,
        )

    @property
    def can_retry(self) -> bool:
        return NotificationStatus(self.status) == NotificationStatus.FAILED and self.retry_count < self.max_retries

    def _assert_can_transition(self, target_status):
        """Validate state machine transition."""
        current = NotificationStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def mark_sent(self, message_id=None, sent_at=None):
        self._assert_can_transition(NotificationStatus.SENT)

        now = sent_at or datetime.now(UTC)
        self.status = NotificationStatus.SENT.value
        self.message_id = message_id
        self.sent_at = now
        self.updated_at = now

    def mark_failed(self, reason):
        self._assert_can_transition(NotificationStatus.FAILED)

        self.status = NotificationStatus.FAILED.value
        self.failure_reason = (reason or "Unknown dispatch error")[:500]
        self.retry_count = self.retry_count + 1
        self.updated_at = datetime.now(UTC)

    def cancel(self, reason):
        self._assert_can_transition(NotificationStatus.CANCELLED)

        self.status = NotificationStatus.CANCELLED.value
        self.failure_reason = reason
        self.updated_at = datetime.now(UTC)

    def retry(self):
        """Return a failed notification to the outbox."""
        if NotificationStatus(self.status) != NotificationStatus.FAILED:
            raise ValidationError({"status": ["Only failed notifications can be retried"]})
        if self.retry_count >= self.max_retries:
            raise ValidationError({"retry_count": ["Maximum retry attempts exceeded"]})

        self.status = NotificationStatus.PENDING.value
        self.failure_reason = None
        self.updated_at = datetime.now(UTC)
