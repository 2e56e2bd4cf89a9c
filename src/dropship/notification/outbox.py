"""Outbox operations: enqueue buyer emails and dispatch them.

``enqueue`` renders a template and stores a PENDING row; ``dispatch`` sends
one row through the email channel and records SENT or FAILED. The sweep
calls ``dispatch_pending`` and ``retry_failed`` so a failed send is retried
up to ``max_retries`` times. Nothing here raises to the caller.
"""

import structlog
from protean.utils.globals import current_domain

from dropship.notification.channel.email_port import EmailPort
from dropship.notification.notification import Notification, NotificationStatus, NotificationType
from dropship.notification.templates import get_template

logger = structlog.get_logger(__name__)

_QUERY_LIMIT = 500


def _dispatch_via_channel(adapter: EmailPort, notification: Notification) -> dict:
    return adapter.send(
        to=notification.recipient,
        subject=notification.subject or "",
        body=notification.body,
    )


class NotificationOutbox:
    def __init__(self, email: EmailPort):
        self.email = email

    @property
    def repo(self):
        return current_domain.repository_for(Notification)

    def _by_status(self, status: NotificationStatus) -> list[Notification]:
        return self.repo._dao.query.filter(status=status.value).limit(_QUERY_LIMIT).all().items

    def enqueue(
        self,
        notification_type: NotificationType,
        recipient: str | None,
        lot_id: str,
        context: dict,
        send_now: bool = True,
    ) -> Notification | None:
        """Record a buyer email and, by default, try to send it right away."""
        if not recipient:
            logger.warning(
                "No recipient for notification, skipping",
                lot_id=lot_id,
                notification_type=notification_type.value,
            )
            return None

        dedupe_key = f"{lot_id}:{notification_type.value}"
        existing = self.repo._dao.query.filter(dedupe_key=dedupe_key).all().items
        if existing:
            logger.info("Notification already queued", dedupe_key=dedupe_key)
            return existing[0]

        rendered = get_template(notification_type.value).render(context)
        notification = Notification.create(
            recipient=recipient,
            notification_type=notification_type.value,
            dedupe_key=dedupe_key,
            subject=rendered["subject"],
            body=rendered["body"],
            lot_id=lot_id,
        )
        self.repo.add(notification)

        if send_now:
            self.dispatch(notification)
        return notification

    def dispatch(self, notification: Notification) -> bool:
        if NotificationStatus(notification.status) != NotificationStatus.PENDING:
            return False

        try:
            result = _dispatch_via_channel(self.email, notification)
            if result.get("status") == "sent":
                notification.mark_sent(message_id=result.get("message_id"))
            else:
                notification.mark_failed(result.get("error", "Unknown dispatch error"))
        except Exception as e:
            notification.mark_failed(str(e))
            logger.error("Notification dispatch failed", notification_id=str(notification.id), error=str(e))

        self.repo.add(notification)
        return NotificationStatus(notification.status) == NotificationStatus.SENT

    def dispatch_pending(self) -> int:
        sent = 0
        for notification in self._by_status(NotificationStatus.PENDING):
            if self.dispatch(notification):
                sent += 1
        return sent

    def retry_failed(self) -> dict:
        """Move retryable FAILED rows back to PENDING and send them again."""
        retried = 0
        exhausted = 0
        for notification in self._by_status(NotificationStatus.FAILED):
            if not notification.can_retry:
                exhausted += 1
                continue
            notification.retry()
            self.repo.add(notification)
            retried += 1

        sent = self.dispatch_pending()
        return {"retried": retried, "sent": sent, "exhausted": exhausted}
