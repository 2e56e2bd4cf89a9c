"""Alert sink: fire-and-forget operator alerts.

Every alert is logged. When configured, it is also emailed to the operator
and posted to a chat webhook (Discord, Slack or a generic JSON endpoint).
``send`` never raises: alerting failures must not break the pipeline.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum

import httpx
import structlog

from dropship.notification.channel.email_port import EmailPort

logger = structlog.get_logger(__name__)


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertSink(ABC):
    @abstractmethod
    def send(self, message: str, severity: AlertSeverity = AlertSeverity.WARNING) -> None: ...

    def critical(self, message: str) -> None:
        self.send(message, AlertSeverity.CRITICAL)

    def warning(self, message: str) -> None:
        self.send(message, AlertSeverity.WARNING)


def webhook_payload(url: str, text: str) -> dict:
    """Shape the body for the webhook flavour the URL points at."""
    if "discord.com" in url or "discordapp.com" in url:
        return {"content": text}
    if "hooks.slack.com" in url:
        return {"text": text}
    return {"text": text, "source": "dropship-pipeline"}


class OperatorAlertSink(AlertSink):
    """Logs every alert, then fans out to email and webhook when configured."""

    def __init__(
        self,
        email: EmailPort | None = None,
        alert_email: str = "",
        webhook_url: str = "",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self.email = email
        self.alert_email = alert_email
        self.webhook_url = webhook_url
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout=timeout))

    def send(self, message: str, severity: AlertSeverity = AlertSeverity.WARNING) -> None:
        timestamp = datetime.now(UTC).isoformat()
        log = logger.error if severity == AlertSeverity.CRITICAL else logger.warning
        log("Pipeline alert", severity=severity.value, message=message)

        formatted = f"[{severity.value.upper()}] {message}\n{timestamp}"

        if self.email is not None and self.alert_email:
            try:
                result = self.email.send(
                    to=self.alert_email,
                    subject=f"[{severity.value.upper()}] Pipeline Alert - {timestamp}",
                    body=formatted,
                )
                if result.get("status") != "sent":
                    logger.warning("Alert email not sent", error=result.get("error"))
            except Exception as e:
                logger.warning("Alert email failed", error=str(e))

        if self.webhook_url:
            try:
                response = self.client.post(self.webhook_url, json=webhook_payload(self.webhook_url, formatted))
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("Alert webhook failed", error=str(e))
