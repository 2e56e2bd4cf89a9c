"""Resend email adapter: transactional email over the Resend HTTP API."""

import httpx
import structlog

from dropship.notification.channel.email_port import EmailPort

logger = structlog.get_logger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class ResendEmailAdapter(EmailPort):
    def __init__(self, api_key: str, from_address: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.api_key = api_key
        self.from_address = from_address
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout=timeout))

    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> dict:
        payload = {"from": self.from_address, "to": to, "subject": subject, "text": body}
        if html_body:
            payload["html"] = html_body

        try:
            response = self.client.post(
                RESEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Email send failed", to=to, subject=subject, error=str(e))
            return {"message_id": None, "status": "failed", "error": str(e)}

        return {"message_id": response.json().get("id"), "status": "sent"}
