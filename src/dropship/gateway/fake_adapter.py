"""Configurable fake payment gateway for development and testing.

Accepts the signature ``test-signature`` and keeps invoices in memory so
tests can control what a re-fetch returns.
"""

import json
from uuid import uuid4

from dropship.gateway.port import Invoice, PaymentEvent, PaymentGateway, RefundResult, invoice_from_payload

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Refund failed"
        self.invoices: dict[str, Invoice] = {}
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Refund failed") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def add_invoice(self, invoice: Invoice) -> None:
        self.invoices[invoice.id] = invoice

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == TEST_SIGNATURE

    def parse_event(self, payload: str) -> PaymentEvent:
        data = json.loads(payload)
        obj = (data.get("data") or {}).get("object") or {}
        invoice = invoice_from_payload(obj) if obj.get("object", "invoice") == "invoice" and obj.get("id") else None
        return PaymentEvent(id=data["id"], type=data["type"], invoice=invoice)

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        self.calls.append({"method": "get_invoice", "invoice_id": invoice_id})
        return self.invoices.get(invoice_id)

    def refund_invoice(self, invoice_id: str, reason: str) -> RefundResult:
        self.calls.append({"method": "refund_invoice", "invoice_id": invoice_id, "reason": reason})

        if not self.should_succeed:
            return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

        invoice = self.invoices.get(invoice_id)
        amount = invoice.amount_paid_cents if invoice else None
        return RefundResult(
            success=True,
            gateway_refund_id=f"fake_ref_{uuid4().hex[:12]}",
            gateway_status="refunded",
            amount_cents=amount,
        )
