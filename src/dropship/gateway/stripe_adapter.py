"""Stripe payment gateway adapter.

Signature verification uses ``stripe.Webhook.construct_event``; invoices are
re-fetched with their line items expanded. Refunds follow the invoice's
state: an uncollected invoice is voided, a paid one is refunded through its
payment intent (or charge), and a void/uncollectible one is left alone.
"""

import json

import stripe
import structlog

from dropship.gateway.port import Invoice, PaymentEvent, PaymentGateway, RefundResult, invoice_from_payload

logger = structlog.get_logger(__name__)

_VOIDABLE_STATUSES = {"draft", "open"}
_CLOSED_STATUSES = {"void", "uncollectible"}


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.max_network_retries = 2
        stripe.default_http_client = stripe.HTTPXClient(timeout=timeout)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        if not signature or not self.webhook_secret:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Webhook signature invalid", error=str(e))
            return False
        return True

    def parse_event(self, payload: str) -> PaymentEvent:
        data = json.loads(payload)
        obj = (data.get("data") or {}).get("object") or {}
        invoice = invoice_from_payload(obj) if obj.get("object") == "invoice" else None
        return PaymentEvent(id=data["id"], type=data["type"], invoice=invoice)

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        try:
            obj = stripe.Invoice.retrieve(invoice_id, expand=["lines"], api_key=self.api_key)
        except stripe.StripeError as e:
            logger.warning("Invoice re-fetch failed", invoice_id=invoice_id, error=str(e))
            return None
        return invoice_from_payload(json.loads(str(obj)))

    def refund_invoice(self, invoice_id: str, reason: str) -> RefundResult:
        try:
            obj = stripe.Invoice.retrieve(invoice_id, api_key=self.api_key)
            status = obj.get("status")

            if status in _CLOSED_STATUSES:
                logger.info("Invoice already closed, nothing to refund", invoice_id=invoice_id, status=status)
                return RefundResult(success=True, gateway_status="skipped", amount_cents=0)

            if status in _VOIDABLE_STATUSES:
                stripe.Invoice.void_invoice(invoice_id, api_key=self.api_key)
                return RefundResult(success=True, gateway_status="voided", amount_cents=0)

            if status != "paid":
                return RefundResult(
                    success=False,
                    gateway_status="failed",
                    failure_reason=f"Invoice in unexpected status: {status}",
                )

            invoice = invoice_from_payload(json.loads(str(obj)))
            params = {"metadata": {"invoice_id": invoice_id, "reason": reason[:500]}}
            if invoice.payment_intent_id:
                params["payment_intent"] = invoice.payment_intent_id
            elif invoice.charge_id:
                params["charge"] = invoice.charge_id
            else:
                return RefundResult(
                    success=False,
                    gateway_status="failed",
                    failure_reason="Paid invoice has no payment intent or charge",
                )

            refund = stripe.Refund.create(api_key=self.api_key, idempotency_key=f"refund-{invoice_id}", **params)
            return RefundResult(
                success=True,
                gateway_refund_id=refund.get("id"),
                gateway_status="refunded",
                amount_cents=refund.get("amount"),
            )
        except stripe.StripeError as e:
            logger.error("Refund failed", invoice_id=invoice_id, error=str(e))
            return RefundResult(success=False, gateway_status="failed", failure_reason=str(e))
