"""Payment gateway port (abstract interface).

Reconciliation only ever sees the typed results below; adapters translate
the gateway SDK's objects into them. ``FakeGateway`` serves development and
tests, ``StripeGateway`` serves production.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Invoice:
    """The parts of a gateway invoice reconciliation needs."""

    id: str
    status: str | None = None
    metadata: dict = field(default_factory=dict)
    line_item_metadata: tuple[dict, ...] = ()
    lines_expanded: bool = False
    shipping: dict | None = None
    customer_email: str | None = None
    amount_paid_cents: int | None = None
    payment_intent_id: str | None = None
    charge_id: str | None = None


@dataclass(frozen=True)
class PaymentEvent:
    """A verified inbound gateway event."""

    id: str
    type: str
    invoice: Invoice | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None  # refunded, voided, skipped, failed
    amount_cents: int | None = None
    failure_reason: str | None = None


def invoice_from_payload(obj: dict) -> Invoice:
    """Build an ``Invoice`` from the gateway's JSON invoice object."""
    lines = obj.get("lines") or {}
    line_data = (lines.get("data") or []) if isinstance(lines, dict) else []
    shipping = obj.get("customer_shipping") or obj.get("shipping_details")

    return Invoice(
        id=obj["id"],
        status=obj.get("status"),
        metadata=dict(obj.get("metadata") or {}),
        line_item_metadata=tuple(dict(line.get("metadata") or {}) for line in line_data),
        lines_expanded=bool(line_data),
        shipping=_normalize_shipping(shipping),
        customer_email=obj.get("customer_email"),
        amount_paid_cents=obj.get("amount_paid"),
        payment_intent_id=_object_id(obj.get("payment_intent")),
        charge_id=_object_id(obj.get("charge")),
    )


def _object_id(value) -> str | None:
    if isinstance(value, dict):
        return value.get("id")
    return value


def _normalize_shipping(shipping: dict | None) -> dict | None:
    if not shipping:
        return None
    address = shipping.get("address") or {}
    return {
        "name": shipping.get("name") or "",
        "line1": address.get("line1") or "",
        "line2": address.get("line2") or "",
        "city": address.get("city") or "",
        "state": address.get("state") or "",
        "postal_code": address.get("postal_code") or "",
        "country": address.get("country") or "",
        "phone": shipping.get("phone") or "",
    }


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    @abstractmethod
    def parse_event(self, payload: str) -> PaymentEvent:
        """Parse an already-verified webhook payload."""
        ...

    @abstractmethod
    def get_invoice(self, invoice_id: str) -> Invoice | None:
        """Fetch an invoice with its line items expanded."""
        ...

    @abstractmethod
    def refund_invoice(self, invoice_id: str, reason: str) -> RefundResult:
        """Fully refund a paid invoice, or void one that was never collected."""
        ...
