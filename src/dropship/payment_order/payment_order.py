"""PaymentOrder aggregate: local link between an auction order and its invoice.

The auction platform creates one payment order per winning buyer per sale
and the payment gateway bills it through an invoice. Keeping the link
locally lets reconciliation bridge an invoice back to its sale when the
invoice payload carries no usable metadata.

State Machine:
    PENDING → PAID → REFUNDED
    PENDING → PAYMENT_FAILED → PAID
    PENDING | PAYMENT_FAILED → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain

from dropship.domain import dropship


class PaymentOrderStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


_VALID_TRANSITIONS = {
    PaymentOrderStatus.PENDING: {
        PaymentOrderStatus.PAID,
        PaymentOrderStatus.PAYMENT_FAILED,
        PaymentOrderStatus.CANCELLED,
    },
    PaymentOrderStatus.PAYMENT_FAILED: {
        PaymentOrderStatus.PAID,
        PaymentOrderStatus.CANCELLED,
    },
    PaymentOrderStatus.PAID: {PaymentOrderStatus.REFUNDED},
    PaymentOrderStatus.REFUNDED: set(),
    PaymentOrderStatus.CANCELLED: set(),
}


@dropship.aggregate
class PaymentOrder:
    auction_order_id = String(max_length=100, required=True, unique=True)
    sale_id = String(max_length=100, required=True)
    user_id = String(max_length=100)
    invoice_id = String(max_length=100)
    amount_cents = Integer()
    status = String(choices=PaymentOrderStatus, default=PaymentOrderStatus.PENDING.value)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, auction_order_id, sale_id, user_id=None, invoice_id=None, amount_cents=None):
        now = datetime.now(UTC)
        return cls(
            auction_order_id=auction_order_id,
            sale_id=sale_id,
            user_id=user_id,
            invoice_id=invoice_id,
            amount_cents=amount_cents,
            status=PaymentOrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

    def _assert_can_transition(self, target_status):
        current = PaymentOrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _move(self, target_status):
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = datetime.now(UTC)

    def mark_paid(self, invoice_id=None):
        self._move(PaymentOrderStatus.PAID)
        if invoice_id:
            self.invoice_id = invoice_id

    def mark_failed(self):
        self._move(PaymentOrderStatus.PAYMENT_FAILED)

    def mark_refunded(self):
        self._move(PaymentOrderStatus.REFUNDED)

    def cancel(self):
        self._move(PaymentOrderStatus.CANCELLED)


def find_by_invoice(invoice_id: str) -> PaymentOrder | None:
    repo = current_domain.repository_for(PaymentOrder)
    items = repo._dao.query.filter(invoice_id=invoice_id).all().items
    return items[0] if items else None


def find_by_auction_order(auction_order_id: str) -> PaymentOrder | None:
    repo = current_domain.repository_for(PaymentOrder)
    items = repo._dao.query.filter(auction_order_id=auction_order_id).all().items
    return items[0] if items else None


def record_payment_order(auction_order_id, sale_id, user_id=None, invoice_id=None, amount_cents=None) -> PaymentOrder:
    """Insert the link, or attach the invoice to an existing one.

    An order keeps its first invoice unless that invoice failed and the
    buyer was billed again.
    """
    repo = current_domain.repository_for(PaymentOrder)
    order = find_by_auction_order(auction_order_id)
    if order is None:
        order = PaymentOrder.create(
            auction_order_id=auction_order_id,
            sale_id=sale_id,
            user_id=user_id,
            invoice_id=invoice_id,
            amount_cents=amount_cents,
        )
    elif invoice_id and invoice_id != order.invoice_id and (
        not order.invoice_id or order.status == PaymentOrderStatus.PAYMENT_FAILED.value
    ):
        order.invoice_id = invoice_id
        order.updated_at = datetime.now(UTC)
    repo.add(order)
    return order
