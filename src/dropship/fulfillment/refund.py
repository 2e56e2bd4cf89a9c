"""Refunds for Lots the supplier could not fulfill.

Per Lot: refund (or void) the buyer's invoice, cancel the auction
platform's payment order, cancel the Lot, mark the local payment order
refunded and email the buyer. A gateway failure leaves the Lot in its
refundable status so the next sweep tries again.
"""

from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from dropship.container import Adapters
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.notification.notification import NotificationType
from dropship.notification.outbox import NotificationOutbox
from dropship.payment_order.payment_order import PaymentOrder, find_by_invoice
from dropship.reconciliation.buyers import buyer_email, lookup_buyer

logger = structlog.get_logger(__name__)

REFUNDABLE_STATUSES = (LotStatus.CJ_OUT_OF_STOCK, LotStatus.CJ_PRICE_CHANGED)

_BUYER_REASONS = {
    LotStatus.CJ_OUT_OF_STOCK: "The item is no longer available from our supplier.",
    LotStatus.CJ_PRICE_CHANGED: (
        "The supplier price changed and we are unable to fulfill this order at the original price."
    ),
}

_GATEWAY_NOTES = {
    "refunded": "refunded",
    "voided": "invoice voided",
    "skipped": "invoice already closed",
}


def buyer_reason(status: LotStatus) -> str:
    return _BUYER_REASONS.get(status, "We were unable to fulfill your order due to a supplier issue.")


@dataclass(frozen=True)
class LotRefund:
    lot_id: str
    success: bool
    amount_cents: int = 0
    gateway_refund_id: str | None = None
    reason: str | None = None


@dataclass
class RefundSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[LotRefund] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [result.__dict__ for result in self.results],
        }


class RefundService:
    def __init__(self, adapters: Adapters, store: LotStore | None = None, outbox: NotificationOutbox | None = None):
        self.adapters = adapters
        self.store = store or LotStore()
        self.outbox = outbox or NotificationOutbox(adapters.email)

    def refund_lot(self, lot_id: str) -> LotRefund:
        lot = self.store.get(lot_id)
        status = lot.current_status
        if status not in REFUNDABLE_STATUSES:
            return LotRefund(lot_id=lot_id, success=False, reason=f"Lot is {lot.status}, not refundable")
        if not lot.invoice_id:
            message = "Refund failed: no invoice recorded"
            self.store.update(lot_id, lambda current: current.record_error(message))
            self.adapters.alerts.critical(f"Lot {lot_id}: {message}")
            return LotRefund(lot_id=lot_id, success=False, reason=message)

        logger.info("Processing refund", lot_id=lot_id, status=lot.status, invoice_id=lot.invoice_id)
        result = self.adapters.gateway.refund_invoice(lot.invoice_id, reason=status.value)
        if not result.success:
            message = f"Refund failed: {result.failure_reason}"
            self.store.update(lot_id, lambda current: current.record_error(message))
            self.adapters.alerts.critical(f"Refund failed for lot {lot_id}: {result.failure_reason}")
            return LotRefund(lot_id=lot_id, success=False, reason=message)

        if result.gateway_status == "refunded":
            amount = result.amount_cents if result.amount_cents is not None else (lot.winning_bid_cents or 0)
        else:
            amount = 0

        if lot.auction_order_id:
            self.adapters.auction.cancel_order(lot.auction_order_id)

        note = _GATEWAY_NOTES.get(result.gateway_status, result.gateway_status)
        try:
            self.store.update(lot_id, lambda current: current.cancel(f"{lot.error_message or lot.status} -> {note}"))
        except CONCURRENT_WRITE_ERRORS:
            logger.warning("Lot changed during refund", lot_id=lot_id)

        self._mark_payment_order_refunded(lot.invoice_id)
        self._notify(lot, status, amount)

        logger.info("Lot refunded", lot_id=lot_id, amount_cents=amount, gateway_status=result.gateway_status)
        return LotRefund(
            lot_id=lot_id,
            success=True,
            amount_cents=amount,
            gateway_refund_id=result.gateway_refund_id,
        )

    def _mark_payment_order_refunded(self, invoice_id: str) -> None:
        order = find_by_invoice(invoice_id)
        if order is None:
            return
        try:
            order.mark_refunded()
        except ValidationError as e:
            logger.info("Payment order unchanged", invoice_id=invoice_id, status=order.status, error=str(e.messages))
            return
        current_domain.repository_for(PaymentOrder).add(order)

    def _notify(self, lot: Lot, status: LotStatus, amount_cents: int) -> None:
        buyer = lookup_buyer(self.adapters.auction, lot.winner_user_id)
        self.outbox.enqueue(
            NotificationType.ORDER_REFUNDED,
            buyer_email(buyer),
            str(lot.id),
            {"product_name": lot.product_name, "amount_cents": amount_cents, "reason": buyer_reason(status)},
        )

    def process_refunds(self) -> RefundSummary:
        """Refund every Lot in a refundable status."""
        summary = RefundSummary()
        for lot in self.store.by_status(*REFUNDABLE_STATUSES):
            lot_id = str(lot.id)
            try:
                result = self.refund_lot(lot_id)
            except Exception as e:
                logger.error("Refund errored", lot_id=lot_id, error=str(e))
                result = LotRefund(lot_id=lot_id, success=False, reason=str(e))

            summary.total += 1
            summary.results.append(result)
            if result.success:
                summary.succeeded += 1
            else:
                summary.failed += 1

        if summary.failed:
            self.adapters.alerts.warning(
                f"Refund batch: {summary.failed} of {summary.total} refunds failed. Check logs for details."
            )
        return summary
