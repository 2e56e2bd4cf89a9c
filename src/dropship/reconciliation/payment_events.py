"""Payment gateway event reconciliation.

Handles ``invoice.paid`` / ``invoice.payment_succeeded`` and
``invoice.payment_failed``. Each event is claimed in the processed-events
ledger before any write; a duplicate delivery is acknowledged and ignored.
If handling fails the claim is released so the gateway's redelivery is
processed again.
"""

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.utils.globals import current_domain

from dropship.container import Adapters
from dropship.fulfillment.placement import FulfillmentService
from dropship.gateway.port import Invoice, PaymentEvent
from dropship.ledger.processed_event import EventSource, claim_event, release_event
from dropship.lot.lot import Lot
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.notification.notification import NotificationType
from dropship.notification.outbox import NotificationOutbox
from dropship.payment_order.payment_order import (
    PaymentOrder,
    PaymentOrderStatus,
    find_by_invoice,
    record_payment_order,
)
from dropship.reconciliation.address import AddressSources, resolve_address
from dropship.reconciliation.buyers import buyer_email, lookup_buyer
from dropship.reconciliation.resolvers import ResolutionContext, resolve_lots

logger = structlog.get_logger(__name__)

PAID_EVENT_TYPES = frozenset({"invoice.paid", "invoice.payment_succeeded"})
FAILED_EVENT_TYPES = frozenset({"invoice.payment_failed"})


class PaymentEventHandler:
    def __init__(
        self,
        adapters: Adapters,
        store: LotStore | None = None,
        outbox: NotificationOutbox | None = None,
        fulfillment: FulfillmentService | None = None,
    ):
        self.adapters = adapters
        self.store = store or LotStore()
        self.outbox = outbox or NotificationOutbox(adapters.email)
        self.fulfillment = fulfillment or FulfillmentService(adapters, self.store)

    def process(self, event: PaymentEvent) -> dict:
        """Reconcile one verified gateway event and return a structured result."""
        if event.type not in PAID_EVENT_TYPES | FAILED_EVENT_TYPES or event.invoice is None:
            return {"status": "ignored", "event_type": event.type}

        if not claim_event(EventSource.PAYMENT, event.id, event_type=event.type, payload=event.invoice.id):
            return {"status": "duplicate", "event_id": event.id}

        try:
            if event.type in PAID_EVENT_TYPES:
                lots = self._handle_paid(event.invoice)
            else:
                lots = self._handle_failed(event.invoice)
        except Exception as e:
            release_event(EventSource.PAYMENT, event.id)
            logger.error("Payment event handling failed", event_id=event.id, event_type=event.type, error=str(e))
            self.adapters.alerts.critical(f"Payment event {event.id} ({event.type}) failed: {e}")
            return {"status": "error", "event_id": event.id, "error": str(e)}

        return {"status": "processed", "event_id": event.id, "lots": lots}

    # -------------------------------------------------------------------
    # invoice paid
    # -------------------------------------------------------------------
    def _handle_paid(self, invoice: Invoice) -> list[dict]:
        context = ResolutionContext(
            invoice=invoice,
            gateway=self.adapters.gateway,
            store=self.store,
            alerts=self.adapters.alerts,
        )
        lots = resolve_lots(context)
        _link_payment_orders(lots, invoice.id)
        self._update_payment_order(invoice.id, PaymentOrderStatus.PAID)

        shipping_invoice = invoice if invoice.shipping else (context.refetched or invoice)
        return [self._pay_lot(lot, invoice.id, shipping_invoice) for lot in lots]

    def _pay_lot(self, lot: Lot, invoice_id: str, shipping_invoice: Invoice) -> dict:
        lot_id = str(lot.id)
        try:
            self.store.update(lot_id, lambda current: current.mark_paid(invoice_id))
        except (ValidationError, ExpectedVersionError) as e:
            # Already moved by another writer, or held by another invoice
            logger.info("Lot not awaiting payment, skipping", lot_id=lot_id, error=str(e))
            return {"lot_id": lot_id, "outcome": "skipped"}

        buyer = lookup_buyer(self.adapters.auction, lot.winner_user_id)
        self.outbox.enqueue(
            NotificationType.PAYMENT_RECEIVED,
            buyer_email(buyer, shipping_invoice.customer_email),
            lot_id,
            {"product_name": lot.product_name, "amount_cents": lot.winning_bid_cents},
        )

        address = resolve_address(AddressSources(buyer=buyer, invoice=shipping_invoice))
        if address is not None:
            self.fulfillment.store_shipping_address(lot_id, address)

        result = self.fulfillment.fulfill_lot(lot_id)
        return {"lot_id": lot_id, "outcome": result.status, "error": result.error}

    # -------------------------------------------------------------------
    # invoice payment failed
    # -------------------------------------------------------------------
    def _handle_failed(self, invoice: Invoice) -> list[dict]:
        context = ResolutionContext(
            invoice=invoice,
            gateway=self.adapters.gateway,
            store=self.store,
            alerts=self.adapters.alerts,
        )
        lots = resolve_lots(context)
        _link_payment_orders(lots, invoice.id)
        self._update_payment_order(invoice.id, PaymentOrderStatus.PAYMENT_FAILED)

        reason = f"Payment failed for invoice {invoice.id}"
        results = []
        for lot in lots:
            lot_id = str(lot.id)
            try:
                self.store.update(
                    lot_id,
                    lambda current: current.mark_payment_failed(invoice_id=invoice.id, reason=reason),
                )
                results.append({"lot_id": lot_id, "outcome": "PAYMENT_FAILED"})
            except CONCURRENT_WRITE_ERRORS as e:
                logger.info("Lot not awaiting payment, skipping", lot_id=lot_id, error=str(e))
                results.append({"lot_id": lot_id, "outcome": "skipped"})
        return results

    def _update_payment_order(self, invoice_id: str, target: PaymentOrderStatus) -> None:
        order = find_by_invoice(invoice_id)
        if order is None:
            return
        try:
            if target == PaymentOrderStatus.PAID:
                order.mark_paid(invoice_id)
            else:
                order.mark_failed()
        except ValidationError as e:
            logger.info("Payment order unchanged", invoice_id=invoice_id, status=order.status, error=str(e.messages))
            return
        current_domain.repository_for(PaymentOrder).add(order)


def _link_payment_orders(lots: list[Lot], invoice_id: str) -> None:
    """Attach the invoice to the auction payment order of each resolved Lot."""
    for lot in lots:
        if lot.auction_order_id and lot.sale_id:
            record_payment_order(
                lot.auction_order_id,
                lot.sale_id,
                user_id=lot.winner_user_id,
                invoice_id=invoice_id,
                amount_cents=lot.winning_bid_cents,
            )
