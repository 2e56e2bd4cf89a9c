"""Supplier webhook reconciliation.

A supplier payload names a supplier order and carries an ``orderStatus``,
a tracking number, or both. Order-status changes drive Lot status and are
the only path that emails the buyer. Logistics updates record tracking and
move the Lot to SHIPPED on the first tracking number, or to DELIVERED on a
delivery signal, without notifying anyone.

The supplier reports progress it made on its own side, so a Lot is walked
forward through the intermediate fulfillment statuses (each one a valid
edge) rather than written straight to the reported status.
"""

import hmac
import json

import structlog

from dropship.container import Adapters
from dropship.ledger.processed_event import EventSource, claim_event, release_event
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.notification.notification import NotificationType
from dropship.notification.outbox import NotificationOutbox
from dropship.reconciliation.buyers import buyer_email, lookup_buyer

logger = structlog.get_logger(__name__)

FULFILLMENT_PATH = (LotStatus.CJ_ORDERED, LotStatus.CJ_PAID, LotStatus.SHIPPED, LotStatus.DELIVERED)

ORDER_STATUS_MAP = {
    "SHIPPED": LotStatus.SHIPPED,
    "DELIVERED": LotStatus.DELIVERED,
    "CANCELLED": LotStatus.CANCELLED,
}

_NOTIFICATIONS = {
    LotStatus.SHIPPED: NotificationType.ORDER_SHIPPED,
    LotStatus.DELIVERED: NotificationType.ORDER_DELIVERED,
    LotStatus.CANCELLED: NotificationType.ORDER_CANCELLED,
}


def authenticate_supplier(signature: str, authorization: str, secret: str) -> bool:
    """Accept the shared secret from ``x-cj-signature`` or an ``Authorization: Bearer`` header."""
    if not secret:
        return False

    signature = (signature or "").strip()
    if signature:
        return hmac.compare_digest(signature.encode(), secret.encode())

    scheme, _, token = (authorization or "").strip().partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return hmac.compare_digest(token.strip().encode(), secret.encode())

    return False


def tracking_number_of(payload: dict) -> str | None:
    return payload.get("trackNumber") or payload.get("trackingNumber")


def idempotency_key(payload: dict) -> str:
    """The supplier's request id, else a key built from the fields that identify the update."""
    if payload.get("requestId"):
        return str(payload["requestId"])
    parts = [
        payload.get("orderId"),
        payload.get("orderStatus"),
        tracking_number_of(payload),
        payload.get("trackingStatus"),
        payload.get("deliveryTime"),
    ]
    return "cj-" + "-".join(str(part) for part in parts if part)


def _step(lot: Lot, target: LotStatus, tracking_number=None, tracking_carrier=None) -> None:
    if target == LotStatus.CJ_PAID:
        lot.mark_supplier_paid()
    elif target == LotStatus.SHIPPED:
        lot.mark_shipped(tracking_number=tracking_number, tracking_carrier=tracking_carrier)
    elif target == LotStatus.DELIVERED:
        lot.mark_delivered()


def advance_fulfillment(
    store: LotStore,
    lot_id: str,
    target: LotStatus,
    tracking_number: str | None = None,
    tracking_carrier: str | None = None,
) -> bool:
    """Walk the Lot along the fulfillment path up to ``target``.

    Returns False when the Lot is off the path or already at or past
    ``target``; a stale update is a no-op.
    """
    lot = store.get(lot_id)
    if lot.current_status not in FULFILLMENT_PATH:
        logger.info("Lot not in fulfillment, update ignored", lot_id=lot_id, status=lot.status, target=target.value)
        return False

    start = FULFILLMENT_PATH.index(lot.current_status)
    end = FULFILLMENT_PATH.index(target)
    if start >= end:
        return False

    for status in FULFILLMENT_PATH[start + 1 : end + 1]:
        store.update(
            lot_id,
            lambda current, status=status: _step(current, status, tracking_number, tracking_carrier),
        )
    return True


class SupplierEventHandler:
    def __init__(self, adapters: Adapters, store: LotStore | None = None, outbox: NotificationOutbox | None = None):
        self.adapters = adapters
        self.store = store or LotStore()
        self.outbox = outbox or NotificationOutbox(adapters.email)

    def process(self, payload: dict) -> tuple[int, dict]:
        """Reconcile one authenticated supplier payload; returns an HTTP status and body."""
        order_id = payload.get("orderId")
        if not order_id:
            logger.warning("Supplier payload missing orderId")
            return 400, {"error": "Missing orderId"}

        lot = self.store.by_supplier_order(str(order_id))
        if lot is None:
            logger.warning("No lot for supplier order", supplier_order_id=order_id)
            return 404, {"error": "Unknown order"}

        key = idempotency_key(payload)
        if not claim_event(EventSource.SUPPLIER, key, event_type="order", payload=json.dumps(payload)):
            return 200, {"status": "ignored"}

        lot_id = str(lot.id)
        try:
            if payload.get("orderStatus"):
                self._handle_order_update(lot_id, payload)
            if tracking_number_of(payload):
                self._handle_logistics_update(lot_id, payload)
        except Exception as e:
            release_event(EventSource.SUPPLIER, key)
            logger.error("Supplier event handling failed", lot_id=lot_id, error=str(e))
            return 500, {"error": "Internal server error"}

        return 200, {"status": "ok", "lot_id": lot_id, "lot_status": self.store.get(lot_id).status}

    def _advance(self, lot_id: str, target: LotStatus, tracking_number=None, tracking_carrier=None) -> bool:
        return advance_fulfillment(self.store, lot_id, target, tracking_number, tracking_carrier)

    # -------------------------------------------------------------------
    # Order status updates
    # -------------------------------------------------------------------
    def _handle_order_update(self, lot_id: str, payload: dict) -> None:
        supplier_status = str(payload["orderStatus"])
        self.store.update(lot_id, lambda current: current.record_supplier_status(supplier_status))

        target = ORDER_STATUS_MAP.get(supplier_status)
        if target is None:
            logger.info("Supplier status recorded", lot_id=lot_id, supplier_status=supplier_status)
            return

        if target == LotStatus.CANCELLED:
            try:
                self.store.update(lot_id, lambda current: current.cancel("Supplier order was cancelled"))
            except CONCURRENT_WRITE_ERRORS:
                logger.info("Lot already terminal, cancellation ignored", lot_id=lot_id)
                return
            self.adapters.alerts.warning(f"Lot {lot_id}: supplier cancelled order {payload['orderId']}")
            changed = True
        else:
            changed = self._advance(
                lot_id,
                target,
                tracking_number=tracking_number_of(payload),
                tracking_carrier=payload.get("logisticName"),
            )

        if changed:
            self._notify(self.store.get(lot_id), target)

    def _notify(self, lot: Lot, status: LotStatus) -> None:
        buyer = lookup_buyer(self.adapters.auction, lot.winner_user_id)
        self.outbox.enqueue(
            _NOTIFICATIONS[status],
            buyer_email(buyer),
            str(lot.id),
            {
                "product_name": lot.product_name,
                "tracking_number": lot.tracking_number,
                "tracking_carrier": lot.tracking_carrier,
            },
        )

    # -------------------------------------------------------------------
    # Logistics updates
    # -------------------------------------------------------------------
    def _handle_logistics_update(self, lot_id: str, payload: dict) -> None:
        tracking_number = tracking_number_of(payload)
        carrier = payload.get("logisticName")
        had_tracking = bool(self.store.get(lot_id).tracking_number)

        self.store.update(lot_id, lambda current: current.update_tracking(tracking_number, carrier))

        if payload.get("trackingStatus") == "DELIVERED" or payload.get("deliveryTime"):
            self._advance(lot_id, LotStatus.DELIVERED, tracking_number, carrier)
        elif not had_tracking:
            self._advance(lot_id, LotStatus.SHIPPED, tracking_number, carrier)

        logger.info("Lot tracking updated", lot_id=lot_id, tracking_number=tracking_number)
