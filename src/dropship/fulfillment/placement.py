"""Supplier order placement for paid Lots.

Runs right after payment reconciliation and again from the sweep's retry
step. Before ordering it re-checks supplier stock and price; permanent
supplier failures move the Lot to a refundable status, transient ones leave
it PAID with an error message for the next sweep.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from dropship.container import Adapters
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.reconciliation.address import (
    AddressSources,
    load_stored_address,
    missing_fields,
    resolve_address,
    to_shipping_address,
)
from dropship.reconciliation.buyers import lookup_buyer
from dropship.supplier.port import OrderFailure, OrderRequest, SupplierError

logger = structlog.get_logger(__name__)

# Supplier cost may rise this much over the recorded cost before ordering aborts
PRICE_TOLERANCE = 1.20

DEFAULT_QUANTITY = 1

ADDRESS_HOLD_STATUSES = (LotStatus.ADDRESS_INCOMPLETE, LotStatus.NO_ADDRESS)


@dataclass(frozen=True)
class FulfillmentResult:
    lot_id: str
    success: bool
    status: str
    error: str | None = None


class FulfillmentService:
    def __init__(self, adapters: Adapters, store: LotStore | None = None):
        self.adapters = adapters
        self.store = store or LotStore()

    def _result(self, lot_id: str, success: bool, error: str | None = None) -> FulfillmentResult:
        lot = self.store.get(lot_id)
        return FulfillmentResult(lot_id=lot_id, success=success, status=lot.status, error=error)

    def _fail_permanently(self, lot: Lot, status: LotStatus, message: str) -> FulfillmentResult:
        lot_id = str(lot.id)
        if status == LotStatus.CJ_OUT_OF_STOCK:
            self.store.update(lot_id, lambda current: current.mark_out_of_stock(message))
        else:
            self.store.update(lot_id, lambda current: current.mark_price_changed(message))
        self.adapters.alerts.warning(f'Lot {lot_id} ("{lot.product_name}"): {message}. Queued for refund.')
        return self._result(lot_id, False, message)

    def _order_number(self, lot: Lot) -> str:
        epoch_ms = int(datetime.now(UTC).timestamp() * 1000)
        return f"{self.adapters.settings.order_number_prefix}-{lot.item_id or lot.id}-{epoch_ms}"

    def fulfill_lot(self, lot_id: str) -> FulfillmentResult:
        """Place, pay and confirm the supplier order for a PAID Lot."""
        try:
            return self._fulfill(lot_id)
        except CONCURRENT_WRITE_ERRORS as e:
            # Another invocation moved the Lot first
            logger.info("Lot already advanced, skipping fulfillment", lot_id=lot_id, error=str(e))
            return self._result(lot_id, False, "Lot already advanced")
        except Exception as e:
            message = f"Fulfillment error: {e}"
            logger.error("Fulfillment failed", lot_id=lot_id, error=str(e))
            self.store.update(lot_id, lambda current: current.record_error(message))
            self.adapters.alerts.critical(f"Lot {lot_id}: {message}")
            return self._result(lot_id, False, message)

    def _fulfill(self, lot_id: str) -> FulfillmentResult:
        lot = self.store.get(lot_id)
        if lot.current_status != LotStatus.PAID:
            return FulfillmentResult(
                lot_id=lot_id, success=False, status=lot.status, error=f"Lot is {lot.status}, not PAID"
            )

        address = load_stored_address(lot.shipping_address)
        if address is None:
            message = "No shipping address on file"
            self.store.update(lot_id, lambda current: current.flag_address_problem(LotStatus.NO_ADDRESS, message))
            self.adapters.alerts.critical(f"Lot {lot_id}: {message}. Cannot fulfill.")
            return self._result(lot_id, False, message)

        missing = missing_fields(address)
        if missing:
            message = f"Shipping address incomplete, missing: {', '.join(missing)}"
            self.store.update(
                lot_id, lambda current: current.flag_address_problem(LotStatus.ADDRESS_INCOMPLETE, message)
            )
            self.adapters.alerts.critical(f"Lot {lot_id}: {message}. Cannot fulfill.")
            return self._result(lot_id, False, message)

        supplier = self.adapters.supplier

        # Stock re-check; a failed lookup does not block ordering
        try:
            stock = supplier.get_stock(lot.supplier_variant_id)
            if stock < 1:
                return self._fail_permanently(lot, LotStatus.CJ_OUT_OF_STOCK, "Supplier variant is out of stock")
        except SupplierError as e:
            logger.warning("Stock re-check failed, continuing", lot_id=lot_id, error=str(e))

        # Price re-check against the cost the reserve was computed from
        try:
            current_cost = supplier.get_variant_cost(lot.supplier_variant_id)
            if current_cost > lot.supplier_cost_cents * PRICE_TOLERANCE:
                return self._fail_permanently(
                    lot,
                    LotStatus.CJ_PRICE_CHANGED,
                    f"Supplier price rose from {lot.supplier_cost_cents} to {current_cost} cents",
                )
        except SupplierError as e:
            logger.warning("Price re-check failed, continuing", lot_id=lot_id, error=str(e))

        result = supplier.place_order(
            OrderRequest(
                order_number=self._order_number(lot),
                variant_id=lot.supplier_variant_id,
                quantity=DEFAULT_QUANTITY,
                address=to_shipping_address(address),
                logistic_name=lot.logistic_name or self.adapters.settings.default_logistic_name,
                from_country=lot.from_country or "CN",
            )
        )

        if not result.success:
            reason = result.failure_reason or "Supplier order failed"
            if result.failure == OrderFailure.OUT_OF_STOCK:
                return self._fail_permanently(lot, LotStatus.CJ_OUT_OF_STOCK, reason)
            if result.failure == OrderFailure.PRICE_CHANGED:
                return self._fail_permanently(lot, LotStatus.CJ_PRICE_CHANGED, reason)

            self.store.update(lot_id, lambda current: current.record_error(reason))
            if result.failure == OrderFailure.TRANSIENT:
                logger.warning("Supplier order attempt timed out, will retry", lot_id=lot_id, error=reason)
            else:
                self.adapters.alerts.critical(f"Lot {lot_id}: supplier order failed: {reason}")
            return self._result(lot_id, False, reason)

        total_cost = result.total_cost_cents or lot.supplier_total_cents
        self.store.update(
            lot_id,
            lambda current: current.mark_supplier_ordered(result.order_id, result.order_number, total_cost),
        )
        logger.info("Supplier order placed", lot_id=lot_id, supplier_order_id=result.order_id)

        if not supplier.pay_order(result.order_id):
            message = "Supplier order placed but payment failed"
            self.store.update(lot_id, lambda current: current.record_error(message))
            self.adapters.alerts.warning(f"Lot {lot_id}: {message} (order {result.order_id})")
            return self._result(lot_id, False, message)

        self.store.update(lot_id, lambda current: current.mark_supplier_paid())

        if not supplier.confirm_order(result.order_id):
            logger.warning("Supplier order confirmation failed", lot_id=lot_id, supplier_order_id=result.order_id)

        return self._result(lot_id, True)

    def store_shipping_address(self, lot_id: str, address: dict) -> Lot:
        return self.store.update(
            lot_id,
            lambda current: current.record_shipping(address.get("name") or "", json.dumps(address)),
        )

    def retry_stale_paid(self, older_than_minutes: int | None = None) -> dict:
        """Re-attempt order placement for PAID Lots that have no supplier order."""
        threshold = older_than_minutes if older_than_minutes is not None else self.adapters.settings.stale_paid_minutes
        now = datetime.now(UTC)
        attempted = succeeded = 0
        for lot in self.store.by_status(LotStatus.PAID):
            if lot.supplier_order_id:
                continue
            if lot.updated_at and (now - _aware(lot.updated_at)).total_seconds() < threshold * 60:
                continue
            attempted += 1
            if self.fulfill_lot(str(lot.id)).success:
                succeeded += 1
        return {"processed": attempted, "succeeded": succeeded}

    def retry_address_holds(self) -> dict:
        """Re-resolve the address of Lots held for one and fulfill those now complete."""
        checked = resumed = succeeded = 0
        for lot in self.store.by_status(*ADDRESS_HOLD_STATUSES):
            checked += 1
            address = self._fresh_address(lot)
            if address is None or missing_fields(address):
                continue

            lot_id = str(lot.id)
            try:
                self.store.update(
                    lot_id,
                    lambda current: current.resume_after_address_fix(address.get("name") or "", json.dumps(address)),
                )
            except CONCURRENT_WRITE_ERRORS as e:
                logger.info("Lot moved during address retry", lot_id=lot_id, error=str(e))
                continue

            resumed += 1
            logger.info("Shipping address completed, resuming fulfillment", lot_id=lot_id)
            if self.fulfill_lot(lot_id).success:
                succeeded += 1
        return {"checked": checked, "resumed": resumed, "succeeded": succeeded}

    def _fresh_address(self, lot: Lot) -> dict | None:
        buyer = lookup_buyer(self.adapters.auction, lot.winner_user_id)
        invoice = None
        if lot.invoice_id:
            try:
                invoice = self.adapters.gateway.get_invoice(lot.invoice_id)
            except Exception as e:
                logger.warning("Invoice re-fetch failed", lot_id=str(lot.id), error=str(e))
        return resolve_address(AddressSources(buyer=buyer, invoice=invoice))


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
