"""Detection and recovery of Lots stalled in an intermediate status.

Thresholds (from ``Settings``):
    AUCTION_CLOSED past ``stale_auction_closed_minutes``  -> re-run the closed-sales poll
    PAID past ``stale_paid_minutes``                      -> retry order placement
    CJ_ORDERED past ``stale_ordered_minutes``             -> re-check the supplier order
    any of the above past ``stuck_alert_minutes``         -> critical alert
"""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from dropship.container import Adapters
from dropship.fulfillment.placement import FulfillmentService
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.reconciliation.supplier_events import advance_fulfillment

logger = structlog.get_logger(__name__)

STALLABLE_STATUSES = (LotStatus.AUCTION_CLOSED, LotStatus.PAID, LotStatus.CJ_ORDERED)

SUPPLIER_PAID_STATUSES = frozenset({"UNSHIPPED", "PAID"})
SUPPLIER_SHIPPED_STATUSES = frozenset({"SHIPPED", "IN_TRANSIT"})
SUPPLIER_DEAD_STATUSES = frozenset({"CANCELLED", "FAILED", "REFUNDED"})


def age_minutes(lot: Lot, now: datetime | None = None) -> float:
    """Minutes since the Lot last changed."""
    stamp = lot.updated_at or lot.created_at
    if stamp is None:
        return 0.0
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=UTC)
    return ((now or datetime.now(UTC)) - stamp).total_seconds() / 60


class StuckLotRecovery:
    def __init__(
        self,
        adapters: Adapters,
        poll: Callable[[], dict],
        store: LotStore | None = None,
        fulfillment: FulfillmentService | None = None,
    ):
        self.adapters = adapters
        self.poll = poll
        self.store = store or LotStore()
        self.fulfillment = fulfillment or FulfillmentService(adapters, self.store)

    def _stale(self, status: LotStatus, minutes: int) -> list[Lot]:
        return [lot for lot in self.store.by_status(status) if age_minutes(lot) > minutes]

    def run(self) -> dict:
        settings = self.adapters.settings
        result = {"auction_closed_retried": 0, "paid_retried": 0, "cj_ordered_checked": 0, "alerts_sent": 0}

        stale_closed = self._stale(LotStatus.AUCTION_CLOSED, settings.stale_auction_closed_minutes)
        if stale_closed:
            logger.warning("Stale AUCTION_CLOSED lots, re-running poll", count=len(stale_closed))
            try:
                self.poll()
                result["auction_closed_retried"] = len(stale_closed)
            except Exception as e:
                logger.error("Poll failed during stuck lot recovery", error=str(e))

        if self._stale(LotStatus.PAID, settings.stale_paid_minutes):
            retried = self.fulfillment.retry_stale_paid(settings.stale_paid_minutes)
            result["paid_retried"] = retried["processed"]

        for lot in self._stale(LotStatus.CJ_ORDERED, settings.stale_ordered_minutes):
            if self._recheck_supplier_order(lot):
                result["cj_ordered_checked"] += 1

        for status in STALLABLE_STATUSES:
            for lot in self._stale(status, settings.stuck_alert_minutes):
                hours = age_minutes(lot) / 60
                self.adapters.alerts.critical(
                    f"STUCK LOT needs human intervention: lot={lot.id} status={lot.status} "
                    f'product="{lot.product_name}" stuck for {hours:.1f}h'
                )
                result["alerts_sent"] += 1

        return result

    def _recheck_supplier_order(self, lot: Lot) -> bool:
        lot_id = str(lot.id)
        if not lot.supplier_order_id:
            logger.warning("CJ_ORDERED lot has no supplier order, skipping", lot_id=lot_id)
            return False

        try:
            detail = self.adapters.supplier.get_order_status(lot.supplier_order_id)
        except Exception as e:
            logger.error("Supplier order check failed", lot_id=lot_id, error=str(e))
            return False
        if not detail:
            return False

        supplier_status = (detail.get("status") or "").upper()
        logger.info("Supplier order checked", lot_id=lot_id, supplier_status=supplier_status)

        try:
            if supplier_status in SUPPLIER_PAID_STATUSES:
                advance_fulfillment(self.store, lot_id, LotStatus.CJ_PAID)
            elif supplier_status in SUPPLIER_SHIPPED_STATUSES:
                advance_fulfillment(
                    self.store,
                    lot_id,
                    LotStatus.SHIPPED,
                    tracking_number=detail.get("tracking_number"),
                    tracking_carrier=detail.get("tracking_carrier"),
                )
            elif supplier_status in SUPPLIER_DEAD_STATUSES:
                message = f"Supplier order {lot.supplier_order_id} status: {supplier_status}"
                self.store.update(lot_id, lambda current: current.cancel(message))
        except CONCURRENT_WRITE_ERRORS as e:
            logger.info("Lot moved during supplier check", lot_id=lot_id, error=str(e))
        return True
