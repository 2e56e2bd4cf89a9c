"""Periodic sweep: catches whatever the event-driven path missed.

Three core steps run in order, each isolated so one step's exception does
not stop the next:

    poll        apply closed auction results not yet seen via webhook
    fulfillment retry order placement for stale PAID Lots
    refund      refund Lots the supplier could not fulfill

``ok`` is true only when none of the core steps raised. The financial
summary, outbox retry, address-hold retry and stuck-lot recovery are
reported alongside and never affect ``ok``.
"""

from collections.abc import Callable

import structlog

from dropship.container import Adapters
from dropship.fulfillment.placement import FulfillmentService
from dropship.fulfillment.refund import RefundService
from dropship.lot.store import LotStore
from dropship.notification.outbox import NotificationOutbox
from dropship.reconciliation.auction_events import poll_closed_sales
from dropship.sweep.financials import financial_summary
from dropship.sweep.stuck import StuckLotRecovery

logger = structlog.get_logger(__name__)

CORE_STEPS = ("poll", "fulfillment", "refund")


class SweepOrchestrator:
    def __init__(self, adapters: Adapters, store: LotStore | None = None):
        self.adapters = adapters
        self.store = store or LotStore()
        self.outbox = NotificationOutbox(adapters.email)
        self.fulfillment = FulfillmentService(adapters, self.store)
        self.refunds = RefundService(adapters, self.store, self.outbox)

    def poll(self) -> dict:
        return poll_closed_sales(self.adapters, self.store)

    def retry_fulfillment(self) -> dict:
        return self.fulfillment.retry_stale_paid()

    def process_refunds(self) -> dict:
        return self.refunds.process_refunds().to_dict()

    def retry_address_holds(self) -> dict:
        return self.fulfillment.retry_address_holds()

    def retry_notifications(self) -> dict:
        return self.outbox.retry_failed()

    def recover_stuck_lots(self) -> dict:
        return StuckLotRecovery(self.adapters, self.poll, self.store, self.fulfillment).run()

    def financials(self) -> dict:
        return financial_summary(self.store).to_dict()

    def _run_step(self, name: str, step: Callable[[], dict], alert: bool = True) -> tuple[dict, bool]:
        try:
            return {"ok": True, **step()}, True
        except Exception as e:
            logger.error("Sweep step failed", step=name, error=str(e))
            if alert:
                self.adapters.alerts.critical(f"Sweep step '{name}' failed: {e}")
            return {"ok": False, "error": str(e)}, False

    def run(self) -> dict:
        core = {
            "poll": self.poll,
            "fulfillment": self.retry_fulfillment,
            "refund": self.process_refunds,
        }
        extras = {
            "notifications": self.retry_notifications,
            "address_holds": self.retry_address_holds,
            "stuck_lots": self.recover_stuck_lots,
            "financials": self.financials,
        }

        results = {}
        ok = True
        for name, step in core.items():
            results[name], step_ok = self._run_step(name, step)
            ok = ok and step_ok
        for name, step in extras.items():
            results[name], _ = self._run_step(name, step, alert=False)

        logger.info("Sweep finished", ok=ok, failed=[name for name in CORE_STEPS if not results[name]["ok"]])
        return {"ok": ok, "results": results}
