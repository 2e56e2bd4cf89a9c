"""Application tests for supplier order placement."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain

from dropship.alerts.sink import AlertSeverity
from dropship.auction.port import Buyer
from dropship.fulfillment.placement import FulfillmentService
from dropship.gateway.port import Invoice
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS
from dropship.supplier.port import OrderFailure

ADDRESS = {
    "name": "Ada Buyer",
    "line1": "1 Market St",
    "city": "San Francisco",
    "state": "CA",
    "postal_code": "94105",
    "country": "US",
}


def _placements(adapters):
    return [call for call in adapters.supplier.calls if call["method"] == "place_order"]


def _age(lot, minutes):
    repo = current_domain.repository_for(Lot)
    stored = repo.get(str(lot.id))
    stored.updated_at = datetime.now(UTC) - timedelta(minutes=minutes)
    repo.add(stored)


class TestSuccessfulPlacement:
    def test_paid_lot_ordered_and_paid(self, adapters, store, make_lot):
        adapters.supplier.configure(order_cost_cents=1600)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.success
        assert result.status == LotStatus.CJ_PAID.value
        refreshed = store.get(str(lot.id))
        assert refreshed.supplier_order_id.startswith("cj-")
        assert refreshed.total_cost_cents == 1600
        assert refreshed.profit_cents == 900
        assert refreshed.paid_at is not None

    def test_order_number_and_logistics(self, adapters, make_lot):
        lot = make_lot(LotStatus.PAID)

        FulfillmentService(adapters).fulfill_lot(str(lot.id))

        request = _placements(adapters)[0]["request"]
        assert request.order_number.startswith(f"DS-{lot.item_id}-")
        assert request.logistic_name == "CJPacket"
        assert request.quantity == 1
        assert request.variant_id == lot.supplier_variant_id

    def test_recorded_cost_used_when_supplier_reports_none(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID)

        FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert store.get(str(lot.id)).total_cost_cents == 1500

    def test_confirms_order(self, adapters, make_lot):
        lot = make_lot(LotStatus.PAID)

        FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert [call for call in adapters.supplier.calls if call["method"] == "confirm_order"]

    def test_failed_lookups_do_not_block(self, adapters, store, make_lot):
        adapters.supplier.configure(lookups_fail=True)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.success
        assert store.get(str(lot.id)).status == LotStatus.CJ_PAID.value

    def test_price_within_tolerance_proceeds(self, adapters, make_lot):
        lot = make_lot(LotStatus.PAID)
        adapters.supplier.costs[lot.supplier_variant_id] = 1200

        assert FulfillmentService(adapters).fulfill_lot(str(lot.id)).success


class TestGuards:
    def test_only_paid_lots(self, adapters, make_lot):
        lot = make_lot(LotStatus.AUCTION_CLOSED)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert not result.success
        assert result.status == LotStatus.AUCTION_CLOSED.value
        assert not _placements(adapters)

    def test_second_attempt_is_a_no_op(self, adapters, make_lot):
        lot = make_lot(LotStatus.PAID)
        service = FulfillmentService(adapters)

        service.fulfill_lot(str(lot.id))
        second = service.fulfill_lot(str(lot.id))

        assert not second.success
        assert second.status == LotStatus.CJ_PAID.value
        assert len(_placements(adapters)) == 1

    def test_missing_address(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID, address=None)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.NO_ADDRESS.value
        assert store.get(str(lot.id)).error_message == "No shipping address on file"
        assert adapters.alerts.by_severity(AlertSeverity.CRITICAL)
        assert not _placements(adapters)

    def test_incomplete_address_lists_fields(self, adapters, store, make_lot):
        address = {"name": "Ada Buyer", "line1": "1 Market St", "city": "", "state": "CA", "country": "US"}
        lot = make_lot(LotStatus.PAID, address=address)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.ADDRESS_INCOMPLETE.value
        message = store.get(str(lot.id)).error_message
        assert "city" in message
        assert "postal_code" in message
        assert not _placements(adapters)


class TestPermanentFailures:
    def test_out_of_stock_on_recheck(self, adapters, make_lot):
        lot = make_lot(LotStatus.PAID)
        adapters.supplier.stock[lot.supplier_variant_id] = 0

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.CJ_OUT_OF_STOCK.value
        assert not _placements(adapters)
        assert "Queued for refund" in adapters.alerts.alerts[-1]["message"]

    def test_price_rise_beyond_tolerance(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID)
        adapters.supplier.costs[lot.supplier_variant_id] = 1201

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.CJ_PRICE_CHANGED.value
        assert "1201" in store.get(str(lot.id)).error_message
        assert not _placements(adapters)

    def test_supplier_reports_out_of_stock(self, adapters, make_lot):
        adapters.supplier.configure(order_failure=OrderFailure.OUT_OF_STOCK)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.CJ_OUT_OF_STOCK.value

    def test_supplier_reports_price_change(self, adapters, make_lot):
        adapters.supplier.configure(order_failure=OrderFailure.PRICE_CHANGED)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.CJ_PRICE_CHANGED.value


class TestRecoverableFailures:
    def test_transient_failure_stays_paid(self, adapters, store, make_lot):
        adapters.supplier.configure(order_failure=OrderFailure.TRANSIENT)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.PAID.value
        assert store.get(str(lot.id)).error_message
        assert not adapters.alerts.by_severity(AlertSeverity.CRITICAL)

    def test_other_failure_alerts(self, adapters, make_lot):
        adapters.supplier.configure(order_failure=OrderFailure.OTHER)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert result.status == LotStatus.PAID.value
        assert adapters.alerts.by_severity(AlertSeverity.CRITICAL)

    def test_supplier_payment_failure_leaves_ordered(self, adapters, store, make_lot):
        adapters.supplier.configure(pay_succeeds=False)
        lot = make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).fulfill_lot(str(lot.id))

        assert not result.success
        refreshed = store.get(str(lot.id))
        assert refreshed.status == LotStatus.CJ_ORDERED.value
        assert refreshed.error_message == "Supplier order placed but payment failed"


class TestRetryStalePaid:
    def test_retries_only_stale_lots(self, adapters, store, make_lot):
        stale = make_lot(LotStatus.PAID)
        fresh = make_lot(LotStatus.PAID)
        _age(stale, 45)

        result = FulfillmentService(adapters).retry_stale_paid(older_than_minutes=30)

        assert result == {"processed": 1, "succeeded": 1}
        assert store.get(str(stale.id)).status == LotStatus.CJ_PAID.value
        assert store.get(str(fresh.id)).status == LotStatus.PAID.value

    def test_zero_threshold_retries_everything(self, adapters, make_lot):
        make_lot(LotStatus.PAID)
        make_lot(LotStatus.PAID)

        result = FulfillmentService(adapters).retry_stale_paid(older_than_minutes=0)

        assert result["processed"] == 2


class TestConcurrentWriters:
    def test_stale_copy_cannot_overwrite(self, store, make_lot):
        lot = make_lot(LotStatus.PAID)
        first = store.get(str(lot.id))
        second = store.get(str(lot.id))

        first.mark_supplier_ordered("cj-first", "DS-1", 1500)
        store.add(first)
        second.mark_supplier_ordered("cj-second", "DS-2", 1500)

        with pytest.raises(CONCURRENT_WRITE_ERRORS):
            store.add(second)
        assert store.get(str(lot.id)).supplier_order_id == "cj-first"

    def test_losing_writer_skips_quietly(self, adapters, racing_store, make_lot):
        lot = make_lot(LotStatus.PAID)
        racing_store.rival_change = lambda current: current.mark_supplier_ordered("cj-rival", "DS-R", 1500)

        result = FulfillmentService(adapters, racing_store).fulfill_lot(str(lot.id))

        assert not result.success
        assert result.status == LotStatus.CJ_ORDERED.value
        assert result.error == "Lot already advanced"
        refreshed = racing_store.get(str(lot.id))
        assert refreshed.supplier_order_id == "cj-rival"
        assert refreshed.error_message is None
        assert not adapters.alerts.by_severity(AlertSeverity.CRITICAL)


class TestAddressHolds:
    def test_completed_profile_address_resumes_fulfillment(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID, address=None)
        service = FulfillmentService(adapters)
        service.fulfill_lot(str(lot.id))
        adapters.auction.add_buyer(Buyer(user_id="buyer-1", email="ada@example.com", shipping_address=ADDRESS))

        result = service.retry_address_holds()

        assert result == {"checked": 1, "resumed": 1, "succeeded": 1}
        refreshed = store.get(str(lot.id))
        assert refreshed.status == LotStatus.CJ_PAID.value
        assert refreshed.shipping_name == "Ada Buyer"
        assert len(_placements(adapters)) == 1

    def test_invoice_shipping_used_when_profile_has_none(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID, address=None)
        FulfillmentService(adapters).fulfill_lot(str(lot.id))
        adapters.gateway.add_invoice(Invoice(id=lot.invoice_id, shipping=ADDRESS))

        result = FulfillmentService(adapters).retry_address_holds()

        assert result["resumed"] == 1
        assert store.get(str(lot.id)).status == LotStatus.CJ_PAID.value

    def test_still_incomplete_address_stays_held(self, adapters, store, make_lot):
        lot = make_lot(LotStatus.PAID, address=None)
        FulfillmentService(adapters).fulfill_lot(str(lot.id))
        adapters.auction.add_buyer(Buyer(user_id="buyer-1", shipping_address={**ADDRESS, "city": " "}))

        result = FulfillmentService(adapters).retry_address_holds()

        assert result == {"checked": 1, "resumed": 0, "succeeded": 0}
        assert store.get(str(lot.id)).status == LotStatus.NO_ADDRESS.value
        assert not _placements(adapters)


class TestFreeTextFields:
    def test_address_reaches_supplier_unescaped(self, adapters, make_lot):
        address = {**ADDRESS, "name": "Ada <Buyer>", "line1": "Unit 4 & 5 Market St"}
        lot = make_lot(LotStatus.PAID, address=address)

        FulfillmentService(adapters).fulfill_lot(str(lot.id))

        request = _placements(adapters)[0]["request"]
        assert request.address.line1 == "Unit 4 & 5 Market St"
        assert request.address.name == "Ada <Buyer>"
