"""Application tests for refunds of unfulfillable Lots."""

from protean import current_domain

from dropship.alerts.sink import AlertSeverity
from dropship.auction.port import Buyer
from dropship.fulfillment.refund import RefundService, buyer_reason
from dropship.gateway.port import Invoice
from dropship.lot.lot import LotStatus
from dropship.payment_order.payment_order import (
    PaymentOrder,
    PaymentOrderStatus,
    find_by_auction_order,
    record_payment_order,
)


def _with_buyer(adapters):
    adapters.auction.add_buyer(Buyer(user_id="buyer-1", email="ada@example.com"))


def _paid_payment_order(invoice_id):
    order = record_payment_order("order-1", "sale-1", user_id="buyer-1", invoice_id=invoice_id)
    order.mark_paid(invoice_id)
    current_domain.repository_for(PaymentOrder).add(order)


class TestRefundLot:
    def test_out_of_stock_lot_refunded_and_cancelled(self, adapters, store, make_lot):
        _with_buyer(adapters)
        lot = make_lot(LotStatus.CJ_OUT_OF_STOCK)

        result = RefundService(adapters).refund_lot(str(lot.id))

        assert result.success
        assert result.amount_cents == 2500
        assert result.gateway_refund_id.startswith("fake_ref_")
        refreshed = store.get(str(lot.id))
        assert refreshed.status == LotStatus.CANCELLED.value
        assert refreshed.error_message.endswith("-> refunded")

    def test_gateway_amount_preferred(self, adapters, make_lot):
        lot = make_lot(LotStatus.CJ_PRICE_CHANGED)
        adapters.gateway.add_invoice(Invoice(id=lot.invoice_id, amount_paid_cents=2875))

        result = RefundService(adapters).refund_lot(str(lot.id))

        assert result.amount_cents == 2875

    def test_refund_reason_sent_to_gateway(self, adapters, make_lot):
        lot = make_lot(LotStatus.CJ_PRICE_CHANGED)

        RefundService(adapters).refund_lot(str(lot.id))

        call = adapters.gateway.calls[-1]
        assert call == {"method": "refund_invoice", "invoice_id": lot.invoice_id, "reason": "CJ_PRICE_CHANGED"}

    def test_buyer_notified_with_amount_and_reason(self, adapters, make_lot):
        _with_buyer(adapters)
        lot = make_lot(LotStatus.CJ_OUT_OF_STOCK)

        RefundService(adapters).refund_lot(str(lot.id))

        email = adapters.email.sent_to("ada@example.com")[0]
        assert email["subject"] == "Your order has been refunded"
        assert "$25.00" in email["body"]
        assert buyer_reason(LotStatus.CJ_OUT_OF_STOCK) in email["body"]

    def test_auction_order_cancelled(self, adapters, make_lot):
        lot = make_lot(LotStatus.CJ_OUT_OF_STOCK, auction_order_id="order-1")

        RefundService(adapters).refund_lot(str(lot.id))

        assert adapters.auction.cancelled_orders == ["order-1"]

    def test_payment_order_marked_refunded(self, adapters, make_lot):
        lot = make_lot(LotStatus.CJ_OUT_OF_STOCK)
        _paid_payment_order(lot.invoice_id)

        RefundService(adapters).refund_lot(str(lot.id))

        assert find_by_auction_order("order-1").status == PaymentOrderStatus.REFUNDED.value

    def test_gateway_failure_keeps_lot_refundable(self, adapters, store, make_lot):
        adapters.gateway.configure(should_succeed=False, failure_reason="card_processor_down")
        lot = make_lot(LotStatus.CJ_OUT_OF_STOCK)

        result = RefundService(adapters).refund_lot(str(lot.id))

        assert not result.success
        refreshed = store.get(str(lot.id))
        assert refreshed.status == LotStatus.CJ_OUT_OF_STOCK.value
        assert refreshed.error_message == "Refund failed: card_processor_down"
        assert adapters.alerts.by_severity(AlertSeverity.CRITICAL)

    def test_non_refundable_lot(self, adapters, make_lot):
        lot = make_lot(LotStatus.SHIPPED)

        result = RefundService(adapters).refund_lot(str(lot.id))

        assert not result.success
        assert adapters.gateway.calls == []


class TestProcessRefunds:
    def test_batch_summary(self, adapters, make_lot):
        make_lot(LotStatus.CJ_OUT_OF_STOCK)
        make_lot(LotStatus.CJ_PRICE_CHANGED)
        make_lot(LotStatus.PAID)

        summary = RefundService(adapters).process_refunds()

        assert summary.total == 2
        assert summary.succeeded == 2
        assert summary.failed == 0
        assert len(summary.to_dict()["results"]) == 2

    def test_failed_batch_warns(self, adapters, make_lot):
        adapters.gateway.configure(should_succeed=False)
        make_lot(LotStatus.CJ_OUT_OF_STOCK)

        summary = RefundService(adapters).process_refunds()

        assert summary.failed == 1
        assert any("Refund batch" in alert["message"] for alert in adapters.alerts.by_severity(AlertSeverity.WARNING))

    def test_refunded_lots_not_refunded_again(self, adapters, make_lot):
        make_lot(LotStatus.CJ_OUT_OF_STOCK)
        service = RefundService(adapters)

        service.process_refunds()
        second = service.process_refunds()

        assert second.total == 0
        assert len([call for call in adapters.gateway.calls if call["method"] == "refund_invoice"]) == 1
