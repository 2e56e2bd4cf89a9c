"""Tests for the Lot lifecycle graph and its transition gate."""

import pytest
from protean.exceptions import ValidationError

from dropship.lot.events import LotSourced, LotStatusChanged
from dropship.lot.lot import TERMINAL_STATUSES, InvalidTransition, Lot, LotStatus, can_transition

ALLOWED = {
    LotStatus.SOURCED: {LotStatus.LISTED, LotStatus.CANCELLED},
    LotStatus.LISTED: {LotStatus.PUBLISHED, LotStatus.CANCELLED},
    LotStatus.PUBLISHED: {LotStatus.AUCTION_CLOSED, LotStatus.RESERVE_NOT_MET, LotStatus.CANCELLED},
    LotStatus.AUCTION_CLOSED: {LotStatus.PAID, LotStatus.PAYMENT_FAILED, LotStatus.CANCELLED},
    LotStatus.PAID: {
        LotStatus.CJ_ORDERED,
        LotStatus.CJ_OUT_OF_STOCK,
        LotStatus.CJ_PRICE_CHANGED,
        LotStatus.ADDRESS_INCOMPLETE,
        LotStatus.NO_ADDRESS,
        LotStatus.CANCELLED,
    },
    LotStatus.CJ_ORDERED: {LotStatus.CJ_PAID, LotStatus.CANCELLED},
    LotStatus.CJ_PAID: {LotStatus.SHIPPED, LotStatus.CANCELLED},
    LotStatus.SHIPPED: {LotStatus.DELIVERED, LotStatus.CANCELLED},
    LotStatus.PAYMENT_FAILED: {LotStatus.PAID, LotStatus.CANCELLED},
    LotStatus.ADDRESS_INCOMPLETE: {LotStatus.PAID, LotStatus.CANCELLED},
    LotStatus.NO_ADDRESS: {LotStatus.PAID, LotStatus.CANCELLED},
    LotStatus.CJ_OUT_OF_STOCK: {LotStatus.CANCELLED},
    LotStatus.CJ_PRICE_CHANGED: {LotStatus.CANCELLED},
    LotStatus.DELIVERED: set(),
    LotStatus.RESERVE_NOT_MET: set(),
    LotStatus.CANCELLED: set(),
}

FORBIDDEN_PAIRS = [(source, target) for source in LotStatus for target in LotStatus if target not in ALLOWED[source]]


def _lot(status=LotStatus.SOURCED):
    lot = Lot.create(
        supplier_product_id="prod-1",
        supplier_variant_id="var-1",
        supplier_cost_cents=1000,
        supplier_shipping_cents=500,
        reserve_cents=1720,
        starting_bid_cents=237,
        product_name="Desk Lamp",
    )
    lot.status = status.value
    return lot


class TestTransitionTable:
    @pytest.mark.parametrize("source", list(LotStatus))
    def test_allowed_edges(self, source):
        for target in ALLOWED[source]:
            assert can_transition(source, target)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {LotStatus.DELIVERED, LotStatus.RESERVE_NOT_MET, LotStatus.CANCELLED}

    @pytest.mark.parametrize(("source", "target"), FORBIDDEN_PAIRS)
    def test_forbidden_edge_rejected_and_status_unchanged(self, source, target):
        lot = _lot(source)
        with pytest.raises(InvalidTransition) as exc:
            lot.transition_to(target, error_message="should not be written")

        assert exc.value.from_status == source
        assert exc.value.to_status == target
        assert lot.status == source.value
        assert lot.error_message is None

    def test_error_names_both_statuses(self):
        lot = _lot(LotStatus.SOURCED)
        with pytest.raises(InvalidTransition) as exc:
            lot.mark_paid("in_1")
        assert "SOURCED" in str(exc.value.messages)
        assert "PAID" in str(exc.value.messages)

    def test_invalid_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            _lot(LotStatus.DELIVERED).cancel("too late")


class TestCreation:
    def test_starts_sourced(self):
        lot = _lot()
        assert lot.status == LotStatus.SOURCED.value
        assert lot.created_at is not None
        assert lot.updated_at == lot.created_at

    def test_supplier_total(self):
        assert _lot().supplier_total_cents == 1500

    def test_raises_sourced_event(self):
        lot = _lot()
        assert isinstance(lot._events[0], LotSourced)
        assert lot._events[0].reserve_cents == 1720


class TestHappyPath:
    def test_walks_to_delivered(self):
        lot = _lot()
        lot.mark_listed("sale-1", "item-1")
        lot.mark_published()
        lot.close_with_winner("buyer-1", 2500, "order-1")
        lot.mark_paid("in_1")
        lot.mark_supplier_ordered("cj-1", "DS-item-1-1", 1500)
        lot.mark_supplier_paid()
        lot.mark_shipped("TRK1", "USPS")
        lot.mark_delivered()

        assert lot.status == LotStatus.DELIVERED.value
        assert lot.auction_order_id == "order-1"
        assert lot.invoice_id == "in_1"
        assert lot.supplier_order_id == "cj-1"
        assert lot.tracking_number == "TRK1"
        assert lot.supplier_order_status == "DELIVERED"

    def test_supplier_paid_realizes_profit(self):
        lot = _lot(LotStatus.CJ_ORDERED)
        lot.winning_bid_cents = 2500
        lot.total_cost_cents = 1620
        lot.mark_supplier_paid()

        assert lot.profit_cents == 880
        assert lot.paid_at is not None

    def test_status_change_raises_event(self):
        lot = _lot()
        lot.mark_listed("sale-1", "item-1")
        event = lot._events[-1]
        assert isinstance(event, LotStatusChanged)
        assert event.from_status == "SOURCED"
        assert event.to_status == "LISTED"

    def test_payment_failed_can_be_paid_later(self):
        lot = _lot(LotStatus.AUCTION_CLOSED)
        lot.mark_payment_failed(invoice_id="in_1", reason="Card declined")
        assert lot.error_message == "Card declined"

        lot.mark_paid("in_2")
        assert lot.status == LotStatus.PAID.value
        assert lot.invoice_id == "in_2"
        assert lot.error_message is None


class TestAuctionOutcome:
    def test_outcome_set_once(self):
        lot = _lot(LotStatus.PUBLISHED)
        lot.close_with_winner("buyer-1", 2500)

        assert lot.winner_user_id == "buyer-1"
        assert lot.winning_bid_cents == 2500

    def test_outcome_cannot_be_rewritten(self):
        lot = _lot(LotStatus.PUBLISHED)
        lot.close_with_winner("buyer-1", 2500)
        lot.status = LotStatus.PUBLISHED.value

        with pytest.raises(ValidationError):
            lot.close_with_winner("buyer-2", 9900)
        assert lot.winner_user_id == "buyer-1"

    def test_outcome_fields_rejected_on_later_transitions(self):
        lot = _lot(LotStatus.PUBLISHED)
        lot.close_with_winner("buyer-1", 2500)

        with pytest.raises(ValidationError):
            lot.transition_to(LotStatus.PAID, winning_bid_cents=100)
        assert lot.status == LotStatus.AUCTION_CLOSED.value
        assert lot.winning_bid_cents == 2500


class TestSingleActiveOrders:
    def test_second_invoice_rejected_while_paid(self):
        lot = _lot(LotStatus.PAID)
        lot.invoice_id = "in_1"

        with pytest.raises(ValidationError):
            lot.mark_paid("in_2")
        assert lot.invoice_id == "in_1"

    def test_second_supplier_order_rejected(self):
        lot = _lot(LotStatus.PAID)
        lot.supplier_order_id = "cj-1"

        with pytest.raises(ValidationError):
            lot.mark_supplier_ordered("cj-2", "DS-2", 1500)
        assert lot.supplier_order_id == "cj-1"
        assert lot.status == LotStatus.PAID.value


class TestAddressFailures:
    def test_flag_address_problem(self):
        lot = _lot(LotStatus.PAID)
        lot.flag_address_problem(LotStatus.ADDRESS_INCOMPLETE, "missing: city")

        assert lot.status == LotStatus.ADDRESS_INCOMPLETE.value
        assert lot.error_message == "missing: city"

    def test_only_address_statuses_accepted(self):
        lot = _lot(LotStatus.PAID)
        with pytest.raises(ValidationError):
            lot.flag_address_problem(LotStatus.CANCELLED, "nope")
        assert lot.status == LotStatus.PAID.value

    def test_resume_after_fix(self):
        lot = _lot(LotStatus.NO_ADDRESS)
        lot.error_message = "No shipping address on file"
        lot.resume_after_address_fix("Ada Buyer", '{"name": "Ada Buyer"}')

        assert lot.status == LotStatus.PAID.value
        assert lot.error_message is None
        assert lot.shipping_name == "Ada Buyer"


class TestNonTransitionWrites:
    def test_record_error_keeps_status(self):
        lot = _lot(LotStatus.PAID)
        lot.record_error("Supplier timeout")

        assert lot.status == LotStatus.PAID.value
        assert lot.error_message == "Supplier timeout"

    def test_update_tracking_keeps_status(self):
        lot = _lot(LotStatus.SHIPPED)
        lot.update_tracking("TRK2", "UPS")

        assert lot.status == LotStatus.SHIPPED.value
        assert lot.tracking_number == "TRK2"
        assert lot.tracking_carrier == "UPS"

    def test_cancel_truncates_long_reason(self):
        lot = _lot(LotStatus.SOURCED)
        lot.cancel("x" * 1500)
        assert len(lot.error_message) == 1000
