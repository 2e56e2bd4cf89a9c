"""Lot aggregate (CQRS): one sourced unit from supplier catalog to buyer doorstep.

A Lot carries its supplier linkage, auction linkage, auction outcome,
supplier fulfillment details and realized financials. Its status only moves
along the edges below; every status write goes through ``_transition`` which
validates the edge before touching any field.

State Machine:
    SOURCED → LISTED → PUBLISHED → AUCTION_CLOSED → PAID → CJ_ORDERED → CJ_PAID → SHIPPED → DELIVERED
    PUBLISHED → RESERVE_NOT_MET
    AUCTION_CLOSED → PAYMENT_FAILED → PAID
    PAID → CJ_OUT_OF_STOCK | CJ_PRICE_CHANGED → CANCELLED
    PAID → ADDRESS_INCOMPLETE | NO_ADDRESS → PAID
    any non-terminal → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text

from dropship.domain import dropship
from dropship.lot.events import LotSourced, LotStatusChanged


class LotStatus(Enum):
    SOURCED = "SOURCED"
    LISTED = "LISTED"
    PUBLISHED = "PUBLISHED"
    AUCTION_CLOSED = "AUCTION_CLOSED"
    PAID = "PAID"
    CJ_ORDERED = "CJ_ORDERED"
    CJ_PAID = "CJ_PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    RESERVE_NOT_MET = "RESERVE_NOT_MET"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CJ_OUT_OF_STOCK = "CJ_OUT_OF_STOCK"
    CJ_PRICE_CHANGED = "CJ_PRICE_CHANGED"
    ADDRESS_INCOMPLETE = "ADDRESS_INCOMPLETE"
    NO_ADDRESS = "NO_ADDRESS"
    CANCELLED = "CANCELLED"


_VALID_TRANSITIONS = {
    LotStatus.SOURCED: {LotStatus.LISTED, LotStatus.CANCELLED},
    LotStatus.LISTED: {LotStatus.PUBLISHED, LotStatus.CANCELLED},
    LotStatus.PUBLISHED: {
        LotStatus.AUCTION_CLOSED,
        LotStatus.RESERVE_NOT_MET,
        LotStatus.CANCELLED,
    },
    LotStatus.AUCTION_CLOSED: {
        LotStatus.PAID,
        LotStatus.PAYMENT_FAILED,
        LotStatus.CANCELLED,
    },
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
    LotStatus.DELIVERED: set(),  # Terminal
    LotStatus.RESERVE_NOT_MET: set(),  # Terminal
    LotStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)

# Outcome fields are written once at AUCTION_CLOSED and afterwards only by cancellation
_AUCTION_OUTCOME_FIELDS = ("winner_user_id", "winning_bid_cents")


def can_transition(current: LotStatus, target: LotStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


class InvalidTransition(ValidationError):
    """A status write that is not an edge of the lifecycle graph."""

    def __init__(self, from_status: LotStatus, to_status: LotStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__({"status": [f"Invalid transition from {from_status.value} to {to_status.value}"]})


@dropship.aggregate
class Lot:
    """A single sourced unit tracked through auction, payment and fulfillment."""

    # Supplier linkage
    supplier_product_id = String(max_length=100, required=True)
    supplier_variant_id = String(max_length=100, required=True)
    product_name = String(max_length=500, sanitize=False)
    variant_name = String(max_length=500, sanitize=False)
    supplier_cost_cents = Integer(required=True, min_value=0)
    supplier_shipping_cents = Integer(default=0, min_value=0)
    suggested_retail_cents = Integer()
    logistic_name = String(max_length=100, sanitize=False)
    from_country = String(max_length=2, default="CN")
    image_urls = Text(sanitize=False)  # JSON list

    # Auction linkage
    sale_id = String(max_length=100)
    item_id = String(max_length=100)
    starting_bid_cents = Integer()
    reserve_cents = Integer()

    # Auction outcome
    winner_user_id = String(max_length=100)
    winning_bid_cents = Integer()
    auction_order_id = String(max_length=100)
    invoice_id = String(max_length=100)

    # Supplier fulfillment
    supplier_order_id = String(max_length=100)
    supplier_order_number = String(max_length=100)
    supplier_order_status = String(max_length=50)
    paid_at = DateTime()
    shipping_name = String(max_length=255, sanitize=False)
    shipping_address = Text(sanitize=False)  # JSON
    tracking_number = String(max_length=100)
    tracking_carrier = String(max_length=100, sanitize=False)

    # Financials
    total_cost_cents = Integer()
    profit_cents = Integer()

    status = String(choices=LotStatus, default=LotStatus.SOURCED.value)
    error_message = String(max_length=1000, sanitize=False)

    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        supplier_product_id,
        supplier_variant_id,
        supplier_cost_cents,
        reserve_cents,
        starting_bid_cents,
        supplier_shipping_cents=0,
        product_name=None,
        variant_name=None,
        suggested_retail_cents=None,
        logistic_name=None,
        from_country="CN",
        image_urls=None,
    ):
        """Record a newly priced supplier variant in SOURCED status."""
        now = datetime.now(UTC)
        lot = cls(
            supplier_product_id=supplier_product_id,
            supplier_variant_id=supplier_variant_id,
            product_name=product_name,
            variant_name=variant_name,
            supplier_cost_cents=supplier_cost_cents,
            supplier_shipping_cents=supplier_shipping_cents,
            suggested_retail_cents=suggested_retail_cents,
            logistic_name=logistic_name,
            from_country=from_country,
            image_urls=image_urls,
            reserve_cents=reserve_cents,
            starting_bid_cents=starting_bid_cents,
            status=LotStatus.SOURCED.value,
            created_at=now,
            updated_at=now,
        )
        lot.raise_(
            LotSourced(
                lot_id=str(lot.id),
                supplier_product_id=supplier_product_id,
                supplier_variant_id=supplier_variant_id,
                reserve_cents=reserve_cents,
                starting_bid_cents=starting_bid_cents,
                created_at=now,
            )
        )
        return lot

    @property
    def supplier_total_cents(self) -> int:
        return (self.supplier_cost_cents or 0) + (self.supplier_shipping_cents or 0)

    @property
    def current_status(self) -> LotStatus:
        return LotStatus(self.status)

    # -------------------------------------------------------------------
    # Transition gate
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: LotStatus) -> None:
        current = LotStatus(self.status)
        if not can_transition(current, target):
            raise InvalidTransition(current, target)

    def _transition(self, target: LotStatus, **changes) -> None:
        """Validate the edge, then apply ``changes`` and the new status together.

        Nothing is written if the edge is invalid or any field rejects its value.
        """
        self._assert_can_transition(target)

        if target not in (LotStatus.AUCTION_CLOSED, LotStatus.CANCELLED):
            for name in _AUCTION_OUTCOME_FIELDS:
                if name in changes and changes[name] != getattr(self, name):
                    raise ValidationError({name: ["Auction outcome is immutable once recorded"]})

        previous = {name: getattr(self, name) for name in (*changes, "status", "updated_at")}
        from_status = self.status
        now = datetime.now(UTC)
        try:
            for name, value in changes.items():
                setattr(self, name, value)
            self.status = target.value
            self.updated_at = now
        except ValidationError:
            for name, value in previous.items():
                setattr(self, name, value)
            raise

        self.raise_(
            LotStatusChanged(
                lot_id=str(self.id),
                from_status=from_status,
                to_status=target.value,
                error_message=self.error_message,
                changed_at=now,
            )
        )

    def transition_to(self, target: LotStatus, **changes) -> None:
        """Generic validated status write used by reconciliation paths."""
        self._transition(target, **changes)

    # -------------------------------------------------------------------
    # Auction lifecycle
    # -------------------------------------------------------------------
    def mark_listed(self, sale_id: str, item_id: str) -> None:
        self._transition(LotStatus.LISTED, sale_id=sale_id, item_id=item_id, error_message=None)

    def mark_published(self) -> None:
        self._transition(LotStatus.PUBLISHED)

    def close_with_winner(self, winner_user_id: str, winning_bid_cents: int, auction_order_id: str | None = None):
        if self.winner_user_id is not None:
            raise ValidationError({"winner_user_id": ["Auction outcome is immutable once recorded"]})
        changes = {"winner_user_id": winner_user_id, "winning_bid_cents": winning_bid_cents}
        if auction_order_id:
            changes["auction_order_id"] = auction_order_id
        self._transition(LotStatus.AUCTION_CLOSED, **changes)

    def close_without_sale(self) -> None:
        self._transition(LotStatus.RESERVE_NOT_MET)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def mark_paid(self, invoice_id: str) -> None:
        # Only a failed invoice may be superseded by a new one
        if (
            self.invoice_id
            and invoice_id != self.invoice_id
            and LotStatus(self.status) not in (LotStatus.PAYMENT_FAILED, LotStatus.AUCTION_CLOSED)
        ):
            raise ValidationError({"invoice_id": ["Lot already has an active payment order"]})
        self._transition(LotStatus.PAID, invoice_id=invoice_id, error_message=None)

    def mark_payment_failed(self, invoice_id: str | None = None, reason: str | None = None) -> None:
        changes = {"error_message": reason}
        if invoice_id:
            changes["invoice_id"] = invoice_id
        self._transition(LotStatus.PAYMENT_FAILED, **changes)

    def flag_address_problem(self, status: LotStatus, message: str) -> None:
        if status not in (LotStatus.ADDRESS_INCOMPLETE, LotStatus.NO_ADDRESS):
            raise ValidationError({"status": [f"{status.value} is not an address failure status"]})
        self._transition(status, error_message=message)

    def resume_after_address_fix(self, name: str, address_json: str) -> None:
        self._transition(LotStatus.PAID, shipping_name=name, shipping_address=address_json, error_message=None)

    def record_shipping(self, name: str, address_json: str) -> None:
        self.shipping_name = name
        self.shipping_address = address_json
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Supplier fulfillment
    # -------------------------------------------------------------------
    def mark_supplier_ordered(self, order_id: str, order_number: str, total_cost_cents: int) -> None:
        if self.supplier_order_id and self.supplier_order_id != order_id:
            raise ValidationError({"supplier_order_id": ["Lot already has an active supplier order"]})
        self._transition(
            LotStatus.CJ_ORDERED,
            supplier_order_id=order_id,
            supplier_order_number=order_number,
            supplier_order_status="CREATED",
            total_cost_cents=total_cost_cents,
            error_message=None,
        )

    def mark_supplier_paid(self, paid_at: datetime | None = None) -> None:
        total_cost = self.total_cost_cents if self.total_cost_cents is not None else self.supplier_total_cents
        profit = self.winning_bid_cents - total_cost if self.winning_bid_cents is not None else None
        self._transition(
            LotStatus.CJ_PAID,
            supplier_order_status="PAID",
            paid_at=paid_at or datetime.now(UTC),
            profit_cents=profit,
        )

    def mark_out_of_stock(self, message: str) -> None:
        self._transition(LotStatus.CJ_OUT_OF_STOCK, error_message=message)

    def mark_price_changed(self, message: str) -> None:
        self._transition(LotStatus.CJ_PRICE_CHANGED, error_message=message)

    def mark_shipped(self, tracking_number: str | None = None, tracking_carrier: str | None = None) -> None:
        changes = {"supplier_order_status": "SHIPPED"}
        if tracking_number:
            changes["tracking_number"] = tracking_number
        if tracking_carrier:
            changes["tracking_carrier"] = tracking_carrier
        self._transition(LotStatus.SHIPPED, **changes)

    def mark_delivered(self) -> None:
        self._transition(LotStatus.DELIVERED, supplier_order_status="DELIVERED")

    def update_tracking(self, tracking_number: str, tracking_carrier: str | None = None) -> None:
        """Record tracking details without a status change."""
        self.tracking_number = tracking_number
        if tracking_carrier:
            self.tracking_carrier = tracking_carrier
        self.updated_at = datetime.now(UTC)

    def record_supplier_status(self, supplier_status: str) -> None:
        self.supplier_order_status = supplier_status[:50]
        self.updated_at = datetime.now(UTC)

    def cancel(self, reason: str) -> None:
        self._transition(LotStatus.CANCELLED, error_message=(reason or "")[:1000] or None)

    def record_error(self, message: str) -> None:
        """Note a non-fatal problem; status is left untouched for the next sweep."""
        self.error_message = message[:1000]
        self.updated_at = datetime.now(UTC)
