import json

import pytest
from protean.integrations.pytest import DomainFixture

from dropship.config import Settings
from dropship.container import fake_adapters
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import LotStore

CRON_SECRET = "cron-secret"
SUPPLIER_SECRET = "cj-secret"
AUCTION_SECRET = "basta-secret"

SHIPPING_ADDRESS = {
    "name": "Ada Buyer",
    "line1": "1 Market St",
    "line2": "",
    "city": "San Francisco",
    "state": "CA",
    "postal_code": "94105",
    "country": "US",
    "phone": "",
}

# Each step moves a Lot one edge along the happy path
_PATH = [
    (LotStatus.LISTED, lambda lot, o: lot.mark_listed(o["sale_id"], o["item_id"])),
    (LotStatus.PUBLISHED, lambda lot, o: lot.mark_published()),
    (
        LotStatus.AUCTION_CLOSED,
        lambda lot, o: lot.close_with_winner(o["winner_user_id"], o["winning_bid_cents"], o["auction_order_id"]),
    ),
    (LotStatus.PAID, lambda lot, o: lot.mark_paid(o["invoice_id"])),
    (
        LotStatus.CJ_ORDERED,
        lambda lot, o: lot.mark_supplier_ordered(o["supplier_order_id"], "DS-1", lot.supplier_total_cents),
    ),
    (LotStatus.CJ_PAID, lambda lot, o: lot.mark_supplier_paid()),
    (LotStatus.SHIPPED, lambda lot, o: lot.mark_shipped(o["tracking_number"], "USPS")),
    (LotStatus.DELIVERED, lambda lot, o: lot.mark_delivered()),
]

_BRANCHES = {
    LotStatus.RESERVE_NOT_MET: (LotStatus.PUBLISHED, lambda lot: lot.close_without_sale()),
    LotStatus.PAYMENT_FAILED: (LotStatus.AUCTION_CLOSED, lambda lot: lot.mark_payment_failed(reason="Card declined")),
    LotStatus.CJ_OUT_OF_STOCK: (LotStatus.PAID, lambda lot: lot.mark_out_of_stock("Supplier variant is out of stock")),
    LotStatus.CJ_PRICE_CHANGED: (LotStatus.PAID, lambda lot: lot.mark_price_changed("Supplier price rose")),
    LotStatus.CANCELLED: (LotStatus.SOURCED, lambda lot: lot.cancel("Cancelled by operator")),
}


@pytest.fixture(scope="session")
def dropship_bed():
    from dropship.domain import dropship

    bed = DomainFixture(dropship)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(dropship_bed):
    with dropship_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def settings():
    return Settings(
        environment="test",
        cron_secret=CRON_SECRET,
        supplier_webhook_secret=SUPPLIER_SECRET,
        auction_webhook_secret=AUCTION_SECRET,
    )


@pytest.fixture()
def adapters(settings):
    return fake_adapters(settings)


@pytest.fixture()
def store():
    return LotStore()


def _walk(lot, target, options):
    if target == LotStatus.SOURCED:
        return
    if target in _BRANCHES:
        parent, step = _BRANCHES[target]
        _walk(lot, parent, options)
        step(lot)
        return
    for status, step in _PATH:
        step(lot, options)
        if status == target:
            return


@pytest.fixture()
def make_lot(store):
    """Create a persisted Lot and walk it to ``status`` through the real transitions."""
    counter = {"n": 0}

    def _make(status=LotStatus.SOURCED, address=SHIPPING_ADDRESS, **overrides):
        counter["n"] += 1
        n = counter["n"]
        options = {
            "sale_id": "sale-1",
            "item_id": f"item-{n}",
            "winner_user_id": "buyer-1",
            "winning_bid_cents": 2500,
            "auction_order_id": None,
            "invoice_id": f"in_{n}",
            "supplier_order_id": f"cj-order-{n}",
            "tracking_number": f"TRK{n}",
        }
        for key in list(overrides):
            if key in options:
                options[key] = overrides.pop(key)

        fields = {
            "supplier_product_id": f"prod-{n}",
            "supplier_variant_id": f"var-{n}",
            "supplier_cost_cents": 1000,
            "supplier_shipping_cents": 500,
            "reserve_cents": 1720,
            "starting_bid_cents": 237,
            "product_name": f"Desk Lamp {n}",
        }
        fields.update(overrides)
        lot = Lot.create(**fields)

        if _carries_address(status) and address is not None:
            lot.record_shipping(address.get("name") or "", json.dumps(address))
        _walk(lot, status, options)
        return store.add(lot)

    return _make


def _carries_address(status: LotStatus) -> bool:
    return status not in (
        LotStatus.SOURCED,
        LotStatus.LISTED,
        LotStatus.PUBLISHED,
        LotStatus.AUCTION_CLOSED,
        LotStatus.RESERVE_NOT_MET,
        LotStatus.PAYMENT_FAILED,
        LotStatus.CANCELLED,
    )


class RacingLotStore(LotStore):
    """Lets another writer save the Lot between the next update's load and save."""

    def __init__(self):
        self.rival_change = None

    def update(self, lot_id, change):
        rival_change, self.rival_change = self.rival_change, None
        if rival_change is None:
            return super().update(lot_id, change)

        def change_after_rival(lot):
            LotStore().update(lot_id, rival_change)
            change(lot)

        return super().update(lot_id, change_after_rival)


@pytest.fixture()
def racing_store():
    return RacingLotStore()
