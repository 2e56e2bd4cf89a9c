"""Application tests for sourcing supplier products into a published sale."""

import pytest

from dropship.auction.port import AuctionError
from dropship.lot.lot import LotStatus
from dropship.sourcing.sourcing import SourcingService, cheapest_freight
from dropship.supplier.port import FreightOption, SupplierError, SupplierProduct, SupplierVariant


def _product(n, cost_cents=1000, stock=25, name=None):
    variant = SupplierVariant(
        variant_id=f"var-{n}",
        product_id=f"prod-{n}",
        name=f"Variant {n}",
        cost_cents=cost_cents,
        stock=stock,
        image_urls=(f"https://img.example.com/{n}.jpg",),
    )
    return SupplierProduct(product_id=f"prod-{n}", name=name or f"Desk Lamp {n}", variants=(variant,))


@pytest.fixture()
def catalog(adapters):
    adapters.supplier.products = [_product(1), _product(2)]
    return adapters.supplier


class TestSource:
    def test_lots_sourced_listed_and_published(self, adapters, store, catalog):
        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.sourced == 2
        assert report.listed == 2
        assert report.published is True
        assert report.errors == []
        sale = adapters.auction.sales[report.sale_id]
        assert sale["published"] is True
        assert len(sale["items"]) == 2
        for lot_id in report.lot_ids:
            lot = store.get(lot_id)
            assert lot.status == LotStatus.PUBLISHED.value
            assert lot.sale_id == report.sale_id

    def test_lot_priced_from_cost_and_freight(self, adapters, store, catalog):
        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        lot = store.get(report.lot_ids[0])
        assert lot.supplier_cost_cents == 1000
        assert lot.supplier_shipping_cents == 500
        assert lot.logistic_name == "CJPacket"
        assert lot.reserve_cents == 1720
        spec = adapters.auction.sales[report.sale_id]["items"][0]["spec"]
        assert spec.reserve_cents == 1720
        assert spec.image_urls == ("https://img.example.com/1.jpg",)

    def test_cheapest_freight_chosen(self, adapters, store, catalog):
        catalog.freight["var-1"] = [
            FreightOption(logistic_name="USPS", cost_cents=900),
            FreightOption(logistic_name="YunExpress", cost_cents=450),
        ]

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000, max_items=1)

        lot = store.get(report.lot_ids[0])
        assert lot.logistic_name == "YunExpress"
        assert lot.supplier_shipping_cents == 450

    def test_max_items(self, adapters, catalog):
        report = SourcingService(adapters).source("lamp", max_cost_cents=2000, max_items=1)

        assert report.sourced == 1

    def test_unaffordable_and_out_of_stock_skipped(self, adapters, store):
        adapters.supplier.products = [_product(1, cost_cents=5000), _product(2, stock=0), _product(3)]

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.sourced == 1
        assert report.skipped == 2
        assert store.get(report.lot_ids[0]).supplier_variant_id == "var-3"

    def test_variant_sourced_only_once(self, adapters, catalog):
        service = SourcingService(adapters)

        service.source("lamp", max_cost_cents=2000)
        second = service.source("lamp", max_cost_cents=2000)

        assert second.sourced == 0
        assert second.skipped == 2
        assert second.sale_id is None

    def test_nothing_matches(self, adapters, catalog):
        report = SourcingService(adapters).source("kettle", max_cost_cents=2000)

        assert report.sourced == 0
        assert adapters.auction.sales == {}


class TestSourcingFailures:
    def test_search_failure_reported(self, adapters, monkeypatch):
        def _fail(keyword, page_size=20):
            raise SupplierError("catalog down")

        monkeypatch.setattr(adapters.supplier, "search_products", _fail)

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.errors == ["Search failed: catalog down"]

    def test_rejected_item_cancels_its_lot(self, adapters, store, catalog):
        adapters.auction.failing_items.add("Desk Lamp 1")

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.listed == 1
        assert report.published is True
        statuses = sorted(store.get(lot_id).status for lot_id in report.lot_ids)
        assert statuses == [LotStatus.CANCELLED.value, LotStatus.PUBLISHED.value]
        assert report.errors[0].startswith("Listing failed")

    def test_sale_creation_failure_cancels_all(self, adapters, store, catalog, monkeypatch):
        def _fail(title, description):
            raise AuctionError("platform down")

        monkeypatch.setattr(adapters.auction, "create_sale", _fail)

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.published is False
        for lot_id in report.lot_ids:
            lot = store.get(lot_id)
            assert lot.status == LotStatus.CANCELLED.value
            assert lot.error_message == "Sale creation failed: platform down"
        assert adapters.alerts.alerts

    def test_publish_failure_leaves_lots_listed(self, adapters, store, catalog, monkeypatch):
        def _fail(sale_id):
            raise AuctionError("publish rejected")

        monkeypatch.setattr(adapters.auction, "publish_sale", _fail)

        report = SourcingService(adapters).source("lamp", max_cost_cents=2000)

        assert report.published is False
        lot = store.get(report.lot_ids[0])
        assert lot.status == LotStatus.LISTED.value
        assert lot.error_message == "Publish failed: publish rejected"


class TestCheapestFreight:
    def test_empty(self):
        assert cheapest_freight([]) is None

    def test_lowest_cost(self):
        options = [FreightOption("A", 700), FreightOption("B", 300), FreightOption("C", 500)]
        assert cheapest_freight(options).logistic_name == "B"
