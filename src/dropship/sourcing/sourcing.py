"""Sourcing: turn a supplier catalog search into a published auction sale.

For each product matching the keyword, the first affordable in-stock
variant that has not been sourced before is priced against its cheapest
freight option and recorded as a SOURCED Lot. The Lots are then listed as
items of one new sale and the sale is published.
"""

import json
from dataclasses import dataclass, field

import structlog

from dropship.auction.port import AuctionError, ItemSpec
from dropship.container import Adapters
from dropship.lot.lot import Lot
from dropship.lot.store import LotStore
from dropship.pricing.engine import PricingParams, compute_pricing
from dropship.supplier.port import FreightOption, SupplierError, SupplierProduct, SupplierVariant

logger = structlog.get_logger(__name__)

DESTINATION_COUNTRY = "US"
ORIGIN_COUNTRY = "CN"


@dataclass
class SourcingReport:
    keyword: str
    sale_id: str | None = None
    sourced: int = 0
    listed: int = 0
    published: bool = False
    skipped: int = 0
    lot_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "keyword": self.keyword,
            "sale_id": self.sale_id,
            "sourced": self.sourced,
            "listed": self.listed,
            "published": self.published,
            "skipped": self.skipped,
            "lot_ids": list(self.lot_ids),
            "errors": list(self.errors),
        }


def _in_stock(variant: SupplierVariant) -> bool:
    return variant.stock is None or variant.stock >= 1


def cheapest_freight(options: list[FreightOption]) -> FreightOption | None:
    return min(options, key=lambda option: option.cost_cents) if options else None


class SourcingService:
    def __init__(self, adapters: Adapters, store: LotStore | None = None):
        self.adapters = adapters
        self.store = store or LotStore()

    def _pick_variant(self, product: SupplierProduct, max_cost_cents: int) -> SupplierVariant | None:
        for variant in product.variants:
            if variant.cost_cents > max_cost_cents or not _in_stock(variant):
                continue
            if self.store.by_supplier_variant(variant.variant_id):
                continue
            return variant
        return None

    def _create_lot(self, product: SupplierProduct, variant: SupplierVariant, freight: FreightOption) -> Lot:
        settings = self.adapters.settings
        pricing = compute_pricing(
            PricingParams(
                product_cost_cents=variant.cost_cents,
                shipping_cost_cents=freight.cost_cents,
                buyer_premium_rate=settings.buyer_premium_rate,
                suggested_retail_cents=variant.suggested_retail_cents,
                safety_margin=settings.safety_margin,
                price_buffer=settings.price_buffer,
            )
        )
        lot = Lot.create(
            supplier_product_id=product.product_id,
            supplier_variant_id=variant.variant_id,
            supplier_cost_cents=variant.cost_cents,
            supplier_shipping_cents=freight.cost_cents,
            reserve_cents=pricing.reserve_cents,
            starting_bid_cents=pricing.starting_bid_cents,
            product_name=product.name,
            variant_name=variant.name,
            suggested_retail_cents=variant.suggested_retail_cents,
            logistic_name=freight.logistic_name,
            from_country=ORIGIN_COUNTRY,
            image_urls=json.dumps(list(variant.image_urls)),
        )
        return self.store.add(lot)

    def source(self, keyword: str, max_cost_cents: int, max_items: int = 10) -> SourcingReport:
        """Source up to ``max_items`` Lots for ``keyword`` and publish them as one sale."""
        report = SourcingReport(keyword=keyword)
        supplier = self.adapters.supplier

        try:
            products = supplier.search_products(keyword, page_size=max_items * 2)
        except SupplierError as e:
            report.errors.append(f"Search failed: {e}")
            logger.error("Supplier search failed", keyword=keyword, error=str(e))
            return report

        lots: list[Lot] = []
        for product in products:
            if len(lots) >= max_items:
                break

            variant = self._pick_variant(product, max_cost_cents)
            if variant is None:
                report.skipped += 1
                continue

            try:
                freight = cheapest_freight(
                    supplier.get_freight_options(variant.variant_id, ORIGIN_COUNTRY, DESTINATION_COUNTRY)
                )
            except SupplierError as e:
                logger.warning("Freight quote failed", variant_id=variant.variant_id, error=str(e))
                freight = None
            if freight is None:
                report.skipped += 1
                continue

            lots.append(self._create_lot(product, variant, freight))

        report.sourced = len(lots)
        report.lot_ids = [str(lot.id) for lot in lots]
        if not lots:
            logger.info("Nothing sourced", keyword=keyword)
            return report

        self._list(report, keyword, lots)
        logger.info(
            "Sourcing finished",
            keyword=keyword,
            sale_id=report.sale_id,
            sourced=report.sourced,
            listed=report.listed,
            published=report.published,
        )
        return report

    def _list(self, report: SourcingReport, keyword: str, lots: list[Lot]) -> None:
        auction = self.adapters.auction
        try:
            report.sale_id = auction.create_sale(
                title=f"{keyword.title()} Auction",
                description=f"{len(lots)} lots of {keyword}",
            )
        except AuctionError as e:
            message = f"Sale creation failed: {e}"
            report.errors.append(message)
            for lot in lots:
                self.store.update(str(lot.id), lambda current: current.cancel(message))
            self.adapters.alerts.warning(f"Sourcing '{keyword}': {message}")
            return

        listed = []
        for lot in lots:
            lot_id = str(lot.id)
            try:
                item_id = auction.create_item(
                    report.sale_id,
                    ItemSpec(
                        title=lot.product_name or lot.supplier_variant_id,
                        description=lot.variant_name or lot.product_name or "",
                        starting_bid_cents=lot.starting_bid_cents,
                        reserve_cents=lot.reserve_cents,
                        image_urls=tuple(json.loads(lot.image_urls or "[]")),
                    ),
                )
            except AuctionError as e:
                message = f"Listing failed: {e}"
                report.errors.append(message)
                self.store.update(lot_id, lambda current: current.cancel(message))
                continue

            self.store.update(lot_id, lambda current: current.mark_listed(report.sale_id, item_id))
            listed.append(lot_id)

        report.listed = len(listed)
        if not listed:
            return

        try:
            auction.publish_sale(report.sale_id)
        except AuctionError as e:
            message = f"Publish failed: {e}"
            report.errors.append(message)
            for lot_id in listed:
                self.store.update(lot_id, lambda current: current.record_error(message))
            self.adapters.alerts.warning(f"Sale {report.sale_id}: {message}")
            return

        for lot_id in listed:
            self.store.update(lot_id, lambda current: current.mark_published())
        report.published = True
