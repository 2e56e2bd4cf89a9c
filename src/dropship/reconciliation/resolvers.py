"""Payment-to-Lot resolution.

A paid invoice does not always say which Lot it pays for. Resolvers are
tried in ``LOT_RESOLVERS`` order and the first that yields any Lot wins:

    1. item ids in the invoice's line-item metadata
    2. the same, on the invoice re-fetched with line items expanded
    3. Lots already holding this invoice id
    4. AUCTION_CLOSED Lots of the sale named in the invoice metadata
    5. AUCTION_CLOSED Lots of the sale linked by a local payment order,
       found by invoice id or by the auction order id in the metadata

Sale scans (4 and 5) are narrowed to the paying buyer when one is known.
Without a buyer, a scan that would span several winners resolves nothing
and raises a warning instead of guessing.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from dropship.alerts.sink import AlertSink
from dropship.gateway.port import Invoice, PaymentGateway
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import LotStore
from dropship.payment_order.payment_order import find_by_auction_order, find_by_invoice

logger = structlog.get_logger(__name__)

ITEM_ID_KEYS = ("itemId", "item_id")
SALE_ID_KEYS = ("saleId", "sale_id")
USER_ID_KEYS = ("userId", "user_id")
AUCTION_ORDER_ID_KEYS = ("auctionOrderId", "bastaOrderId", "auction_order_id")


def _metadata_value(metadata: dict, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        if metadata.get(key):
            return metadata[key]
    return None


def _item_ids(invoice: Invoice) -> list[str]:
    ids = []
    for metadata in invoice.line_item_metadata:
        item_id = _metadata_value(metadata, ITEM_ID_KEYS)
        if item_id and item_id not in ids:
            ids.append(item_id)
    return ids


@dataclass
class ResolutionContext:
    invoice: Invoice
    gateway: PaymentGateway
    store: LotStore
    alerts: AlertSink
    refetched: Invoice | None = field(default=None)

    @property
    def buyer_id(self) -> str | None:
        return _metadata_value(self.invoice.metadata, USER_ID_KEYS)

    @property
    def sale_id(self) -> str | None:
        return _metadata_value(self.invoice.metadata, SALE_ID_KEYS)


def _lots_for_items(store: LotStore, item_ids: list[str]) -> list[Lot]:
    lots = []
    for item_id in item_ids:
        lot = store.by_item(item_id)
        if lot is not None:
            lots.append(lot)
    return lots


def _scan_sale(context: ResolutionContext, sale_id: str, buyer_id: str | None) -> list[Lot]:
    candidates = [
        lot
        for lot in context.store.by_sale(sale_id)
        if lot.item_id
        and lot.current_status == LotStatus.AUCTION_CLOSED
        and (not lot.invoice_id or lot.invoice_id == context.invoice.id)
    ]

    if buyer_id:
        return [lot for lot in candidates if lot.winner_user_id == buyer_id]

    winners = {lot.winner_user_id for lot in candidates}
    if len(winners) > 1:
        context.alerts.warning(
            f"Invoice {context.invoice.id} matches lots of {len(winners)} different winners in sale {sale_id} "
            "and names no buyer. Left unresolved for manual review."
        )
        return []
    return candidates


def by_line_item_metadata(context: ResolutionContext) -> list[Lot]:
    return _lots_for_items(context.store, _item_ids(context.invoice))


def by_refetched_invoice(context: ResolutionContext) -> list[Lot]:
    # The payload already carried item ids; re-fetching would return the same ones
    if _item_ids(context.invoice):
        return []
    try:
        context.refetched = context.gateway.get_invoice(context.invoice.id)
    except Exception as e:
        logger.warning("Invoice re-fetch failed", invoice_id=context.invoice.id, error=str(e))
        return []
    if context.refetched is None:
        return []
    return _lots_for_items(context.store, _item_ids(context.refetched))


def by_stored_invoice(context: ResolutionContext) -> list[Lot]:
    return [lot for lot in context.store.by_invoice(context.invoice.id) if lot.item_id]


def by_invoice_sale_metadata(context: ResolutionContext) -> list[Lot]:
    sale_id = context.sale_id
    if not sale_id and context.refetched is not None:
        sale_id = _metadata_value(context.refetched.metadata, SALE_ID_KEYS)
    if not sale_id:
        return []
    return _scan_sale(context, sale_id, context.buyer_id)


def _linked_payment_order(context: ResolutionContext):
    order = find_by_invoice(context.invoice.id)
    if order is not None:
        return order
    for invoice in (context.invoice, context.refetched):
        if invoice is None:
            continue
        auction_order_id = _metadata_value(invoice.metadata, AUCTION_ORDER_ID_KEYS)
        if auction_order_id:
            return find_by_auction_order(auction_order_id)
    return None


def by_payment_order_bridge(context: ResolutionContext) -> list[Lot]:
    order = _linked_payment_order(context)
    if order is None or not order.sale_id:
        return []
    return _scan_sale(context, order.sale_id, order.user_id or context.buyer_id)


LotResolver = Callable[[ResolutionContext], list[Lot]]

LOT_RESOLVERS: list[LotResolver] = [
    by_line_item_metadata,
    by_refetched_invoice,
    by_stored_invoice,
    by_invoice_sale_metadata,
    by_payment_order_bridge,
]


def resolve_lots(context: ResolutionContext, resolvers: list[LotResolver] = LOT_RESOLVERS) -> list[Lot]:
    """Run ``resolvers`` in order and return the first non-empty, de-duplicated match."""
    for resolver in resolvers:
        lots = resolver(context)
        if not lots:
            continue

        unique = {}
        for lot in lots:
            unique.setdefault(str(lot.id), lot)
        logger.info(
            "Resolved lots for invoice",
            invoice_id=context.invoice.id,
            strategy=resolver.__name__,
            lot_count=len(unique),
        )
        return list(unique.values())

    logger.info("No lots found for invoice", invoice_id=context.invoice.id)
    return []
