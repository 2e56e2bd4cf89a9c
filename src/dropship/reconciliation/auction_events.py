"""Auction outcome reconciliation.

Closed items reach the pipeline two ways: the auction platform's webhook
and the sweep's poll of closed sales. Both apply the same per-item rule so
a missed webhook is caught by the next poll and a late webhook after a poll
is a no-op.
"""

import hashlib
import hmac
import json
import time

import structlog

from dropship.auction.port import ClosedItem, ClosedSale
from dropship.container import Adapters
from dropship.ledger.processed_event import EventSource, claim_event, release_event
from dropship.lot.lot import LotStatus
from dropship.lot.store import CONCURRENT_WRITE_ERRORS, LotStore
from dropship.payment_order.payment_order import record_payment_order

logger = structlog.get_logger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

OUTCOMES = ("closed", "reserve_not_met", "skipped", "untracked")


def verify_auction_signature(
    raw_body: str,
    signature: str,
    token: str,
    secret: str,
    now: float | None = None,
) -> bool:
    """Accept a shared-secret token header or a ``t=<ts>,v1=<hex>`` HMAC-SHA256 signature."""
    if not secret:
        return False

    token = (token or "").strip()
    if token and hmac.compare_digest(token.encode(), secret.encode()):
        return True

    parts = {}
    for part in (signature or "").split(","):
        name, _, value = part.strip().partition("=")
        parts[name] = value

    try:
        timestamp = int(parts.get("t", ""))
    except ValueError:
        return False
    expected_signature = parts.get("v1")
    if not expected_signature:
        return False

    current = now if now is not None else time.time()
    if abs(current - timestamp) > SIGNATURE_TOLERANCE_SECONDS:
        return False

    key = secret.removeprefix("whsec_")
    computed = hmac.new(key.encode(), f"{timestamp}.{raw_body}".encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, expected_signature)


def apply_item_outcome(store: LotStore, sale_id: str, item: ClosedItem) -> str:
    """Record one closed item's result on its Lot; returns the outcome name."""
    lot = store.by_item(item.item_id)
    if lot is None:
        return "untracked"
    if lot.current_status != LotStatus.PUBLISHED:
        return "skipped"

    lot_id = str(lot.id)
    try:
        if item.has_winner:
            store.update(
                lot_id,
                lambda current: current.close_with_winner(
                    item.winner_user_id, item.winning_bid_cents, item.auction_order_id
                ),
            )
        else:
            store.update(lot_id, lambda current: current.close_without_sale())
            return "reserve_not_met"
    except CONCURRENT_WRITE_ERRORS:
        logger.info("Lot already closed, outcome ignored", lot_id=lot_id, item_id=item.item_id)
        return "skipped"

    if item.auction_order_id:
        record_payment_order(
            auction_order_id=item.auction_order_id,
            sale_id=sale_id,
            user_id=item.winner_user_id,
            amount_cents=item.winning_bid_cents,
        )
    return "closed"


def apply_closed_sale(store: LotStore, sale: ClosedSale, item_ids: set[str] | None = None) -> dict:
    counts = dict.fromkeys(OUTCOMES, 0)
    for item in sale.items:
        if item_ids is not None and item.item_id not in item_ids:
            continue
        counts[apply_item_outcome(store, sale.sale_id, item)] += 1
    return counts


def poll_closed_sales(adapters: Adapters, store: LotStore | None = None) -> dict:
    """Apply every closed sale's results; the sweep's catch-up for missed webhooks."""
    store = store or LotStore()
    totals = dict.fromkeys(OUTCOMES, 0)
    sales = adapters.auction.query_closed_sales()
    for sale in sales:
        for outcome, count in apply_closed_sale(store, sale).items():
            totals[outcome] += count

    if totals["closed"] or totals["reserve_not_met"]:
        logger.info("Closed sales polled", sales=len(sales), **totals)
    return {"sales": len(sales), **totals}


def _closed_item_ids(data: dict) -> set[str]:
    return {
        change["itemId"]
        for change in data.get("itemStatusChanges") or []
        if change.get("itemStatus") == "ITEM_CLOSED" and change.get("itemId")
    }


class AuctionEventHandler:
    def __init__(self, adapters: Adapters, store: LotStore | None = None):
        self.adapters = adapters
        self.store = store or LotStore()

    def process(self, payload: dict) -> dict:
        action = payload.get("actionType")
        data = payload.get("data") or {}
        sale_id = data.get("saleId")

        item_ids = None
        if action == "SALE_STATUS_CHANGED" and data.get("saleStatus") == "CLOSED":
            pass
        elif action == "ITEMS_STATUS_CHANGED" and _closed_item_ids(data):
            item_ids = _closed_item_ids(data)
        else:
            return {"status": "ignored", "action_type": action}

        if not sale_id:
            return {"status": "ignored", "action_type": action}

        key = payload.get("idempotencyKey") or f"{action}-{sale_id}-{'-'.join(sorted(item_ids or ()))}"
        if not claim_event(EventSource.AUCTION, key, event_type=action, payload=json.dumps(payload)):
            return {"status": "duplicate"}

        try:
            sale = self.adapters.auction.get_closed_sale(sale_id)
            counts = apply_closed_sale(self.store, sale, item_ids) if sale else dict.fromkeys(OUTCOMES, 0)
        except Exception as e:
            release_event(EventSource.AUCTION, key)
            logger.error("Auction event handling failed", sale_id=sale_id, action_type=action, error=str(e))
            return {"status": "error", "error": str(e)}

        return {"status": "processed", "sale_id": sale_id, **counts}
