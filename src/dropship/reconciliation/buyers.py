"""Buyer lookups that never interrupt reconciliation."""

import structlog

from dropship.auction.port import AuctionPlatform, Buyer

logger = structlog.get_logger(__name__)


def lookup_buyer(auction: AuctionPlatform, user_id: str | None) -> Buyer | None:
    if not user_id:
        return None
    try:
        return auction.get_buyer(user_id)
    except Exception as e:
        logger.warning("Buyer lookup failed", user_id=user_id, error=str(e))
        return None


def buyer_email(buyer: Buyer | None, fallback: str | None = None) -> str | None:
    if buyer is not None and buyer.email:
        return buyer.email
    return fallback
