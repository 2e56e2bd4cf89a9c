"""Pydantic request/response schemas for the dropship API.

These are external contracts, kept separate from the Protean aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
class WebhookResponse(BaseModel):
    status: str
    event_id: str | None = None
    lots: list[dict] = Field(default_factory=list)


class SupplierWebhookResponse(BaseModel):
    status: str
    lot_id: str | None = None
    lot_status: str | None = None


class AuctionWebhookResponse(BaseModel):
    status: str
    sale_id: str | None = None
    closed: int = 0
    reserve_not_met: int = 0
    skipped: int = 0
    untracked: int = 0


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------
class SweepResponse(BaseModel):
    ok: bool
    results: dict


class SourcingRequest(BaseModel):
    keyword: str = Field(min_length=1, max_length=100)
    max_cost_cents: int = Field(gt=0)
    max_items: int = Field(default=10, ge=1, le=50)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "keyword": "wireless earbuds",
                    "max_cost_cents": 2500,
                    "max_items": 10,
                }
            ]
        }
    }


class SourcingResponse(BaseModel):
    keyword: str
    sale_id: str | None = None
    sourced: int
    listed: int
    published: bool
    skipped: int
    lot_ids: list[str]
    errors: list[str]


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------
class LotSummary(BaseModel):
    lot_id: str
    product_name: str | None = None
    status: str
    sale_id: str | None = None
    item_id: str | None = None
    reserve_cents: int | None = None
    winning_bid_cents: int | None = None
    updated_at: datetime | None = None


class LotDetail(LotSummary):
    supplier_product_id: str
    supplier_variant_id: str
    variant_name: str | None = None
    supplier_cost_cents: int
    supplier_shipping_cents: int | None = None
    suggested_retail_cents: int | None = None
    starting_bid_cents: int | None = None
    winner_user_id: str | None = None
    invoice_id: str | None = None
    supplier_order_id: str | None = None
    supplier_order_status: str | None = None
    tracking_number: str | None = None
    tracking_carrier: str | None = None
    total_cost_cents: int | None = None
    profit_cents: int | None = None
    error_message: str | None = None
    created_at: datetime | None = None


class LotListResponse(BaseModel):
    lots: list[LotSummary]
    counts: dict[str, int]


class PricingResponse(BaseModel):
    lot_id: str
    reserve_cents: int
    starting_bid_cents: int
    total_cost_cents: int
    worst_case_net_profit_cents: int
    break_even_bid_cents: int
    reserve_markup: float
