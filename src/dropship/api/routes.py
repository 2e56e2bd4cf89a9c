"""FastAPI routes for the dropship pipeline: webhooks, cron triggers and Lot reads."""

import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from protean.exceptions import ObjectNotFoundError

from dropship.api.deps import get_adapters, require_cron_secret
from dropship.api.schemas import (
    AuctionWebhookResponse,
    LotDetail,
    LotListResponse,
    LotSummary,
    PricingResponse,
    SourcingRequest,
    SourcingResponse,
    SupplierWebhookResponse,
    SweepResponse,
    WebhookResponse,
)
from dropship.container import Adapters
from dropship.lot.lot import Lot, LotStatus
from dropship.lot.store import LotStore
from dropship.pricing.engine import PricingParams, compute_pricing
from dropship.reconciliation.auction_events import AuctionEventHandler, verify_auction_signature
from dropship.reconciliation.payment_events import PaymentEventHandler
from dropship.reconciliation.supplier_events import SupplierEventHandler, authenticate_supplier
from dropship.sourcing.sourcing import SourcingService
from dropship.sweep.sweep import SweepOrchestrator

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/payments", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(default=""),
    adapters: Adapters = Depends(get_adapters),
) -> WebhookResponse:
    """Reconcile a payment gateway event. The signature is checked before anything else."""
    payload = (await request.body()).decode()
    if not adapters.gateway.verify_webhook_signature(payload, stripe_signature):
        logger.warning("Payment webhook signature rejected")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = adapters.gateway.parse_event(payload)
    except (ValueError, KeyError) as e:
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    result = PaymentEventHandler(adapters).process(event)
    if result["status"] == "error":
        # Non-2xx makes the gateway redeliver
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return WebhookResponse(status=result["status"], event_id=event.id, lots=result.get("lots", []))


@webhook_router.post("/supplier", response_model=SupplierWebhookResponse)
async def supplier_webhook(
    request: Request,
    x_cj_signature: str = Header(default=""),
    authorization: str = Header(default=""),
    adapters: Adapters = Depends(get_adapters),
) -> SupplierWebhookResponse:
    """Apply a supplier order-status or logistics update."""
    secret = adapters.settings.supplier_webhook_secret
    if not secret:
        logger.error("Supplier webhook secret is not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")
    if not authenticate_supplier(x_cj_signature, authorization, secret):
        logger.warning("Unauthorized supplier webhook attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    status_code, body = SupplierEventHandler(adapters).process(payload)
    if status_code != 200:
        raise HTTPException(status_code=status_code, detail=body.get("error"))
    return SupplierWebhookResponse(**body)


@webhook_router.post("/auction", response_model=AuctionWebhookResponse)
async def auction_webhook(
    request: Request,
    x_basta_signature: str = Header(default=""),
    x_fastbid_webhook_token: str = Header(default=""),
    adapters: Adapters = Depends(get_adapters),
) -> AuctionWebhookResponse:
    """Record closed-item results pushed by the auction platform."""
    secret = adapters.settings.auction_webhook_secret
    if not secret:
        raise HTTPException(status_code=400, detail="Webhook not configured")

    raw_body = (await request.body()).decode()
    if not verify_auction_signature(raw_body, x_basta_signature, x_fastbid_webhook_token, secret):
        logger.warning("Auction webhook signature rejected")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e

    result = AuctionEventHandler(adapters).process(payload)
    if result["status"] == "error":
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return AuctionWebhookResponse(**{k: v for k, v in result.items() if k in AuctionWebhookResponse.model_fields})


# ---------------------------------------------------------------------------
# Cron Router
# ---------------------------------------------------------------------------
cron_router = APIRouter(tags=["cron"], dependencies=[Depends(require_cron_secret)])


@cron_router.post("/sweep", response_model=SweepResponse)
async def run_sweep(adapters: Adapters = Depends(get_adapters)) -> SweepResponse:
    """Run the periodic poll / fulfillment retry / refund sweep."""
    return SweepResponse(**SweepOrchestrator(adapters).run())


@cron_router.post("/sourcing/run", response_model=SourcingResponse)
async def run_sourcing(body: SourcingRequest, adapters: Adapters = Depends(get_adapters)) -> SourcingResponse:
    """Source, list and publish a new sale for a keyword."""
    report = SourcingService(adapters).source(body.keyword, body.max_cost_cents, body.max_items)
    return SourcingResponse(**report.to_dict())


# ---------------------------------------------------------------------------
# Lot Router
# ---------------------------------------------------------------------------
lot_router = APIRouter(prefix="/lots", tags=["lots"])


def _summary(lot: Lot) -> LotSummary:
    return LotSummary(
        lot_id=str(lot.id),
        product_name=lot.product_name,
        status=lot.status,
        sale_id=lot.sale_id,
        item_id=lot.item_id,
        reserve_cents=lot.reserve_cents,
        winning_bid_cents=lot.winning_bid_cents,
        updated_at=lot.updated_at,
    )


def _get_lot(lot_id: str) -> Lot:
    try:
        return LotStore().get(lot_id)
    except ObjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Lot {lot_id} not found") from e


@lot_router.get("", response_model=LotListResponse)
async def list_lots(status: str | None = None) -> LotListResponse:
    """List Lots, optionally filtered by status, with counts per status."""
    store = LotStore()
    if status is not None:
        try:
            lots = store.by_status(LotStatus(status))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Unknown status {status}") from e
    else:
        lots = store.all()
    return LotListResponse(lots=[_summary(lot) for lot in lots], counts=store.status_counts())


@lot_router.get("/{lot_id}", response_model=LotDetail)
async def get_lot(lot_id: str) -> LotDetail:
    lot = _get_lot(lot_id)
    return LotDetail(
        **_summary(lot).model_dump(),
        supplier_product_id=lot.supplier_product_id,
        supplier_variant_id=lot.supplier_variant_id,
        variant_name=lot.variant_name,
        supplier_cost_cents=lot.supplier_cost_cents,
        supplier_shipping_cents=lot.supplier_shipping_cents,
        suggested_retail_cents=lot.suggested_retail_cents,
        starting_bid_cents=lot.starting_bid_cents,
        winner_user_id=lot.winner_user_id,
        invoice_id=lot.invoice_id,
        supplier_order_id=lot.supplier_order_id,
        supplier_order_status=lot.supplier_order_status,
        tracking_number=lot.tracking_number,
        tracking_carrier=lot.tracking_carrier,
        total_cost_cents=lot.total_cost_cents,
        profit_cents=lot.profit_cents,
        error_message=lot.error_message,
        created_at=lot.created_at,
    )


@lot_router.get("/{lot_id}/pricing", response_model=PricingResponse)
async def get_lot_pricing(lot_id: str, adapters: Adapters = Depends(get_adapters)) -> PricingResponse:
    """Recompute pricing from the Lot's recorded supplier costs."""
    lot = _get_lot(lot_id)
    settings = adapters.settings
    result = compute_pricing(
        PricingParams(
            product_cost_cents=lot.supplier_cost_cents,
            shipping_cost_cents=lot.supplier_shipping_cents or 0,
            buyer_premium_rate=settings.buyer_premium_rate,
            suggested_retail_cents=lot.suggested_retail_cents,
            safety_margin=settings.safety_margin,
            price_buffer=settings.price_buffer,
        )
    )
    return PricingResponse(
        lot_id=lot_id,
        reserve_cents=result.reserve_cents,
        starting_bid_cents=result.starting_bid_cents,
        total_cost_cents=result.total_cost_cents,
        worst_case_net_profit_cents=result.worst_case_net_profit_cents,
        break_even_bid_cents=result.break_even_bid_cents,
        reserve_markup=result.reserve_markup,
    )
