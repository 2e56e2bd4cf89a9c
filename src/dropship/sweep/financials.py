"""Realized financials across all Lots."""

from dataclasses import asdict, dataclass

from dropship.lot.lot import LotStatus
from dropship.lot.store import LotStore

# The buyer has paid: PAID and everything after it on the success path
PAID_OR_BEYOND = frozenset(
    {
        LotStatus.PAID,
        LotStatus.CJ_ORDERED,
        LotStatus.CJ_PAID,
        LotStatus.SHIPPED,
        LotStatus.DELIVERED,
    }
)


@dataclass(frozen=True)
class FinancialSummary:
    total_revenue_cents: int = 0
    total_cost_cents: int = 0
    total_profit_cents: int = 0
    profit_margin_pct: float = 0.0
    refund_count: int = 0
    refund_amount_cents: int = 0
    lots_sold: int = 0
    lots_delivered: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def financial_summary(store: LotStore | None = None) -> FinancialSummary:
    store = store or LotStore()
    revenue = cost = profit = refunds = refund_amount = sold = delivered = 0

    for lot in store.all():
        status = lot.current_status
        if status in PAID_OR_BEYOND:
            sold += 1
            revenue += lot.winning_bid_cents or 0
        if lot.total_cost_cents is not None:
            cost += lot.total_cost_cents
        if lot.profit_cents is not None:
            profit += lot.profit_cents
        # Cancelled after payment means the buyer was refunded
        if status == LotStatus.CANCELLED and lot.invoice_id:
            refunds += 1
            refund_amount += lot.winning_bid_cents or 0
        if status == LotStatus.DELIVERED:
            delivered += 1

    return FinancialSummary(
        total_revenue_cents=revenue,
        total_cost_cents=cost,
        total_profit_cents=profit,
        profit_margin_pct=round(profit / revenue * 100, 2) if revenue else 0.0,
        refund_count=refunds,
        refund_amount_cents=refund_amount,
        lots_sold=sold,
        lots_delivered=delivered,
    )
