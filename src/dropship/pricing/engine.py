"""Profit-guaranteed auction pricing.

The reserve is the smallest winning bid that still leaves a non-negative
profit after the buyer premium, processor fees and a worst-case rise in
supplier cost:

    reserve = ceil( [C * (1+F) * (1+M) + S_fix] / [(1+BP) * (1-S_pct)] )

The starting bid is a low anchor, deterministic per cost and staggered so
that listings never show identical round prices.

All amounts are integer cents. No state, no I/O.
"""

import math
from dataclasses import dataclass

# Payment processor: 2.9% + 30c per transaction
PROCESSOR_PERCENTAGE = 0.029
PROCESSOR_FIXED_CENTS = 30

# Supplier cost may rise this much before the fulfillment guard aborts
PRICE_FLUCTUATION_BUFFER = 0.20

# Minimum margin above break-even
DEFAULT_SAFETY_MARGIN = 0.05

# Starting bid never exceeds this share of the supplier's suggested retail price
RETAIL_CAP_RATE = 0.15

# (max total cost in cents, min bid, max bid); last tier is open-ended
STARTING_BID_TIERS = (
    (500, 1, 99),
    (1500, 50, 399),
    (3000, 150, 599),
    (None, 300, 999),
)


@dataclass(frozen=True)
class PricingParams:
    """Supplier cost inputs and fee assumptions for one item."""

    product_cost_cents: int
    shipping_cost_cents: int
    buyer_premium_rate: float
    suggested_retail_cents: int | None = None
    safety_margin: float = DEFAULT_SAFETY_MARGIN
    price_buffer: float = PRICE_FLUCTUATION_BUFFER

    @property
    def total_cost_cents(self) -> int:
        return self.product_cost_cents + self.shipping_cost_cents


@dataclass(frozen=True)
class PricingResult:
    """Reserve and starting bid plus diagnostics (never used for control flow)."""

    reserve_cents: int
    starting_bid_cents: int
    total_cost_cents: int
    worst_case_net_profit_cents: int
    break_even_bid_cents: int
    reserve_markup: float


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_reserve(params: PricingParams) -> int:
    """Minimum winning bid that keeps profit >= 0 under worst-case cost drift."""
    numerator = (
        params.total_cost_cents * (1 + params.price_buffer) * (1 + params.safety_margin) + PROCESSOR_FIXED_CENTS
    )
    denominator = (1 + params.buyer_premium_rate) * (1 - PROCESSOR_PERCENTAGE)
    return math.ceil(numerator / denominator)


def compute_break_even(params: PricingParams) -> int:
    """Reserve with no buffer and no margin."""
    return compute_reserve(
        PricingParams(
            product_cost_cents=params.product_cost_cents,
            shipping_cost_cents=params.shipping_cost_cents,
            buyer_premium_rate=params.buyer_premium_rate,
            safety_margin=0,
            price_buffer=0,
        )
    )


def penny_stagger(cost_cents: int) -> int:
    """Repeatable 0-99 value from an avalanche mix of the cost.

    A one-cent change in cost yields an unrelated value.
    """
    h = cost_cents & 0xFFFFFFFF
    h = (((h >> 16) ^ h) * 0x45D9F3B) & 0xFFFFFFFF
    h = (((h >> 16) ^ h) * 0x45D9F3B) & 0xFFFFFFFF
    h = (h >> 16) ^ h
    return h % 100


def starting_bid_tier(total_cost_cents: int) -> tuple[int, int]:
    """Return the ``(min, max)`` starting bid range for a cost."""
    for ceiling, low, high in STARTING_BID_TIERS:
        if ceiling is None or total_cost_cents <= ceiling:
            return low, high
    raise AssertionError("unreachable")


def is_round_price(cents: int) -> bool:
    """True for whole-dollar and half-dollar amounts."""
    return cents % 50 == 0


def _avoid_round(bid: int, stagger: int, low: int, high: int) -> int:
    if not is_round_price(bid):
        return bid

    # Odd offsets below 50 can never land on another multiple of 50
    offset = 13 + 2 * (stagger % 18) if bid % 100 == 0 else 7 + 2 * (stagger % 11)
    for candidate in (bid + offset, bid - offset, bid + 1, bid - 1):
        if low <= candidate <= high and candidate >= 1:
            return candidate
    return bid


def compute_starting_bid(params: PricingParams) -> int:
    total_cost = params.total_cost_cents
    stagger = penny_stagger(total_cost)
    low, high = starting_bid_tier(total_cost)

    bid = low + _round_half_up(stagger / 100 * (high - low))
    bid = _avoid_round(bid, stagger, low, high)

    if params.suggested_retail_cents and params.suggested_retail_cents > 0:
        cap = _round_half_up(params.suggested_retail_cents * RETAIL_CAP_RATE)
        if bid > cap:
            # Cap below the tier floor: the whole band shrinks to [1, cap]
            cap_low = low if cap > low else 1
            if cap >= cap_low:
                bid = cap_low + stagger % (cap - cap_low + 1)
                bid = _avoid_round(bid, stagger, cap_low, cap)
            else:
                bid = cap_low

    return max(1, bid)


def compute_pricing(params: PricingParams) -> PricingResult:
    """Reserve, starting bid and diagnostics for one item."""
    total_cost = params.total_cost_cents
    reserve = compute_reserve(params)

    gross_revenue = reserve * (1 + params.buyer_premium_rate)
    processor_fee = gross_revenue * PROCESSOR_PERCENTAGE + PROCESSOR_FIXED_CENTS
    # Worst case: supplier cost has drifted up by the full buffer
    worst_case_cost = total_cost * (1 + params.price_buffer)
    worst_case_profit = _round_half_up(gross_revenue - processor_fee - worst_case_cost)

    markup = (reserve - total_cost) / total_cost if total_cost > 0 else 0.0

    return PricingResult(
        reserve_cents=reserve,
        starting_bid_cents=compute_starting_bid(params),
        total_cost_cents=total_cost,
        worst_case_net_profit_cents=worst_case_profit,
        break_even_bid_cents=compute_break_even(params),
        reserve_markup=markup,
    )
