"""Auction platform port (abstract interface).

The platform runs its own bidding and closing; the pipeline only creates
sales and items, publishes them, reads closed results back, looks up the
winning buyer and cancels the platform's payment order on refund.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ClosedItem:
    item_id: str
    winner_user_id: str | None = None
    winning_bid_cents: int | None = None
    reserve_met: bool = True
    bid_count: int = 0
    auction_order_id: str | None = None

    @property
    def has_winner(self) -> bool:
        return bool(self.winner_user_id) and self.bid_count > 0 and self.reserve_met


@dataclass(frozen=True)
class ClosedSale:
    sale_id: str
    items: tuple[ClosedItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Buyer:
    user_id: str
    email: str | None = None
    name: str | None = None
    shipping_address: dict | None = None


@dataclass(frozen=True)
class ItemSpec:
    title: str
    description: str
    starting_bid_cents: int
    reserve_cents: int
    image_urls: tuple[str, ...] = ()


class AuctionError(Exception):
    """An auction platform call failed."""


class AuctionPlatform(ABC):
    @abstractmethod
    def query_closed_sales(self) -> list[ClosedSale]:
        """Sales closed on the platform, with per-item outcomes."""
        ...

    def get_closed_sale(self, sale_id: str) -> ClosedSale | None:
        for sale in self.query_closed_sales():
            if sale.sale_id == sale_id:
                return sale
        return None

    @abstractmethod
    def create_sale(self, title: str, description: str) -> str: ...

    @abstractmethod
    def create_item(self, sale_id: str, spec: ItemSpec) -> str: ...

    @abstractmethod
    def publish_sale(self, sale_id: str) -> None: ...

    @abstractmethod
    def get_buyer(self, user_id: str) -> Buyer | None: ...

    @abstractmethod
    def cancel_order(self, auction_order_id: str) -> bool:
        """Best effort; never raises."""
        ...
