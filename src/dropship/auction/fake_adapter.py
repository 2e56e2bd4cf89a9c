"""Fake auction platform: in-memory sales, results and buyer directory."""

from uuid import uuid4

from dropship.auction.port import AuctionError, AuctionPlatform, Buyer, ClosedSale, ItemSpec


class FakeAuctionPlatform(AuctionPlatform):
    def __init__(self):
        self.sales: dict[str, dict] = {}
        self.closed_sales: list[ClosedSale] = []
        self.buyers: dict[str, Buyer] = {}
        self.cancelled_orders: list[str] = []
        self.failing_items: set[str] = set()  # item titles whose creation fails
        self.fail_queries = False

    def add_buyer(self, buyer: Buyer) -> None:
        self.buyers[buyer.user_id] = buyer

    def close_sale(self, sale: ClosedSale) -> None:
        self.closed_sales.append(sale)

    def query_closed_sales(self) -> list[ClosedSale]:
        if self.fail_queries:
            raise AuctionError("Auction platform unavailable")
        return list(self.closed_sales)

    def create_sale(self, title: str, description: str) -> str:
        sale_id = f"sale-{uuid4().hex[:8]}"
        self.sales[sale_id] = {"title": title, "description": description, "items": [], "published": False}
        return sale_id

    def create_item(self, sale_id: str, spec: ItemSpec) -> str:
        if spec.title in self.failing_items:
            raise AuctionError(f"Item creation rejected: {spec.title}")
        item_id = f"item-{uuid4().hex[:8]}"
        self.sales[sale_id]["items"].append({"item_id": item_id, "spec": spec})
        return item_id

    def publish_sale(self, sale_id: str) -> None:
        self.sales[sale_id]["published"] = True

    def get_buyer(self, user_id: str) -> Buyer | None:
        return self.buyers.get(user_id)

    def cancel_order(self, auction_order_id: str) -> bool:
        self.cancelled_orders.append(auction_order_id)
        return True
