"""Basta auction platform adapter (management GraphQL API)."""

import httpx
import structlog

from dropship.auction.port import AuctionError, AuctionPlatform, Buyer, ClosedItem, ClosedSale, ItemSpec

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 50

SALES_QUERY = """
query Sales($accountId: String!, $first: Int!, $after: String) {
  sales(accountId: $accountId, first: $first, after: $after) {
    edges { node { id status } }
    pageInfo { hasNextPage endCursor }
  }
}
"""

SALE_ITEMS_QUERY = """
query SaleItems($accountId: String!, $id: ID!, $first: Int!, $after: String) {
  sale(accountId: $accountId, id: $id) {
    id
    items(first: $first, after: $after) {
      edges { node { id status leaderId currentBid reserveMet totalBids orderId } }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

CREATE_SALE_MUTATION = """
mutation CreateSale($accountId: String!, $input: CreateSaleInput!) {
  createSale(accountId: $accountId, input: $input) { id }
}
"""

CREATE_ITEM_MUTATION = """
mutation CreateItem($accountId: String!, $input: CreateItemForSaleInput!) {
  createItemForSale(accountId: $accountId, input: $input) { id }
}
"""

PUBLISH_SALE_MUTATION = """
mutation PublishSale($accountId: String!, $input: PublishSaleInput!) {
  publishSale(accountId: $accountId, input: $input) { id status }
}
"""

READ_USER_MUTATION = """
mutation ReadUser($accountId: String!, $input: UpdateUserInput!) {
  updateUser(accountId: $accountId, input: $input) {
    userId
    email
    name
    shippingAddress { name line1 line2 city state postalCode country phone }
    addressesV2 { name line1 line2 city state postalCode country phone addressType }
  }
}
"""

CANCEL_ORDER_MUTATION = """
mutation CancelOrder($accountId: String!, $input: CancelOrderInput!) {
  cancelOrder(accountId: $accountId, input: $input) { id status }
}
"""


def _address_from_basta(raw: dict | None) -> dict | None:
    if not raw or not raw.get("line1"):
        return None
    return {
        "name": raw.get("name") or "",
        "line1": raw.get("line1") or "",
        "line2": raw.get("line2") or "",
        "city": raw.get("city") or "",
        "state": raw.get("state") or "",
        "postal_code": raw.get("postalCode") or "",
        "country": raw.get("country") or "",
        "phone": raw.get("phone") or "",
    }


class BastaAuctionPlatform(AuctionPlatform):
    def __init__(
        self,
        api_key: str,
        account_id: str,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.account_id = account_id
        self.base_url = base_url
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout=timeout),
            headers={"x-api-key": api_key, "x-account-id": account_id},
        )

    def _gql(self, query: str, variables: dict) -> dict:
        try:
            response = self.client.post(
                self.base_url,
                json={"query": query, "variables": {"accountId": self.account_id, **variables}},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AuctionError(f"Basta request failed: {e}") from e

        body = response.json()
        if body.get("errors"):
            raise AuctionError(f"Basta GraphQL error: {body['errors'][0].get('message')}")
        return body.get("data") or {}

    def _paginate(self, query: str, variables: dict, path: tuple[str, ...]):
        after = None
        while True:
            data = self._gql(query, {**variables, "first": _PAGE_SIZE, "after": after})
            connection = data
            for key in path:
                connection = (connection or {}).get(key)
            if not connection:
                return
            for edge in connection.get("edges") or []:
                if edge and edge.get("node"):
                    yield edge["node"]
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return
            after = page_info.get("endCursor")

    def _closed_items(self, sale_id: str) -> tuple[ClosedItem, ...]:
        return tuple(
            ClosedItem(
                item_id=node["id"],
                winner_user_id=node.get("leaderId"),
                winning_bid_cents=node.get("currentBid"),
                reserve_met=node.get("reserveMet") is not False,
                bid_count=node.get("totalBids") or (1 if node.get("currentBid") else 0),
                auction_order_id=node.get("orderId"),
            )
            for node in self._paginate(SALE_ITEMS_QUERY, {"id": sale_id}, ("sale", "items"))
            if node.get("status") == "ITEM_CLOSED"
        )

    def query_closed_sales(self) -> list[ClosedSale]:
        return [
            ClosedSale(sale_id=sale["id"], items=self._closed_items(sale["id"]))
            for sale in self._paginate(SALES_QUERY, {}, ("sales",))
            if sale.get("status") == "CLOSED"
        ]

    def get_closed_sale(self, sale_id: str) -> ClosedSale | None:
        items = self._closed_items(sale_id)
        return ClosedSale(sale_id=sale_id, items=items) if items else None

    def create_sale(self, title: str, description: str) -> str:
        data = self._gql(
            CREATE_SALE_MUTATION,
            {"input": {"title": title, "description": description, "currency": "USD"}},
        )
        return data["createSale"]["id"]

    def create_item(self, sale_id: str, spec: ItemSpec) -> str:
        data = self._gql(
            CREATE_ITEM_MUTATION,
            {
                "input": {
                    "saleId": sale_id,
                    "title": spec.title,
                    "description": spec.description,
                    "startingBid": spec.starting_bid_cents,
                    "reserve": spec.reserve_cents,
                }
            },
        )
        return data["createItemForSale"]["id"]

    def publish_sale(self, sale_id: str) -> None:
        self._gql(PUBLISH_SALE_MUTATION, {"input": {"saleId": sale_id}})

    def get_buyer(self, user_id: str) -> Buyer | None:
        data = self._gql(READ_USER_MUTATION, {"input": {"userId": user_id, "idType": "IDENTITY_PROVIDER_ID"}})
        user = data.get("updateUser")
        if not user:
            return None

        address = _address_from_basta(user.get("shippingAddress"))
        if address is None:
            shipping = [a for a in user.get("addressesV2") or [] if a.get("addressType") == "SHIPPING"]
            address = _address_from_basta(shipping[0]) if shipping else None

        return Buyer(user_id=user_id, email=user.get("email"), name=user.get("name"), shipping_address=address)

    def cancel_order(self, auction_order_id: str) -> bool:
        try:
            self._gql(CANCEL_ORDER_MUTATION, {"input": {"orderId": auction_order_id}})
        except AuctionError as e:
            logger.warning("Auction order cancellation failed", auction_order_id=auction_order_id, error=str(e))
            return False
        return True
