"""Fake supplier adapter: in-memory catalog and order book for testing."""

from uuid import uuid4

from dropship.supplier.port import (
    FreightOption,
    OrderFailure,
    OrderRequest,
    OrderResult,
    SupplierAPI,
    SupplierError,
    SupplierProduct,
)


class FakeSupplier(SupplierAPI):
    """Supplier adapter that records calls and returns configured answers."""

    def __init__(self):
        self.products: list[SupplierProduct] = []
        self.freight: dict[str, list[FreightOption]] = {}
        self.stock: dict[str, int] = {}
        self.costs: dict[str, int] = {}
        self.orders: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.order_failure: OrderFailure | None = None
        self.order_cost_cents: int | None = None
        self.pay_succeeds = True
        self.lookups_fail = False

    def configure(
        self,
        order_failure: OrderFailure | None = None,
        order_cost_cents: int | None = None,
        pay_succeeds: bool = True,
        lookups_fail: bool = False,
    ):
        """Configure the fake adapter behavior for testing."""
        self.order_failure = order_failure
        self.order_cost_cents = order_cost_cents
        self.pay_succeeds = pay_succeeds
        self.lookups_fail = lookups_fail

    def search_products(self, keyword: str, page_size: int = 20) -> list[SupplierProduct]:
        self.calls.append({"method": "search_products", "keyword": keyword})
        return [p for p in self.products if keyword.lower() in p.name.lower()][:page_size]

    def get_freight_options(self, variant_id: str, from_country: str, to_country: str) -> list[FreightOption]:
        return list(self.freight.get(variant_id, [FreightOption(logistic_name="CJPacket", cost_cents=500)]))

    def get_stock(self, variant_id: str) -> int:
        if self.lookups_fail:
            raise SupplierError("Inventory lookup unavailable")
        return self.stock.get(variant_id, 100)

    def get_variant_cost(self, variant_id: str) -> int:
        if self.lookups_fail:
            raise SupplierError("Variant lookup unavailable")
        if variant_id not in self.costs:
            raise SupplierError(f"Unknown variant {variant_id}")
        return self.costs[variant_id]

    def place_order(self, request: OrderRequest) -> OrderResult:
        self.calls.append({"method": "place_order", "request": request})

        if self.order_failure is not None:
            return OrderResult(
                success=False,
                failure=self.order_failure,
                failure_reason=f"Supplier rejected order: {self.order_failure.value}",
            )

        order_id = f"cj-{uuid4().hex[:12]}"
        cost = self.order_cost_cents if self.order_cost_cents is not None else self.costs.get(request.variant_id, 0)
        self.orders[order_id] = {"status": "CREATED", "request": request}
        return OrderResult(
            success=True,
            order_id=order_id,
            order_number=request.order_number,
            total_cost_cents=cost,
        )

    def pay_order(self, order_id: str) -> bool:
        self.calls.append({"method": "pay_order", "order_id": order_id})
        if self.pay_succeeds and order_id in self.orders:
            self.orders[order_id]["status"] = "PAID"
            return True
        return False

    def confirm_order(self, order_id: str) -> bool:
        self.calls.append({"method": "confirm_order", "order_id": order_id})
        return order_id in self.orders

    def get_order_status(self, order_id: str) -> dict | None:
        order = self.orders.get(order_id)
        if order is None:
            return None
        return {
            "status": order["status"],
            "tracking_number": order.get("tracking_number"),
            "tracking_carrier": order.get("tracking_carrier"),
        }
