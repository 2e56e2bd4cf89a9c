"""Supplier fulfillment port (abstract interface).

Covers the supplier calls the pipeline makes: catalog search and freight
quotes for sourcing, stock and price re-checks before ordering, order
placement, payment and status lookup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class OrderFailure(Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    PRICE_CHANGED = "PRICE_CHANGED"
    TRANSIENT = "TRANSIENT"  # Network error or timeout; eligible for the next sweep
    OTHER = "OTHER"


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    line1: str
    city: str
    state: str
    postal_code: str
    country: str
    line2: str = ""
    phone: str = ""


@dataclass(frozen=True)
class OrderRequest:
    order_number: str
    variant_id: str
    quantity: int
    address: ShippingAddress
    logistic_name: str
    from_country: str = "CN"


@dataclass(frozen=True)
class OrderResult:
    """Result of an order placement attempt."""

    success: bool
    order_id: str | None = None
    order_number: str | None = None
    total_cost_cents: int | None = None
    failure: OrderFailure | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class SupplierVariant:
    variant_id: str
    product_id: str
    name: str
    cost_cents: int
    suggested_retail_cents: int | None = None
    stock: int | None = None
    image_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class SupplierProduct:
    product_id: str
    name: str
    variants: tuple[SupplierVariant, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FreightOption:
    logistic_name: str
    cost_cents: int
    days: str | None = None


class SupplierError(Exception):
    """A supplier call failed; callers decide whether it blocks."""


class SupplierAPI(ABC):
    @abstractmethod
    def search_products(self, keyword: str, page_size: int = 20) -> list[SupplierProduct]: ...

    @abstractmethod
    def get_freight_options(self, variant_id: str, from_country: str, to_country: str) -> list[FreightOption]: ...

    @abstractmethod
    def get_stock(self, variant_id: str) -> int:
        """Units available; raises ``SupplierError`` when the lookup fails."""
        ...

    @abstractmethod
    def get_variant_cost(self, variant_id: str) -> int:
        """Current unit cost in cents; raises ``SupplierError`` when the lookup fails."""
        ...

    @abstractmethod
    def place_order(self, request: OrderRequest) -> OrderResult: ...

    @abstractmethod
    def pay_order(self, order_id: str) -> bool: ...

    @abstractmethod
    def confirm_order(self, order_id: str) -> bool: ...

    @abstractmethod
    def get_order_status(self, order_id: str) -> dict | None:
        """Return ``{"status", "tracking_number", "tracking_carrier"}`` or None."""
        ...
