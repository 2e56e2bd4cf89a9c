from dropship.supplier.fake_adapter import FakeSupplier
from dropship.supplier.port import OrderFailure, OrderRequest, OrderResult, ShippingAddress, SupplierAPI, SupplierError

__all__ = [
    "FakeSupplier",
    "OrderFailure",
    "OrderRequest",
    "OrderResult",
    "ShippingAddress",
    "SupplierAPI",
    "SupplierError",
]
