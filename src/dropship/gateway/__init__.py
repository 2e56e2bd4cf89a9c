from dropship.gateway.fake_adapter import FakeGateway
from dropship.gateway.port import Invoice, PaymentEvent, PaymentGateway, RefundResult

__all__ = ["FakeGateway", "Invoice", "PaymentEvent", "PaymentGateway", "RefundResult"]
