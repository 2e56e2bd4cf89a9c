"""Adapter container: one instance of every external-system port.

Built once per process by ``build_adapters`` and passed to each service's
constructor. Tests build one from fakes directly.
"""

from dataclasses import dataclass, field

from dropship.alerts.fake_sink import FakeAlertSink
from dropship.alerts.sink import AlertSink, OperatorAlertSink
from dropship.auction.fake_adapter import FakeAuctionPlatform
from dropship.auction.port import AuctionPlatform
from dropship.config import Settings
from dropship.gateway.fake_adapter import FakeGateway
from dropship.gateway.port import PaymentGateway
from dropship.notification.channel.email_port import EmailPort
from dropship.notification.channel.fake_email import FakeEmailAdapter
from dropship.supplier.fake_adapter import FakeSupplier
from dropship.supplier.port import SupplierAPI


@dataclass
class Adapters:
    gateway: PaymentGateway
    supplier: SupplierAPI
    auction: AuctionPlatform
    alerts: AlertSink
    email: EmailPort
    settings: Settings = field(default_factory=Settings)


def fake_adapters(settings: Settings | None = None) -> Adapters:
    """In-memory adapters for development and tests."""
    return Adapters(
        gateway=FakeGateway(),
        supplier=FakeSupplier(),
        auction=FakeAuctionPlatform(),
        alerts=FakeAlertSink(),
        email=FakeEmailAdapter(),
        settings=settings or Settings(),
    )


def live_adapters(settings: Settings) -> Adapters:
    from dropship.auction.basta_adapter import BastaAuctionPlatform
    from dropship.gateway.stripe_adapter import StripeGateway
    from dropship.notification.channel.resend_email import ResendEmailAdapter
    from dropship.supplier.cj_adapter import CJSupplier

    timeout = settings.http_timeout_seconds
    email = ResendEmailAdapter(api_key=settings.resend_api_key, from_address=settings.email_from, timeout=timeout)
    return Adapters(
        gateway=StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout=timeout,
        ),
        supplier=CJSupplier(api_key=settings.supplier_api_key, base_url=settings.supplier_base_url, timeout=timeout),
        auction=BastaAuctionPlatform(
            api_key=settings.auction_api_key,
            account_id=settings.auction_account_id,
            base_url=settings.auction_base_url,
            timeout=timeout,
        ),
        alerts=OperatorAlertSink(
            email=email,
            alert_email=settings.alert_email,
            webhook_url=settings.alert_webhook_url,
            timeout=timeout,
        ),
        email=email,
        settings=settings,
    )


def build_adapters(settings: Settings | None = None) -> Adapters:
    settings = settings or Settings.from_env()
    if settings.adapters == "live":
        return live_adapters(settings)
    return fake_adapters(settings)
