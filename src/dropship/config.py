"""Runtime settings read from the environment.

A single ``Settings`` instance is built at process start and handed to
``build_adapters()``; nothing else reads ``os.environ`` directly.
"""

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    environment: str = "development"

    # Shared secrets
    cron_secret: str = ""
    supplier_webhook_secret: str = ""
    auction_webhook_secret: str = ""

    # Payment gateway
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Supplier (CJ Dropshipping)
    supplier_api_key: str = ""
    supplier_base_url: str = "https://developers.cjdropshipping.com/api2.0/v1"
    order_number_prefix: str = "DS"
    default_logistic_name: str = "CJPacket"

    # Auction platform (Basta)
    auction_api_key: str = ""
    auction_account_id: str = ""
    auction_base_url: str = "https://management.api.basta.app/graphql"

    # Transactional email (Resend)
    resend_api_key: str = ""
    email_from: str = "Auctions <noreply@example.com>"

    # Alerting
    alert_email: str = ""
    alert_webhook_url: str = ""

    # Pricing
    buyer_premium_rate: float = 0.15
    price_buffer: float = 0.20
    safety_margin: float = 0.05

    # Timeouts and sweep thresholds
    http_timeout_seconds: float = 10.0
    stale_paid_minutes: int = 30
    stale_auction_closed_minutes: int = 30
    stale_ordered_minutes: int = 120
    stuck_alert_minutes: int = 240

    # "fake" wires in-memory adapters, "live" wires stripe/httpx adapters
    adapters: str = "fake"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.environ.get("PROTEAN_ENV", "development")
        return cls(
            environment=environment,
            cron_secret=os.environ.get("CRON_SECRET", ""),
            supplier_webhook_secret=os.environ.get("CJ_WEBHOOK_SECRET", ""),
            auction_webhook_secret=os.environ.get("BASTA_WEBHOOK_SECRET", ""),
            stripe_secret_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET", ""),
            supplier_api_key=os.environ.get("CJ_API_KEY", ""),
            supplier_base_url=os.environ.get("CJ_BASE_URL", cls.supplier_base_url),
            order_number_prefix=os.environ.get("ORDER_NUMBER_PREFIX", "DS"),
            auction_api_key=os.environ.get("BASTA_API_KEY", ""),
            auction_account_id=os.environ.get("BASTA_ACCOUNT_ID", ""),
            auction_base_url=os.environ.get("BASTA_BASE_URL", cls.auction_base_url),
            resend_api_key=os.environ.get("RESEND_API_KEY", ""),
            email_from=os.environ.get("RESEND_FROM", cls.email_from),
            alert_email=os.environ.get("ALERT_EMAIL", ""),
            alert_webhook_url=os.environ.get("ALERT_WEBHOOK_URL", ""),
            buyer_premium_rate=_env_float("BUYER_PREMIUM_RATE", 0.15),
            price_buffer=_env_float("PRICE_BUFFER", 0.20),
            safety_margin=_env_float("SAFETY_MARGIN", 0.05),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
            stale_paid_minutes=_env_int("STALE_PAID_MINUTES", 30),
            stale_auction_closed_minutes=_env_int("STALE_AUCTION_CLOSED_MINUTES", 30),
            stale_ordered_minutes=_env_int("STALE_ORDERED_MINUTES", 120),
            stuck_alert_minutes=_env_int("STUCK_ALERT_MINUTES", 240),
            adapters=os.environ.get("ADAPTERS", "live" if environment == "production" else "fake"),
        )
