"""Shipping address resolution and validation.

Resolvers are tried in order; the first one that returns an address wins.
The buyer's stored profile comes first, the payment processor's captured
shipping address is the fallback. A resolved address is only usable when
every required field is present and non-blank.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass

from dropship.auction.port import Buyer
from dropship.gateway.port import Invoice
from dropship.supplier.port import ShippingAddress

REQUIRED_ADDRESS_FIELDS = ("name", "line1", "city", "state", "postal_code", "country")


@dataclass(frozen=True)
class AddressSources:
    buyer: Buyer | None = None
    invoice: Invoice | None = None


def from_buyer_profile(sources: AddressSources) -> dict | None:
    if sources.buyer is None:
        return None
    return sources.buyer.shipping_address


def from_payment_shipping(sources: AddressSources) -> dict | None:
    if sources.invoice is None:
        return None
    return sources.invoice.shipping


AddressResolver = Callable[[AddressSources], dict | None]

ADDRESS_RESOLVERS: list[AddressResolver] = [from_buyer_profile, from_payment_shipping]


def resolve_address(sources: AddressSources, resolvers: list[AddressResolver] = ADDRESS_RESOLVERS) -> dict | None:
    for resolver in resolvers:
        address = resolver(sources)
        if address:
            return address
    return None


def missing_fields(address: dict) -> list[str]:
    """Required fields that are absent, None or blank."""
    missing = []
    for name in REQUIRED_ADDRESS_FIELDS:
        value = address.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def to_shipping_address(address: dict) -> ShippingAddress:
    """Convert a validated address dict for the supplier port."""
    return ShippingAddress(
        name=address["name"].strip(),
        line1=address["line1"].strip(),
        line2=(address.get("line2") or "").strip(),
        city=address["city"].strip(),
        state=address["state"].strip(),
        postal_code=address["postal_code"].strip(),
        country=address["country"].strip(),
        phone=(address.get("phone") or "").strip(),
    )


def load_stored_address(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None
