"""Domain events for the Lot aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from dropship.domain import dropship


@dropship.event(part_of="Lot")
class LotSourced:
    """A supplier variant was priced and recorded as a new Lot."""

    __version__ = 1

    lot_id = Identifier(required=True)
    supplier_product_id = String(required=True)
    supplier_variant_id = String(required=True)
    reserve_cents = Integer(required=True)
    starting_bid_cents = Integer(required=True)
    created_at = DateTime(required=True)


@dropship.event(part_of="Lot")
class LotStatusChanged:
    """A Lot moved along an edge of the lifecycle graph."""

    __version__ = 1

    lot_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    error_message = Text(sanitize=False)
    changed_at = DateTime(required=True)
