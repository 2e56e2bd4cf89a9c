"""Dropship bounded context: auction arbitrage fulfillment and reconciliation.

Tracks every sourced unit (Lot) from supplier selection through auction,
payment, supplier ordering, shipment and refund. Reconciles asynchronous
events from the payment gateway, the auction platform and the supplier
against the Lot Store.
"""

from protean.domain import Domain

from dropship.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

dropship = Domain(name="dropship")
