"""Lot Store: queries and validated writes over the Lot repository.

Every status write re-reads the Lot first, so the transition gate always
validates against the currently persisted status rather than a stale copy
held by the caller.
"""

from collections import Counter
from collections.abc import Callable, Iterable

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from dropship.lot.lot import InvalidTransition, Lot, LotStatus

logger = structlog.get_logger(__name__)

_QUERY_LIMIT = 1000

IN_TRANSIT_STATUSES = (LotStatus.CJ_PAID, LotStatus.SHIPPED)

# Either one means another invocation moved the Lot first
CONCURRENT_WRITE_ERRORS = (InvalidTransition, ExpectedVersionError)


class LotStore:
    @property
    def repo(self):
        return current_domain.repository_for(Lot)

    def _filter(self, **criteria) -> list[Lot]:
        return self.repo._dao.query.filter(**criteria).limit(_QUERY_LIMIT).all().items

    def _first(self, **criteria) -> Lot | None:
        items = self._filter(**criteria)
        return items[0] if items else None

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, lot_id: str) -> Lot:
        return self.repo.get(lot_id)

    def find(self, lot_id: str) -> Lot | None:
        try:
            return self.repo.get(lot_id)
        except ObjectNotFoundError:
            return None

    def by_item(self, item_id: str) -> Lot | None:
        return self._first(item_id=item_id)

    def by_sale(self, sale_id: str) -> list[Lot]:
        return _oldest_first(self._filter(sale_id=sale_id))

    def by_status(self, *statuses: LotStatus) -> list[Lot]:
        lots = []
        for status in statuses:
            lots.extend(self._filter(status=status.value))
        return _oldest_first(lots)

    def by_supplier_order(self, supplier_order_id: str) -> Lot | None:
        return self._first(supplier_order_id=supplier_order_id)

    def by_invoice(self, invoice_id: str) -> list[Lot]:
        return _oldest_first(self._filter(invoice_id=invoice_id))

    def by_winner(self, winner_user_id: str) -> list[Lot]:
        return _oldest_first(self._filter(winner_user_id=winner_user_id))

    def by_supplier_variant(self, supplier_variant_id: str) -> list[Lot]:
        return self._filter(supplier_variant_id=supplier_variant_id)

    def in_transit(self) -> list[Lot]:
        return self.by_status(*IN_TRANSIT_STATUSES)

    def all(self) -> list[Lot]:
        return _oldest_first(self.repo._dao.query.limit(_QUERY_LIMIT).all().items)

    def status_counts(self) -> dict[str, int]:
        counts = Counter(lot.status for lot in self.all())
        return {status.value: counts.get(status.value, 0) for status in LotStatus}

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def add(self, lot: Lot) -> Lot:
        self.repo.add(lot)
        return lot

    def update(self, lot_id: str, change: Callable[[Lot], None]) -> Lot:
        """Apply ``change`` to a freshly loaded Lot and persist it.

        ``change`` calls one of the Lot's transition methods; an
        ``InvalidTransition`` propagates before anything is persisted. A
        concurrent write between the load and the save surfaces as
        ``ExpectedVersionError``.
        """
        lot = self.get(lot_id)
        before = lot.status
        change(lot)
        self.repo.add(lot)
        if lot.status != before:
            logger.info("Lot transitioned", lot_id=str(lot.id), from_status=before, to_status=lot.status)
        return lot


def _oldest_first(lots: Iterable[Lot]) -> list[Lot]:
    return sorted(lots, key=lambda lot: (lot.created_at is None, lot.created_at))
