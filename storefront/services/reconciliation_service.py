# storefront/services/reconciliation_service.py
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, sessionmaker

from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import ReconciliationOut
from storefront.repos.cart_repo import CartRepo
from storefront.services.catalog import Catalog, build_catalog
from storefront.services.cart_service import inspect_lines
from storefront.services.inventory_service import InventoryLedger, VariantKey
from storefront.utils.clock import utcnow
from storefront.utils.settings import STALE_CART_HOURS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ReconciliationJob:
    """
    Brings a cart back in line with the catalog and stock, outside checkout.

    Lines of inactive or missing products are removed. Lines whose variant
    has less stock than requested are cut down to what is left (oldest line
    served first) and removed when nothing is left.
    """

    def __init__(self, db: Session, catalog: Catalog | None = None):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = catalog or build_catalog(db)
        self.ledger = InventoryLedger(db)

    def reconcile(self, identity: CartIdentity) -> ReconciliationOut:
        removed = adjusted = 0
        try:
            lines = self.repo.get_lines(identity, lock=True)
            inspections = sorted(inspect_lines(self.catalog, lines), key=lambda i: (i.line.created_at, i.line.id))

            remaining: dict[VariantKey, int] = {}
            for item in inspections:
                if not item.is_active:
                    self.repo.delete_line(item.line)
                    removed += 1
                    continue

                if item.key not in remaining:
                    remaining[item.key] = self.ledger.available(item.key)

                left = remaining[item.key]
                if left <= 0:
                    self.repo.delete_line(item.line)
                    removed += 1
                    continue

                if item.line.quantity > left:
                    logger.info(f"Line {item.line.id} cut from {item.line.quantity} to {left} ({item.key})")
                    item.line.quantity = left
                    item.line.updated_at = utcnow()
                    adjusted += 1

                remaining[item.key] = left - item.line.quantity

            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if removed or adjusted:
            logger.info(f"Reconciled cart {identity}: removed={removed} adjusted={adjusted}")
        return ReconciliationOut(
            removed_items=removed,
            adjusted_items=adjusted,
            total_changes=removed + adjusted,
        )


def sweep_stale_carts(
    session_factory: sessionmaker,
    stale_hours: int = STALE_CART_HOURS,
    now: datetime | None = None,
) -> dict:
    """Reconcile every cart with a line untouched for ``stale_hours``, one transaction per cart."""
    cutoff = (now or utcnow()) - timedelta(hours=stale_hours)

    db = session_factory()
    try:
        identities = CartRepo(db).stale_identities(cutoff)
    finally:
        db.close()

    totals = defaultdict(int)
    failed = 0
    for identity in identities:
        db = session_factory()
        try:
            result = ReconciliationJob(db).reconcile(identity)
            totals["removed_items"] += result.removed_items
            totals["adjusted_items"] += result.adjusted_items
        except Exception as e:
            # one bad cart must not stop the sweep
            failed += 1
            logger.exception(f"Reconciliation of cart {identity} failed: {e}")
        finally:
            db.close()

    logger.info(
        f"Stale cart sweep: carts={len(identities)} failed={failed} "
        f"removed={totals['removed_items']} adjusted={totals['adjusted_items']}"
    )
    return {
        "carts": len(identities),
        "failed": failed,
        "removed_items": totals["removed_items"],
        "adjusted_items": totals["adjusted_items"],
    }
