# storefront/services/inventory_service.py
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from storefront.domain.attributes import SelectedAttributes
from storefront.domain.errors import BusyError, InsufficientStockError
from storefront.repos.inventory_repo import InventoryRepo
from storefront.utils.settings import STOCK_LOCK_TIMEOUT_MS, VARIANT_ATTRIBUTE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# 55P03 = lock_not_available (postgres lock_timeout / NOWAIT)
_LOCK_TIMEOUT_PGCODES = {"55P03"}


def is_lock_timeout(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _LOCK_TIMEOUT_PGCODES:
        return True
    msg = str(orig or exc).lower()
    return "lock timeout" in msg or "database is locked" in msg or "could not obtain lock" in msg


@dataclass(frozen=True, order=True)
class VariantKey:
    """One purchasable variant; ``variant`` is "" for products without sizes."""

    product_id: int
    variant: str = ""

    @classmethod
    def for_line(cls, product_id: int, attributes: SelectedAttributes) -> "VariantKey":
        return cls(product_id=product_id, variant=attributes.get(VARIANT_ATTRIBUTE, "") or "")

    def __str__(self) -> str:
        return f"{self.product_id}/{self.variant or 'default'}"


class InventoryLedger:
    """
    Per-variant stock counts.

    ``decrement`` locks the inventory row (SELECT ... FOR UPDATE, bounded by
    ``lock_timeout`` on PostgreSQL) and then runs a guarded UPDATE that only
    succeeds while ``stock_quantity >= quantity``. Nothing is committed here:
    the caller's transaction owns the lock and the write, and a rollback
    undoes both.
    """

    def __init__(self, db: Session, lock_timeout_ms: int = STOCK_LOCK_TIMEOUT_MS):
        self.db = db
        self.repo = InventoryRepo(db)
        self.lock_timeout_ms = lock_timeout_ms
        self._timeout_set = False

    def available(self, key: VariantKey) -> int:
        record = self.repo.get_record(key.product_id, key.variant)
        if record is None or not record.is_active:
            return 0
        return record.stock_quantity

    def check_availability(self, key: VariantKey, quantity: int) -> bool:
        return self.available(key) >= quantity

    def _set_lock_timeout(self) -> None:
        if self._timeout_set:
            return
        if self.db.get_bind().dialect.name == "postgresql":
            # SET LOCAL lasts until the end of the current transaction
            self.db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))
        self._timeout_set = True

    def decrement(self, key: VariantKey, quantity: int) -> int:
        """Returns the stock left; raises InsufficientStockError or BusyError."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        self._set_lock_timeout()
        try:
            record = self.repo.get_record(key.product_id, key.variant, lock=True)
            if record is None or not record.is_active:
                raise InsufficientStockError(key.product_id, key.variant, 0, quantity)

            if record.stock_quantity < quantity:
                raise InsufficientStockError(key.product_id, key.variant, record.stock_quantity, quantity)

            rowcount = self.repo.decrement_if_available(record.id, quantity)
        except OperationalError as e:
            if is_lock_timeout(e):
                logger.warning(f"Stock lock timeout on {key} after {self.lock_timeout_ms} ms")
                raise BusyError("Inventory is busy, retry the checkout", product_id=key.product_id) from e
            raise

        if rowcount == 0:
            # the guard refused: stock moved between the read and the write
            self.db.refresh(record)
            raise InsufficientStockError(key.product_id, key.variant, record.stock_quantity, quantity)

        logger.info(f"Decremented {key} by {quantity}, left {record.stock_quantity}")
        return record.stock_quantity

