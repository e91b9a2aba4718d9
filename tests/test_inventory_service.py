import pytest
from sqlalchemy.exc import OperationalError

from storefront.domain.errors import BusyError, InsufficientStockError
from storefront.services.inventory_service import InventoryLedger, VariantKey, is_lock_timeout


def test_availability(db, catalog):
    ledger = InventoryLedger(db)

    assert ledger.available(VariantKey(catalog["tshirt"], "S")) == 10
    assert ledger.check_availability(VariantKey(catalog["tshirt"], "M"), 1)
    assert not ledger.check_availability(VariantKey(catalog["tshirt"], "M"), 2)
    # unknown variant has no stock
    assert ledger.available(VariantKey(catalog["tshirt"], "XXL")) == 0


def test_decrement_commits_with_caller(db, catalog, stock_of):
    ledger = InventoryLedger(db)

    assert ledger.decrement(VariantKey(catalog["tshirt"], "S"), 4) == 6
    db.commit()

    assert stock_of(catalog["tshirt"], "S") == 6


def test_decrement_never_goes_negative(db, catalog, stock_of):
    ledger = InventoryLedger(db)

    with pytest.raises(InsufficientStockError) as exc:
        ledger.decrement(VariantKey(catalog["tshirt"], "M"), 2)

    assert exc.value.available == 1
    assert exc.value.requested == 2
    db.rollback()
    assert stock_of(catalog["tshirt"], "M") == 1


def test_rollback_undoes_decrement(db, catalog, stock_of):
    InventoryLedger(db).decrement(VariantKey(catalog["bag"], ""), 5)
    db.rollback()

    assert stock_of(catalog["bag"]) == 5


def test_guard_catches_stock_taken_after_read(db, session_factory, catalog):
    """Another transaction takes the last unit after this one read the row."""
    key = VariantKey(catalog["tshirt"], "M")
    ledger = InventoryLedger(db)
    assert ledger.available(key) == 1

    other = session_factory()
    try:
        InventoryLedger(other).decrement(key, 1)
        other.commit()
    finally:
        other.close()

    with pytest.raises(InsufficientStockError) as exc:
        ledger.decrement(key, 1)
    assert exc.value.available == 0


def test_lock_timeout_becomes_busy(db, catalog, monkeypatch):
    ledger = InventoryLedger(db)

    class PgLockTimeout(Exception):
        pgcode = "55P03"

    def timeout(*args, **kwargs):
        raise OperationalError("SELECT ... FOR UPDATE", {}, PgLockTimeout("canceling statement due to lock timeout"))

    monkeypatch.setattr(ledger.repo, "get_record", timeout)

    with pytest.raises(BusyError) as exc:
        ledger.decrement(VariantKey(catalog["bag"], ""), 1)
    assert exc.value.retryable


def test_is_lock_timeout_matches_messages():
    assert is_lock_timeout(OperationalError("x", {}, Exception("database is locked")))
    assert not is_lock_timeout(OperationalError("x", {}, Exception("no such table: inventory")))
