"""Shared fixtures: a fresh SQLite file database per test with a small seeded catalog."""
import os
from datetime import timedelta
from decimal import Decimal

# before any storefront import, so the module-level engine never points at postgres
os.environ.setdefault("DATABASE_URL", "sqlite:///./storefront-test.db")

import pytest

from storefront.data.database import init_db, make_engine, make_session_factory
from storefront.data.models import CouponModel, InventoryModel, ProductModel
from storefront.utils.clock import utcnow


class FakeLockService:
    """In-memory stand-in for the Redis checkout guard."""

    def __init__(self):
        self.held = {}
        self.calls = []

    def acquire_checkout_lock(self, identity_key, token, ttl):
        self.calls.append(("acquire", identity_key))
        if identity_key in self.held:
            return False
        self.held[identity_key] = token
        return True

    def release_checkout_lock(self, identity_key, token):
        self.calls.append(("release", identity_key))
        if self.held.get(identity_key) == token:
            del self.held[identity_key]
            return True
        return False


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_notification(self, order):
        self.sent.append(order)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    """
    tshirt: 200,000, sizes S (10) and M (1)
    bag:    50,000, unsized, 5 in stock
    jacket: inactive, 300,000
    """
    tshirt = ProductModel(name="T-Shirt", base_price=Decimal("200000"), is_active=True)
    tshirt.variants.append(InventoryModel(variant="S", stock_quantity=10))
    tshirt.variants.append(InventoryModel(variant="M", stock_quantity=1))

    bag = ProductModel(name="Tote Bag", base_price=Decimal("80000"), sale_price=Decimal("50000"), is_active=True)
    bag.variants.append(InventoryModel(variant="", stock_quantity=5))

    jacket = ProductModel(name="Jacket", base_price=Decimal("300000"), is_active=False)
    jacket.variants.append(InventoryModel(variant="", stock_quantity=3))

    db.add_all([tshirt, bag, jacket])
    db.commit()
    return {"tshirt": tshirt.id, "bag": bag.id, "jacket": jacket.id}


def make_coupon(code="SAVE10", discount_type="percentage", value="10", **overrides) -> CouponModel:
    now = utcnow()
    fields = dict(
        code=code,
        name=code,
        discount_type=discount_type,
        value=Decimal(value),
        min_order_amount=Decimal("100000"),
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=30),
        used_count=0,
        is_active=True,
    )
    fields.update(overrides)
    return CouponModel(**fields)


@pytest.fixture
def add_coupon(db):
    def add(code="SAVE10", discount_type="percentage", value="10", **overrides):
        coupon = make_coupon(code, discount_type, value, **overrides)
        db.add(coupon)
        db.commit()
        return coupon

    return add


@pytest.fixture
def save10(add_coupon):
    return add_coupon()


@pytest.fixture
def stock_of(session_factory):
    def read(product_id, variant=""):
        session = session_factory()
        try:
            return (
                session.query(InventoryModel)
                .filter(InventoryModel.product_id == product_id, InventoryModel.variant == variant)
                .one()
                .stock_quantity
            )
        finally:
            session.close()

    return read


@pytest.fixture
def lock_service():
    return FakeLockService()


@pytest.fixture
def notifier():
    return RecordingNotifier()
