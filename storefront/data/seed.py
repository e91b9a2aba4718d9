# storefront/data/seed.py
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.database import SessionLocal, init_db
from storefront.data.models import ProductModel, InventoryModel, CouponModel
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

DEMO_PRODUCTS = [
    # name, base price, sale price, {size: stock}
    ("Classic Cotton T-Shirt", Decimal("200000"), None, {"S": 10, "M": 15, "L": 8}),
    ("Slim Fit Jeans", Decimal("650000"), Decimal("550000"), {"30": 5, "32": 7}),
    ("Canvas Tote Bag", Decimal("120000"), None, {"": 25}),
]


def seed_catalog(db: Session) -> None:
    """Inserts demo data unless products already exist. Does not commit."""
    if db.query(ProductModel).first():
        logger.info("Catalog already seeded, skipping")
        return

    for name, base_price, sale_price, sizes in DEMO_PRODUCTS:
        product = ProductModel(name=name, base_price=base_price, sale_price=sale_price, is_active=True)
        for size, stock in sizes.items():
            product.variants.append(
                InventoryModel(
                    variant=size,
                    sku=f"{name[:3].upper()}-{size or 'STD'}",
                    stock_quantity=stock,
                )
            )
        db.add(product)

    now = utcnow()
    db.add(
        CouponModel(
            code="SAVE10",
            name="10% off orders from 100,000",
            discount_type="percentage",
            value=Decimal("10"),
            min_order_amount=Decimal("100000"),
            max_discount_amount=Decimal("200000"),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=90),
            usage_limit_total=1000,
            usage_limit_per_customer=1,
        )
    )
    db.flush()
    logger.info(f"Seeded {len(DEMO_PRODUCTS)} products and coupon SAVE10")


def seed():
    init_db()
    db = SessionLocal()
    try:
        seed_catalog(db)
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    seed()
