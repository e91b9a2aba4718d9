# storefront/data/models/cart_line.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, JSON,
    ForeignKey, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartLineModel(Base):
    __tablename__ = "cart_lines"

    id = Column(Integer, primary_key=True)

    # exactly one of these is set
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    attributes_key = Column(String(512), nullable=False, default="{}")
    selected_attributes = Column(JSON, nullable=False, default=dict)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    product = relationship("ProductModel")

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL AND session_id IS NOT NULL) OR (user_id IS NOT NULL AND session_id IS NULL)",
            name="ck_cart_lines_single_identity",
        ),
        CheckConstraint("quantity > 0", name="ck_cart_lines_quantity_positive"),
        UniqueConstraint("user_id", "product_id", "attributes_key", name="u_cart_user_product_attrs"),
        UniqueConstraint("session_id", "product_id", "attributes_key", name="u_cart_session_product_attrs"),
    )
