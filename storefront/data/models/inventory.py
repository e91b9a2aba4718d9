# storefront/data/models/inventory.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class InventoryModel(Base):
    """Stock for one purchasable variant; ``variant`` is "" for unsized products."""

    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant = Column(String(50), nullable=False, default="")
    sku = Column(String(64), nullable=True)

    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship("ProductModel", back_populates="variants")

    __table_args__ = (
        UniqueConstraint("product_id", "variant", name="u_inventory_product_variant"),
        CheckConstraint("stock_quantity >= 0", name="ck_inventory_stock_non_negative"),
    )
