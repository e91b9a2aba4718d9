# storefront/data/models/product.py
from sqlalchemy import Column, Integer, String, Boolean, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)

    base_price = Column(Numeric(12, 2), nullable=False)
    sale_price = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    variants = relationship(
        "InventoryModel",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    @property
    def current_price(self):
        return self.sale_price if self.sale_price is not None else self.base_price
