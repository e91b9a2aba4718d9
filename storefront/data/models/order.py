# storefront/data/models/order.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, ForeignKey, Text, event
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)

    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(128), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(20), nullable=False, default="cod")

    customer_name = Column(String(100), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    shipping_address = Column(JSON, nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    shipping = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    grand_total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    coupon_code = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    lines = relationship("OrderLineModel", back_populates="order", order_by="OrderLineModel.id")


class OrderLineModel(Base):
    """Price snapshot taken at checkout; never rewritten afterwards."""

    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    variant = Column(String(50), nullable=False, default="")
    selected_attributes = Column(JSON, nullable=False, default=dict)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    order = relationship("OrderModel", back_populates="lines")


@event.listens_for(OrderLineModel, "before_update")
def _order_lines_are_immutable(mapper, connection, target):
    raise RuntimeError(f"Order line {target.id} is immutable")
