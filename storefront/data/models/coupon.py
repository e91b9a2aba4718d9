# storefront/data/models/coupon.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, CheckConstraint

from storefront.data.database import Base

DISCOUNT_TYPES = ("percentage", "fixed_amount", "free_shipping")


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)

    discount_type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 2), nullable=False, default=0)
    min_order_amount = Column(Numeric(12, 2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)

    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)

    usage_limit_total = Column(Integer, nullable=True)
    usage_limit_per_customer = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "discount_type IN ('percentage', 'fixed_amount', 'free_shipping')",
            name="ck_coupons_discount_type",
        ),
        CheckConstraint(
            "usage_limit_total IS NULL OR used_count <= usage_limit_total",
            name="ck_coupons_usage_within_limit",
        ),
    )


class CouponUsageModel(Base):
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)

    discount_amount = Column(Numeric(12, 2), nullable=False)
    original_amount = Column(Numeric(12, 2), nullable=False)
    final_amount = Column(Numeric(12, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
