# storefront/repos/filters.py
"""
Typed filter objects.

Each filter turns its set fields into SQLAlchemy predicates, so callers
combine conditions by filling in fields instead of concatenating SQL.
Unset fields add nothing.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, or_

from storefront.data.models.cart_line import CartLineModel
from storefront.data.models.coupon import CouponModel
from storefront.data.models.order import OrderModel
from storefront.domain.identity import CartIdentity


def identity_predicate(identity: CartIdentity):
    if identity.is_registered:
        return CartLineModel.user_id == identity.user_id
    return and_(CartLineModel.session_id == identity.session_id, CartLineModel.user_id.is_(None))


@dataclass(frozen=True)
class CartLineFilter:
    identity: CartIdentity | None = None
    product_id: int | None = None
    attributes_key: str | None = None
    updated_before: datetime | None = None

    def predicates(self) -> list:
        out = []
        if self.identity is not None:
            out.append(identity_predicate(self.identity))
        if self.product_id is not None:
            out.append(CartLineModel.product_id == self.product_id)
        if self.attributes_key is not None:
            out.append(CartLineModel.attributes_key == self.attributes_key)
        if self.updated_before is not None:
            out.append(CartLineModel.updated_at < self.updated_before)
        return out


@dataclass(frozen=True)
class CouponFilter:
    code: str | None = None
    active_only: bool = True
    valid_at: datetime | None = None
    # coupons whose minimum is reachable with this order amount
    order_amount: Decimal | None = None
    with_remaining_uses: bool = False
    expired_at: datetime | None = None

    def predicates(self) -> list:
        out = []
        if self.code is not None:
            out.append(CouponModel.code == self.code)
        if self.active_only:
            out.append(CouponModel.is_active.is_(True))
        if self.valid_at is not None:
            out.append(CouponModel.valid_from <= self.valid_at)
            out.append(CouponModel.valid_until >= self.valid_at)
        if self.order_amount is not None:
            out.append(CouponModel.min_order_amount <= self.order_amount)
        if self.with_remaining_uses:
            out.append(
                or_(
                    CouponModel.usage_limit_total.is_(None),
                    CouponModel.used_count < CouponModel.usage_limit_total,
                )
            )
        if self.expired_at is not None:
            out.append(CouponModel.valid_until < self.expired_at)
        return out


@dataclass(frozen=True)
class OrderFilter:
    user_id: int | None = None
    session_id: str | None = None
    status: str | None = None

    def predicates(self) -> list:
        out = []
        if self.user_id is not None:
            out.append(OrderModel.user_id == self.user_id)
        if self.session_id is not None:
            out.append(OrderModel.session_id == self.session_id)
        if self.status and self.status != "all":
            out.append(OrderModel.status == self.status)
        return out
