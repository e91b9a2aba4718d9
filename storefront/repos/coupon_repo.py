# storefront/repos/coupon_repo.py
from datetime import datetime

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel, CouponUsageModel
from storefront.repos.filters import CouponFilter


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str, lock: bool = False) -> CouponModel | None:
        stmt = select(CouponModel).where(*CouponFilter(code=code, active_only=False).predicates())
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def find(self, flt: CouponFilter) -> list[CouponModel]:
        stmt = select(CouponModel).where(*flt.predicates()).order_by(CouponModel.value.desc())
        return list(self.db.execute(stmt).scalars().all())

    def count_customer_usages(self, coupon_id: int, user_id: int) -> int:
        stmt = select(func.count(CouponUsageModel.id)).where(
            CouponUsageModel.coupon_id == coupon_id,
            CouponUsageModel.user_id == user_id,
        )
        return self.db.execute(stmt).scalar_one()

    def increment_usage(self, coupon_id: int) -> int:
        stmt = (
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                (CouponModel.usage_limit_total.is_(None))
                | (CouponModel.used_count < CouponModel.usage_limit_total),
            )
            .values(used_count=CouponModel.used_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount

    def add_usage(self, usage: CouponUsageModel) -> CouponUsageModel:
        self.db.add(usage)
        self.db.flush()
        return usage

    def list_usages(self, user_id: int, page: int = 1, limit: int = 10) -> tuple[list[tuple[CouponUsageModel, CouponModel]], int]:
        total = self.db.execute(
            select(func.count(CouponUsageModel.id)).where(CouponUsageModel.user_id == user_id)
        ).scalar_one()
        stmt = (
            select(CouponUsageModel, CouponModel)
            .join(CouponModel, CouponUsageModel.coupon_id == CouponModel.id)
            .where(CouponUsageModel.user_id == user_id)
            .order_by(CouponUsageModel.used_at.desc(), CouponUsageModel.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [tuple(row) for row in self.db.execute(stmt).all()], total

    def deactivate(self, coupon: CouponModel) -> None:
        coupon.is_active = False
        self.db.flush()

    def deactivate_expired(self, now: datetime) -> int:
        stmt = (
            update(CouponModel)
            .where(*CouponFilter(expired_at=now).predicates())
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount
