# storefront/repos/order_repo.py
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel, OrderLineModel
from storefront.repos.filters import OrderFilter


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def add_lines(self, order: OrderModel, lines: list[OrderLineModel]) -> None:
        for line in lines:
            line.order_id = order.id
        self.db.add_all(lines)
        self.db.flush()

    def get_order(self, order_id: int) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.lines))
            .where(OrderModel.id == order_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_orders(self, flt: OrderFilter, page: int = 1, limit: int = 10) -> tuple[list[OrderModel], int]:
        predicates = flt.predicates()
        total = self.db.execute(select(func.count(OrderModel.id)).where(*predicates)).scalar_one()
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.lines))
            .where(*predicates)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all()), total
