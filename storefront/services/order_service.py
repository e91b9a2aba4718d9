# storefront/services/order_service.py
from math import ceil

from sqlalchemy.orm import Session

from storefront.domain.errors import OrderNotFoundError, ValidationError
from storefront.domain.identity import CartIdentity
from storefront.domain.schemas import OrderOut, OrderPageOut
from storefront.repos.filters import OrderFilter
from storefront.repos.order_repo import OrderRepo


class OrderService:
    """Read side of placed orders. Writes only happen in checkout."""

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    @staticmethod
    def _owner_filter(identity: CartIdentity, status: str | None = None) -> OrderFilter:
        if identity.is_registered:
            return OrderFilter(user_id=identity.user_id, status=status)
        return OrderFilter(session_id=identity.session_id, status=status)

    @staticmethod
    def _owns(order, identity: CartIdentity) -> bool:
        if identity.is_registered:
            return order.user_id == identity.user_id
        return order.user_id is None and order.session_id == identity.session_id

    def get_order(self, order_id: int, identity: CartIdentity) -> OrderOut:
        order = self.repo.get_order(order_id)

        # someone else's order looks exactly like a missing one
        if order is None or not self._owns(order, identity):
            raise OrderNotFoundError("Order not found", order_id=order_id)

        return OrderOut.model_validate(order)

    def list_orders(
        self,
        identity: CartIdentity,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
    ) -> OrderPageOut:
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100", page=page, limit=limit)

        orders, total = self.repo.list_orders(self._owner_filter(identity, status), page=page, limit=limit)
        return OrderPageOut(
            orders=[OrderOut.model_validate(o) for o in orders],
            page=page,
            limit=limit,
            total=total,
            total_pages=ceil(total / limit) if total else 0,
        )
