# storefront/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from storefront.data.models.cart_line import CartLineModel
from storefront.domain.identity import CartIdentity
from storefront.repos.filters import CartLineFilter


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_lines(self, identity: CartIdentity, lock: bool = False) -> list[CartLineModel]:
        stmt = (
            select(CartLineModel)
            .where(*CartLineFilter(identity=identity).predicates())
            .order_by(CartLineModel.created_at.desc(), CartLineModel.id.desc())
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def get_line_for_identity(self, line_id: int, identity: CartIdentity) -> CartLineModel | None:
        # ownership is part of the lookup, so a foreign line looks exactly like a missing one
        stmt = select(CartLineModel).where(
            CartLineModel.id == line_id,
            *CartLineFilter(identity=identity).predicates(),
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def find_line(
        self,
        identity: CartIdentity,
        product_id: int,
        attributes_key: str,
        lock: bool = False,
    ) -> CartLineModel | None:
        flt = CartLineFilter(identity=identity, product_id=product_id, attributes_key=attributes_key)
        stmt = select(CartLineModel).where(*flt.predicates())
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_line(self, line: CartLineModel) -> CartLineModel:
        self.db.add(line)
        self.db.flush()
        return line

    def delete_line(self, line: CartLineModel) -> None:
        self.db.delete(line)
        self.db.flush()

    def clear(self, identity: CartIdentity) -> int:
        stmt = delete(CartLineModel).where(*CartLineFilter(identity=identity).predicates())
        result = self.db.execute(stmt, execution_options={"synchronize_session": False})
        return result.rowcount or 0

    def stale_identities(self, updated_before: datetime) -> list[CartIdentity]:
        stmt = (
            select(CartLineModel.user_id, CartLineModel.session_id)
            .where(*CartLineFilter(updated_before=updated_before).predicates())
            .distinct()
        )
        out = []
        for user_id, session_id in self.db.execute(stmt).all():
            if user_id is not None:
                out.append(CartIdentity.for_user(user_id))
            else:
                out.append(CartIdentity.for_guest(session_id))
        return out

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
