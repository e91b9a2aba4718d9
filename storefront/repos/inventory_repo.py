# storefront/repos/inventory_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.inventory import InventoryModel


class InventoryRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_record(self, product_id: int, variant: str, lock: bool = False) -> InventoryModel | None:
        stmt = select(InventoryModel).where(
            InventoryModel.product_id == product_id,
            InventoryModel.variant == variant,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def decrement_if_available(self, record_id: int, quantity: int) -> int:
        """UPDATE ... WHERE stock_quantity >= :quantity; 0 rows means the stock was not there."""
        stmt = (
            update(InventoryModel)
            .where(
                InventoryModel.id == record_id,
                InventoryModel.stock_quantity >= quantity,
            )
            .values(stock_quantity=InventoryModel.stock_quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount
