# storefront/services/catalog.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy.orm import Session

from storefront.repos.product_repo import ProductRepo
from storefront.utils.settings import CATALOG_BACKEND


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    name: str
    is_active: bool
    current_price: Decimal


class Catalog(Protocol):
    def get_product(self, product_id: int) -> ProductSnapshot | None: ...


class SqlCatalog:
    """Reads products from the same database, inside the caller's transaction."""

    def __init__(self, db: Session):
        self.repo = ProductRepo(db)

    def get_product(self, product_id: int) -> ProductSnapshot | None:
        p = self.repo.get_product(product_id)
        if p is None:
            return None
        return ProductSnapshot(
            product_id=p.id,
            name=p.name,
            is_active=bool(p.is_active),
            current_price=Decimal(p.current_price),
        )


def build_catalog(db: Session, backend: str = CATALOG_BACKEND) -> Catalog:
    if backend == "http":
        from storefront.services.product_client import ProductClient

        return ProductClient()
    return SqlCatalog(db)
