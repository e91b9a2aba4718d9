# storefront/services/product_client.py
from decimal import Decimal

import requests

from storefront.services.catalog import ProductSnapshot
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """Catalog backed by the remote product-service (``CATALOG_BACKEND=http``)."""

    def __init__(self, base_url: str | None = None, timeout: int = 2, session: requests.Session | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    @http_retry()
    def fetch_product(self, product_id: int) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = self.http.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_product(self, product_id: int) -> ProductSnapshot | None:
        data = self.fetch_product(product_id)
        if data is None:
            return None

        price = data.get("sale_price") or data.get("current_price") or data["price"]
        status = data.get("status")
        is_active = data.get("is_active", status in (None, "active"))
        return ProductSnapshot(
            product_id=int(data.get("id", product_id)),
            name=data.get("name", f"product-{product_id}"),
            is_active=bool(is_active),
            current_price=Decimal(str(price)),
        )
