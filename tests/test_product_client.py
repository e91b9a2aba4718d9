from decimal import Decimal

import pytest
import requests

from storefront.services.catalog import SqlCatalog, build_catalog
from storefront.services.product_client import ProductClient


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.urls = []

    def get(self, url, timeout):
        self.urls.append(url)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_get_product_maps_payload():
    http = FakeSession([FakeResponse(200, {"id": 4, "name": "Cap", "price": 90000, "sale_price": 70000, "status": "active"})])
    client = ProductClient(base_url="http://catalog/", session=http)

    product = client.get_product(4)

    assert http.urls == ["http://catalog/products/4"]
    assert product.current_price == Decimal("70000")
    assert product.is_active


def test_missing_product_is_none():
    client = ProductClient(base_url="http://catalog", session=FakeSession([FakeResponse(404)]))
    assert client.get_product(1) is None


def test_transient_errors_are_retried():
    http = FakeSession([requests.ConnectionError("reset"), FakeResponse(200, {"id": 1, "name": "x", "price": 10})])
    client = ProductClient(base_url="http://catalog", session=http)

    assert client.get_product(1).current_price == Decimal("10")
    assert len(http.urls) == 2


def test_server_error_raises_after_retries():
    http = FakeSession([FakeResponse(500)] * 3)
    client = ProductClient(base_url="http://catalog", session=http)

    with pytest.raises(requests.HTTPError):
        client.fetch_product(1)
    assert len(http.urls) == 3


def test_build_catalog_backends(db):
    assert isinstance(build_catalog(db, backend="sql"), SqlCatalog)
    assert isinstance(build_catalog(db, backend="http"), ProductClient)
