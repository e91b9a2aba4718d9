from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.api.deps import get_lock_service, get_notifier
from storefront.data.database import get_db, get_session_factory
from storefront.main import create_app

USER = {"X-User-Id": "1"}
GUEST = {"X-Session-Id": "guest-1"}

ADDRESS = {
    "full_name": "Tran Thi B",
    "phone": "0912345678",
    "line1": "1 Nguyen Hue",
    "city": "Ho Chi Minh",
}


@pytest.fixture
def client(session_factory, catalog, lock_service, notifier):
    app = create_app(use_lifespan=False)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    app.dependency_overrides[get_notifier] = lambda: notifier
    return TestClient(app)


def add(client, headers, product_id, quantity=1, attributes=None):
    resp = client.post("/cart/add", headers=headers, json={"product_id": product_id, "quantity": quantity, "attributes": attributes})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "database": "ok"}


def test_identity_header_required(client):
    resp = client.get("/cart")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "validation_error"


def test_cart_flow(client, catalog):
    line = add(client, USER, catalog["tshirt"], 1, {"size": "S"})
    add(client, USER, catalog["tshirt"], 1, {"size": "S"})

    cart = client.get("/cart", headers=USER).json()
    assert cart["identity"] == "user:1"
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 2
    assert Decimal(cart["summary"]["subtotal"]) == Decimal("400000")

    resp = client.put(f"/cart/line/{line['id']}", headers=USER, json={"quantity": 5})
    assert resp.json()["line"]["quantity"] == 5

    resp = client.put(f"/cart/line/{line['id']}", headers=USER, json={"quantity": 0})
    assert resp.json() == {"removed": True, "line": None}

    summary = client.get("/cart/summary", headers=USER).json()
    assert Decimal(summary["grand_total"]) == 0


def test_negative_quantity_rejected_before_service(client, catalog):
    line = add(client, USER, catalog["bag"])
    resp = client.put(f"/cart/line/{line['id']}", headers=USER, json={"quantity": -1})
    assert resp.status_code == 422


def test_foreign_line_is_404(client, catalog):
    line = add(client, USER, catalog["bag"])

    assert client.put(f"/cart/line/{line['id']}", headers=GUEST, json={"quantity": 2}).status_code == 404
    assert client.delete(f"/cart/line/{line['id']}", headers=GUEST).status_code == 404
    assert client.delete(f"/cart/line/{line['id']}", headers=USER).status_code == 204


def test_inactive_product_is_conflict(client, catalog):
    resp = client.post("/cart/add", headers=USER, json={"product_id": catalog["jacket"], "quantity": 1})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "product_unavailable"


def test_coupon_endpoints(client, catalog, save10):
    add(client, USER, catalog["tshirt"], 1, {"size": "S"})

    resp = client.post("/cart/coupon", headers=USER, json={"code": "SAVE10"})
    assert resp.status_code == 200
    assert Decimal(resp.json()["discount"]) == Decimal("20000")

    resp = client.get("/coupons/SAVE10/validate", params={"order_amount": "50000"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "coupon_below_minimum"

    assert client.get("/coupons/NOPE/validate", params={"order_amount": "50000"}).status_code == 404

    listed = client.get("/coupons/available", params={"order_amount": "200000"}).json()
    assert [(c["code"], Decimal(c["discount_preview"])) for c in listed] == [("SAVE10", Decimal("20000"))]


def test_validate_and_sync(client, catalog):
    add(client, GUEST, catalog["tshirt"], 3, {"size": "M"})

    report = client.get("/cart/validate", headers=GUEST).json()
    assert report["valid"] is False
    assert report["items"][0]["available_quantity"] == 1

    synced = client.post("/cart/sync", headers=GUEST).json()
    assert synced == {"removed_items": 0, "adjusted_items": 1, "total_changes": 1}
    assert client.get("/cart/validate", headers=GUEST).json()["valid"] is True


def test_transfer_requires_user(client, catalog):
    add(client, GUEST, catalog["bag"], 2)

    resp = client.post("/cart/transfer", headers=GUEST, json={"session_id": "guest-1"})
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "login_required"

    resp = client.post("/cart/transfer", headers=USER, json={"session_id": "guest-1"})
    assert resp.json() == {"merged": 0, "reassigned": 1}
    assert client.get("/cart", headers=GUEST).json()["items"] == []
    assert client.get("/cart", headers=USER).json()["items"][0]["quantity"] == 2


def test_checkout_and_orders(client, catalog, save10, notifier):
    add(client, USER, catalog["tshirt"], 1, {"size": "S"})

    resp = client.post(
        "/checkout",
        headers=USER,
        json={"shipping_address": ADDRESS, "payment_method": "cod", "coupon_code": "SAVE10"},
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert Decimal(body["grand_total"]) == Decimal("250000")
    assert body["warnings"] == []
    assert len(notifier.sent) == 1

    order = client.get(f"/orders/{body['order_id']}", headers=USER).json()
    assert order["order_number"] == body["order_number"]
    assert order["coupon_code"] == "SAVE10"
    assert order["lines"][0]["variant"] == "S"

    assert client.get(f"/orders/{body['order_id']}", headers={"X-User-Id": "2"}).status_code == 404

    page = client.get("/orders", headers=USER, params={"limit": 5}).json()
    assert (page["total"], page["total_pages"], len(page["orders"])) == (1, 1, 1)

    assert client.get("/cart", headers=USER).json()["items"] == []


def test_checkout_empty_cart_is_400(client, catalog):
    resp = client.post("/checkout", headers=GUEST, json={"shipping_address": ADDRESS})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "empty_cart"


def test_checkout_insufficient_stock_is_409(client, catalog):
    add(client, USER, catalog["tshirt"], 2, {"size": "M"})

    resp = client.post("/checkout", headers=USER, json={"shipping_address": ADDRESS})

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "cart_invalid"


def test_busy_checkout_is_retried_then_503(client, catalog, lock_service):
    add(client, USER, catalog["bag"])
    lock_service.held["user:1"] = "other-request"

    resp = client.post("/checkout", headers=USER, json={"shipping_address": ADDRESS})

    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "1"
    assert [c for c in lock_service.calls if c[0] == "acquire"] == [("acquire", "user:1")] * 3


def test_cart_count_statistics_and_checkout_preview(client, catalog, save10):
    add(client, GUEST, catalog["tshirt"], 2, {"size": "S"})
    add(client, GUEST, catalog["bag"], 1)

    assert client.get("/cart/count", headers=GUEST).json() == {"count": 3}

    stats = client.get("/cart/statistics", headers=GUEST).json()
    assert (stats["item_count"], stats["out_of_stock_items"]) == (2, 0)
    assert Decimal(stats["price_range"]["max"]) == Decimal("200000")

    preview = client.get("/cart/checkout/prepare", headers=GUEST, params={"coupon_code": "SAVE10"}).json()
    assert preview["coupon"]["code"] == "SAVE10"
    assert Decimal(preview["summary"]["discount"]) == Decimal("45000")
    assert len(preview["items"]) == 2

    resp = client.get("/cart/checkout/prepare", headers=USER)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "empty_cart"


def test_coupon_history(client, catalog, save10):
    assert client.get("/coupons/history", headers=GUEST).status_code == 401
    assert client.get("/coupons/history", headers=USER).json()["total"] == 0

    add(client, USER, catalog["tshirt"], 1, {"size": "S"})
    order = client.post(
        "/checkout",
        headers=USER,
        json={"shipping_address": ADDRESS, "coupon_code": "SAVE10"},
    ).json()

    history = client.get("/coupons/history", headers=USER).json()
    assert (history["total"], history["total_pages"]) == (1, 1)
    [entry] = history["history"]
    assert (entry["order_id"], entry["code"]) == (order["order_id"], "SAVE10")
    assert Decimal(entry["discount_amount"]) == Decimal("20000")
    assert Decimal(entry["final_amount"]) == Decimal("250000")
