from decimal import Decimal
from unittest.mock import patch

import pytest
import redis
import requests
from fastapi.testclient import TestClient

from cart_engine.api import create_app
from cart_engine.api.routers import carts
from cart_engine.data.database import get_db
from cart_engine.services.cart_service import CartService
from cart_engine.services.cart_store import GuestCartStore


@pytest.fixture
def client(db, redis_client, product_client):
    app = create_app()
    app.dependency_overrides[carts.get_service] = lambda: CartService(
        GuestCartStore("api-token", client=redis_client), db, product_client
    )
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


SUMMER = {
    "selections": [
        {"product_id": "tshirt", "variant_id": "ts-m-red"},
        {"product_id": "hoodie", "variant_id": "hd-m-black"},
        {"product_id": "cap", "variant_id": "cap-one"},
    ]
}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_add_line_and_get_cart(client, variants):
    res = client.post("/cart/lines", json={"product_id": "tshirt", "quantity": 2, "size": "M", "color": "Red"})

    assert res.status_code == 200
    body = res.json()
    assert body["owner_ref"] == "guest:api-token"
    assert len(body["lines"]) == 1
    assert Decimal(body["summary"]["subtotal"]) == Decimal("200.00")

    assert client.get("/cart").json()["summary"]["item_count"] == 2


def test_add_line_rejects_zero_quantity(client):
    res = client.post("/cart/lines", json={"product_id": "tshirt", "quantity": 0})

    assert res.status_code == 422


def test_bulk_order(client, variants, tshirt_tiers):
    res = client.post(
        "/cart/bulk",
        json={
            "product_id": "tshirt",
            "variants": [{"size": "M", "color": "Red", "quantity": 30}, {"size": "L", "color": "Red", "quantity": 20}],
        },
    )

    assert res.status_code == 200
    assert {l["bulk_tier_id"] for l in res.json()["lines"]} == {"t50"}


def test_bundle_out_of_stock_is_conflict(client, variants, make_offer, db):
    make_offer()
    variants["cap-one"].stock_quantity = 0
    db.commit()

    res = client.post("/cart/bundles/summer", json=SUMMER)

    assert res.status_code == 409
    assert res.json()["detail"] == {
        "kind": "insufficient_stock",
        "message": "Brak stanu dla wariantu cap-one",
        "item_ref": "cap-one",
    }


def test_unknown_offer_is_gone(client):
    res = client.post("/cart/bundles/nope", json=SUMMER)

    assert res.status_code == 410
    assert res.json()["detail"]["kind"] == "offer_unavailable"


def test_bundle_added(client, variants, make_offer):
    make_offer(special_price=Decimal("250.00"))

    res = client.post("/cart/bundles/summer", json=SUMMER)

    assert res.status_code == 200
    assert Decimal(res.json()["summary"]["subtotal"]) == Decimal("250.00")


def test_update_and_remove_line(client, variants):
    line = client.post("/cart/lines", json={"product_id": "tshirt", "quantity": 2}).json()["lines"][0]

    res = client.patch(f"/cart/lines/{line['id']}", json={"quantity": 5, "expected_version": line["version"]})
    assert res.json()["lines"][0]["quantity"] == 5

    stale = client.patch(f"/cart/lines/{line['id']}", json={"quantity": 1, "expected_version": line["version"]})
    assert stale.status_code == 409
    assert stale.json()["detail"]["kind"] == "concurrency_conflict"

    res = client.delete(f"/cart/lines/{line['id']}")
    assert res.json()["lines"] == []


def test_wishlist_requires_identity(client):
    assert client.get("/wishlist").status_code == 400


def test_wishlist_rejects_guest(client):
    res = client.post("/wishlist", params={"session_token": "abc"}, json={"product_id": "tshirt"})

    assert res.status_code == 401
    assert res.json()["detail"]["kind"] == "authorization_required"


def test_wishlist_for_user(client):
    created = client.post("/wishlist", params={"user_id": 7}, json={"product_id": "tshirt"}).json()

    assert [i["product_id"] for i in client.get("/wishlist", params={"user_id": 7}).json()] == ["tshirt"]

    assert client.delete(f"/wishlist/{created['id']}", params={"user_id": 7}).status_code == 204
    assert client.get("/wishlist", params={"user_id": 7}).json() == []


def test_session_transition_queues_migration(client):
    with patch("cart_engine.api.routers.session.migrate_guest_cart_task") as task:
        task.delay.return_value.id = "task-1"
        res = client.post("/session/authenticated", json={"session_token": "session-abc", "user_id": 7})

    assert res.status_code == 202
    assert res.json() == {"status": "queued", "task_id": "task-1"}
    task.delay.assert_called_once_with("session-abc", 7)


def test_catalog_failure_is_backend_failure(client, product_client):
    product_client.get_base_price.side_effect = requests.HTTPError("404 Client Error: Not Found")

    res = client.post("/cart/lines", json={"product_id": "tshirt", "quantity": 1})

    assert res.status_code == 503
    assert res.json()["detail"]["kind"] == "backend_failure"
    assert res.json()["detail"]["item_ref"] is None


def test_redis_failure_is_backend_failure(client):
    with patch.object(GuestCartStore, "list", side_effect=redis.ConnectionError("redis niedostepny")):
        res = client.get("/cart")

    assert res.status_code == 503
    assert res.json()["detail"]["kind"] == "backend_failure"
