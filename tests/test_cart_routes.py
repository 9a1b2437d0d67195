from conftest import auth_header, create_product, obtain_token
from storefront.version import API_PREFIX


def test_guest_cart_add_view_update_remove_clear(client, app):
    p = create_product(sell_price="19.99")

    resp = client.post(f"{API_PREFIX}/cart/guest", json={"product_id": p.id, "quantity": 2})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["cart_items"][0]["quantity"] == 2
    assert data["totals"]["total"] == 39.98

    resp = client.put(f"{API_PREFIX}/cart/guest/items/{p.id}", json={"quantity": 3})
    assert resp.get_json()["data"]["totals"]["item_count"] == 3

    resp = client.get(f"{API_PREFIX}/cart/guest")
    assert resp.get_json()["data"]["cart_items"][0]["name"] == "Widget"

    resp = client.delete(f"{API_PREFIX}/cart/guest/items/{p.id}")
    assert resp.get_json()["data"]["cart_items"] == []

    client.post(f"{API_PREFIX}/cart/guest", json={"product_id": p.id})
    resp = client.delete(f"{API_PREFIX}/cart/guest")
    assert resp.get_json()["data"]["totals"]["total"] == 0.0


def test_guest_cart_rejects_missing_product(client, app):
    resp = client.post(f"{API_PREFIX}/cart/guest", json={"quantity": 1})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["status"] == "error"
    assert body["missing_fields"] == ["product_id"]

    resp = client.post(f"{API_PREFIX}/cart/guest", json={"product_id": 4242})
    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "validation_error"


def test_guest_cart_rejects_malformed_body(client, app):
    resp = client.post(f"{API_PREFIX}/cart/guest", json={"product_id": "abc"})
    assert resp.status_code == 400
    assert "product_id" in resp.get_json()["fields"]


def test_server_cart_requires_auth(client, app):
    assert client.get(f"{API_PREFIX}/cart").status_code == 401
    assert client.get(f"{API_PREFIX}/cart/count").status_code == 401


def test_server_cart_add_view_update_remove_clear(client, app):
    token = obtain_token(client)
    headers = auth_header(token)
    p1 = create_product(name="A", sell_price="10.00")
    p2 = create_product(name="B", sell_price="5.00")

    client.post(f"{API_PREFIX}/cart/items", json={"product_id": p1.id, "quantity": 1}, headers=headers)
    resp = client.post(f"{API_PREFIX}/cart/items", json={"product_id": p1.id, "quantity": 2}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["count"] == 3

    client.post(f"{API_PREFIX}/cart/items", json={"product_id": p2.id, "quantity": 1}, headers=headers)
    resp = client.get(f"{API_PREFIX}/cart", headers=headers)
    data = resp.get_json()["data"]
    assert data["totals"]["total"] == 35.0
    assert {i["product_id"] for i in data["cart_items"]} == {p1.id, p2.id}

    resp = client.put(f"{API_PREFIX}/cart/items/{p1.id}", json={"quantity": 0}, headers=headers)
    assert [i["product_id"] for i in resp.get_json()["data"]["cart_items"]] == [p2.id]

    resp = client.delete(f"{API_PREFIX}/cart/items/{p2.id}", headers=headers)
    assert resp.get_json()["data"]["count"] == 0

    client.post(f"{API_PREFIX}/cart/items", json={"product_id": p2.id}, headers=headers)
    resp = client.delete(f"{API_PREFIX}/cart", headers=headers)
    assert resp.get_json()["data"]["cart_items"] == []

    resp = client.get(f"{API_PREFIX}/cart/count", headers=headers)
    assert resp.get_json()["data"] == {"count": 0}


def test_cart_merge_endpoint_is_guarded(client, app):
    token = obtain_token(client)
    headers = auth_header(token)
    p = create_product()
    client.post(f"{API_PREFIX}/cart/guest", json={"product_id": p.id, "quantity": 2})

    resp = client.post(f"{API_PREFIX}/cart/merge", headers=headers)
    data = resp.get_json()["data"]
    assert data["skipped"] is False
    assert data["cart"][0]["quantity"] == 2

    client.post(f"{API_PREFIX}/cart/guest", json={"product_id": p.id, "quantity": 1})
    resp = client.post(f"{API_PREFIX}/cart/merge", headers=headers)
    assert resp.get_json()["data"]["skipped"] is True
    count = client.get(f"{API_PREFIX}/cart/count", headers=headers).get_json()["data"]["count"]
    assert count == 2
