from datetime import timedelta

import pytest

from conftest import FakeDocumentReference, image_file
from storefront.schemas.principal import Role


@pytest.fixture
def admin(auth):
    return auth.login("admin-1", Role.admin)


# ---------- authorization ----------
@pytest.mark.parametrize("method, path", [
    ("get", "/admin/products"),
    ("get", "/admin/delivery-locations"),
    ("put", "/admin/cod-limit"),
    ("get", "/admin/orders"),
    ("post", "/admin/maintenance/cleanup"),
])
def test_admin_routes_need_token_and_admin_role(client, auth, method, path):
    assert getattr(client, method)(path).status_code == 401

    auth.login("customer-1", Role.customer)
    r = getattr(client, method)(path)
    assert r.status_code == 403
    assert r.json() == {"detail": "Insufficient role for this action."}


# ---------- products ----------
def _product_form(**overrides):
    form = {
        "name": "Red Velvet",
        "description": "Two layers",
        "category_id": "cakes",
        "price": "2500",
        "discount_percentage": "10",
        "status": "in_stock",
        "daily_deals": "true",
    }
    form.update(overrides)
    return form


def test_create_product_uploads_images(client, db, bucket, admin):
    r = client.post(
        "/admin/products",
        data=_product_form(),
        files={"image1": image_file("main.jpg"), "image2": image_file("side.png", "image/png")},
    )

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["discounted_price"] == 2250.0
    assert body["daily_deals"] is True
    assert len(body["images"]) == 2
    assert all(url.startswith("https://storage.test/products/") for url in body["images"])
    assert len(bucket.blobs) == 2
    stored = db.raw("products", body["id"])
    assert stored["status"] == "in_stock"
    assert len(stored["image_paths"]) == 2


def test_create_product_requires_main_image(client, admin):
    r = client.post("/admin/products", data=_product_form())
    assert r.status_code == 422
    assert "image1" in r.json()["errors"]


def test_create_product_rejects_non_image(client, admin):
    r = client.post(
        "/admin/products", data=_product_form(), files={"image1": ("notes.txt", b"hello", "text/plain")}
    )
    assert r.status_code == 422
    assert "image1" in r.json()["errors"]


def test_discounted_price_must_be_below_price(client, admin):
    form = _product_form(discounted_price="2500")
    form.pop("discount_percentage")

    r = client.post("/admin/products", data=form, files={"image1": image_file()})

    assert r.status_code == 422
    assert r.json()["errors"] == {"discounted_price": ["The discounted price must be less than the price."]}


def test_discounted_price_back_computes_percentage(client, admin):
    form = _product_form(price="2000", discounted_price="1500")
    form.pop("discount_percentage")

    r = client.post("/admin/products", data=form, files={"image1": image_file()})

    assert r.status_code == 201
    assert r.json()["discount_percentage"] == 25.0
    assert r.json()["discounted_price"] == 1500.0


def test_storage_failure_is_reported_as_500(client, bucket, admin, monkeypatch):
    def broken(name):
        raise RuntimeError("bucket unavailable")

    monkeypatch.setattr(bucket, "blob", broken)

    r = client.post("/admin/products", data=_product_form(), files={"image1": image_file()})

    assert r.status_code == 500
    assert r.json() == {"message": "Error creating product", "error": "bucket unavailable"}


def test_update_product_partial_and_replace_image(client, db, bucket, admin, make_product):
    pid = make_product(price=1000.0, image_paths=["products/p/old.jpg"])
    bucket.blobs["products/p/old.jpg"] = b"old"

    r = client.put(f"/admin/products/{pid}", data={"discount_percentage": "50"}, files={"image1": image_file()})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["price"] == 1000.0
    assert body["discounted_price"] == 500.0
    assert body["name"] == "Chocolate Cake"
    assert "products/p/old.jpg" not in bucket.blobs
    assert body["images"][0].startswith(f"https://storage.test/products/{pid}/")


def test_delete_product(client, db, admin, make_product):
    pid = make_product()

    assert client.delete(f"/admin/products/{pid}").json() == {"message": "Product deleted successfully"}
    assert db.raw("products", pid) is None
    assert client.delete(f"/admin/products/{pid}").status_code == 404


def test_public_listing_hides_deactivated_products(client, make_product):
    older = make_product(name="Old Cake")
    hidden = make_product(status="deactive")
    newer = make_product(status="out_of_stock", name="New Cake")

    ids = [p["id"] for p in client.get("/products").json()]

    assert ids == [newer, older]
    assert hidden not in ids
    assert len(client.get("/products", params={"limit": 1}).json()) == 1
    assert client.get(f"/products/{hidden}").status_code == 200
    assert client.get("/products/missing").json() == {"message": "Product not found"}


def test_product_search_filters(client, make_product):
    vanilla = make_product(name="Vanilla Sponge", price=1000.0, discount=50)
    choco = make_product(name="Chocolate Fudge", price=2000.0, description="rich vanilla cream")
    make_product(name="Vanilla Secret", status="deactive")
    cupcake = make_product(name="Vanilla Cupcake", price=300.0, category_id="cupcakes", status="out_of_stock")

    def ids(**params):
        return [p["id"] for p in client.get("/products/search", params=params).json()]

    assert ids(q="VANILLA") == [cupcake, choco, vanilla]
    assert ids(q="vanilla", category_id="cakes") == [choco, vanilla]
    assert ids(min_price=400, max_price=600) == [vanilla]
    assert ids(status="out_of_stock") == [cupcake]
    assert ids(status="deactive") == []
    assert ids(q="vanilla", limit=0) == [cupcake]
    assert client.get("/products/search", params={"status": "sold"}).status_code == 422


# ---------- delivery locations ----------
def test_delivery_location_crud(client, admin):
    created = client.post("/admin/delivery-locations", json={"city": " Galle ", "shipping_charge": 500})
    assert created.status_code == 201
    loc = created.json()
    assert loc["city"] == "Galle" and loc["is_active"] is True

    dup = client.post("/admin/delivery-locations", json={"city": "galle", "shipping_charge": 1})
    assert dup.status_code == 422
    assert dup.json()["errors"] == {"city": ["The city has already been taken."]}

    updated = client.put(
        f"/admin/delivery-locations/{loc['id']}", json={"city": "Galle", "shipping_charge": 450, "is_active": False}
    )
    assert updated.json()["shipping_charge"] == 450.0
    assert client.get("/delivery-locations").json() == []
    assert client.get(f"/admin/delivery-locations/{loc['id']}").json()["is_active"] is False

    assert client.delete(f"/admin/delivery-locations/{loc['id']}").status_code == 200
    assert client.get(f"/admin/delivery-locations/{loc['id']}").status_code == 404


def test_public_delivery_locations_are_active_and_sorted(client, make_location):
    make_location("Negombo")
    make_location("Colombo")
    make_location("Kandy", is_active=False)

    assert [l["city"] for l in client.get("/delivery-locations").json()] == ["Colombo", "Negombo"]


def test_negative_shipping_charge_is_422(client, admin):
    r = client.post("/admin/delivery-locations", json={"city": "Matara", "shipping_charge": -1})
    assert r.status_code == 422
    assert "shipping_charge" in r.json()["errors"]


def test_delivery_location_stores_normalised_city_key(client, db, admin):
    loc = client.post("/admin/delivery-locations", json={"city": "Nuwara  Eliya", "shipping_charge": 600}).json()
    assert db.raw("delivery_locations", loc["id"])["city_key"] == "nuwara eliya"

    client.put(f"/admin/delivery-locations/{loc['id']}", json={"city": "Nuwara-Eliya", "shipping_charge": 600})
    assert db.raw("delivery_locations", loc["id"])["city_key"] == "nuwara-eliya"


def test_delivery_location_delete_failure_is_500(client, admin, make_location, monkeypatch):
    loc_id = make_location("Matara")

    def broken(self):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(FakeDocumentReference, "delete", broken)

    r = client.delete(f"/admin/delivery-locations/{loc_id}")

    assert r.status_code == 500
    assert r.json() == {"message": "Error deleting delivery location", "error": "firestore unavailable"}


# ---------- cod limit ----------
def test_cod_limit_update_and_toggle(client, admin):
    assert client.get("/cod-limit").status_code == 404

    r = client.put("/admin/cod-limit", json={"limit_amount": 15000})
    assert r.json()["limit_amount"] == 15000.0 and r.json()["is_active"] is True
    assert client.get("/cod-limit").json()["limit_amount"] == 15000.0

    assert client.post("/admin/cod-limit/toggle").json()["is_active"] is False
    assert client.get("/cod-limit").status_code == 404
    assert client.post("/admin/cod-limit/toggle").json()["is_active"] is True


# ---------- orders ----------
@pytest.fixture
def orders(db, now):
    rows = {
        "o1": {"customer_name": "Nimal Perera", "contact_number": "0771111111", "status": "pending",
               "payment_type": "cash_on_delivery", "user_id": "u1", "created_at": now - timedelta(days=3)},
        "o2": {"customer_name": "Kamala Silva", "contact_number": "0772222222", "status": "delivered",
               "payment_type": "card_payment", "user_id": "u2", "created_at": now - timedelta(days=1)},
        "o3": {"customer_name": "Nimali Fernando", "contact_number": "0773333333", "status": "pending",
               "payment_type": "card_payment", "user_id": None, "created_at": now},
    }
    for doc_id, row in rows.items():
        db.put("orders", doc_id, {
            "address": "Somewhere", "city": "Colombo", "payment_status": "pending",
            "total_amount": 100.0, "shipping_charge": 0.0, "items": [], "updated_at": now, **row,
        })
    return rows


def test_admin_lists_orders_with_filters(client, admin, orders):
    assert [o["id"] for o in client.get("/admin/orders").json()] == ["o3", "o2", "o1"]
    assert [o["id"] for o in client.get("/admin/orders", params={"status": "pending"}).json()] == ["o3", "o1"]
    assert [o["id"] for o in client.get("/admin/orders", params={"payment_type": "card_payment"}).json()] == ["o3", "o2"]
    assert [o["id"] for o in client.get("/admin/orders", params={"user_id": "u2"}).json()] == ["o2"]


def test_admin_order_search(client, admin, now, orders):
    assert [o["id"] for o in client.get("/admin/orders/search", params={"query": "nimal"}).json()] == ["o3", "o1"]

    r = client.get("/admin/orders/search", params={
        "query": "nimal", "from_date": (now - timedelta(days=2)).date().isoformat(),
    })
    assert [o["id"] for o in r.json()] == ["o3"]

    short = client.get("/admin/orders/search", params={"query": "n"})
    assert short.status_code == 422
    assert "query" in short.json()["errors"]


def test_staff_can_update_order_status_but_not_payment(client, auth, orders):
    auth.login("staff-1", Role.staff)

    r = client.put("/admin/orders/o1/status", json={"status": "processing"})
    assert r.status_code == 200
    assert r.json()["status"] == "processing"

    assert client.put("/admin/orders/o1/payment-status", json={"payment_status": "success"}).status_code == 403


def test_admin_updates_payment_status(client, db, admin, orders):
    r = client.put("/admin/orders/o2/payment-status", json={"payment_status": "success"})
    assert r.json()["payment_status"] == "success"
    assert db.raw("orders", "o2")["payment_status"] == "success"

    bad = client.put("/admin/orders/o2/status", json={"status": "lost"})
    assert bad.status_code == 422
    assert client.put("/admin/orders/missing/status", json={"status": "shipped"}).status_code == 404


def test_order_update_failure_is_500(client, admin, orders, monkeypatch):
    def broken(self, patch):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(FakeDocumentReference, "update", broken)

    status_r = client.put("/admin/orders/o1/status", json={"status": "shipped"})
    assert status_r.status_code == 500
    assert status_r.json() == {"message": "Error updating order status", "error": "firestore unavailable"}

    payment_r = client.put("/admin/orders/o1/payment-status", json={"payment_status": "success"})
    assert payment_r.status_code == 500
    assert payment_r.json() == {"message": "Error updating payment status", "error": "firestore unavailable"}

    assert client.put("/admin/orders/missing/status", json={"status": "shipped"}).status_code == 404
