from bson import ObjectId

from conftest import ADMIN_EMAIL, TRAVELER_EMAIL, bearer


def insert_order(store, **fields):
    return str(store.collection("orders").insert_one(dict(fields)).inserted_id)


def test_grant_admin_without_identity(client, store):
    response = client.put("/admin/addadmin", json={"email": TRAVELER_EMAIL})

    assert response.status_code == 403
    assert response.get_json()["message"] == "You do not have the access to request"
    assert "role" not in store.collection("users").find_one({"email": TRAVELER_EMAIL})


def test_grant_admin_by_admin(client, store):
    response = client.put(
        "/admin/addadmin", json={"email": TRAVELER_EMAIL}, headers=bearer("admin-token")
    )

    assert response.status_code == 200
    assert response.get_json()["modifiedCount"] == 1
    assert store.collection("users").find_one({"email": TRAVELER_EMAIL})["role"] == "admin"
    assert client.get(f"/user/{TRAVELER_EMAIL}").get_json() == {"admin": True}


def test_grant_admin_by_non_admin(client, store):
    store.collection("users").insert_one({"email": "other@eyeside.test"})

    response = client.put(
        "/admin/addadmin",
        json={"email": "other@eyeside.test"},
        headers=bearer("traveler-token"),
    )

    assert response.status_code == 403
    assert "role" not in store.collection("users").find_one({"email": "other@eyeside.test"})


def test_grant_admin_by_unknown_requester(client):
    response = client.put(
        "/admin/addadmin", json={"email": TRAVELER_EMAIL}, headers=bearer("ghost-token")
    )
    assert response.status_code == 403


def test_admin_lists_all_orders(client, store):
    insert_order(store, user_uid="a")
    insert_order(store, user_uid="b")

    response = client.get("/admin/orders", headers=bearer("admin-token"))

    assert response.status_code == 200
    assert sorted(order["user_uid"] for order in response.get_json()) == ["a", "b"]


def test_admin_endpoints_reject_non_admins(client, store):
    order_id = insert_order(store, user_uid="a")
    calls = [
        ("get", "/admin/orders", None),
        ("post", "/admin/addproduct", {"name": "Cox's Bazar"}),
        ("put", f"/admin/status/{order_id}", {"status": "shipped"}),
        ("delete", f"/admin/order/{order_id}", None),
    ]
    for headers in ({}, bearer("traveler-token")):
        for method, path, body in calls:
            response = getattr(client, method)(path, json=body, headers=headers)
            assert response.status_code == 403, path

    assert store.collection("products").count_documents({}) == 0
    assert store.collection("orders").count_documents({}) == 1


def test_admin_adds_product(client, store):
    response = client.post(
        "/admin/addproduct",
        json={"name": "Sajek Valley", "price": 250},
        headers=bearer("admin-token"),
    )

    assert response.get_json()["acknowledged"] is True
    assert store.collection("products").find_one({"name": "Sajek Valley"})["price"] == 250


def test_admin_updates_order_status(client, store):
    order_id = insert_order(store, user_uid="a", order_status="pending")

    response = client.put(
        f"/admin/status/{order_id}", json={"status": "approved"}, headers=bearer("admin-token")
    )

    assert response.get_json()["matchedCount"] == 1
    stored = store.collection("orders").find_one({"_id": ObjectId(order_id)})
    assert stored["order_status"] == "approved"


def test_admin_status_update_on_missing_order_does_not_create(client, store):
    response = client.put(
        f"/admin/status/{ObjectId()}", json={"status": "approved"}, headers=bearer("admin-token")
    )

    assert response.get_json()["matchedCount"] == 0
    assert store.collection("orders").count_documents({}) == 0


def test_admin_deletes_single_order(client, store):
    order_id = insert_order(store, user_uid="a")
    insert_order(store, user_uid="b")

    response = client.delete(f"/admin/order/{order_id}", headers=bearer("admin-token"))

    assert response.get_json()["deletedCount"] == 1
    assert store.collection("orders").count_documents({}) == 1


def test_admin_delete_missing_order_is_noop(client, store):
    insert_order(store, user_uid="a")

    for order_id in (str(ObjectId()), "not-an-id"):
        response = client.delete(f"/admin/order/{order_id}", headers=bearer("admin-token"))
        assert response.get_json()["deletedCount"] == 0

    assert store.collection("orders").count_documents({}) == 1


def test_admin_check_reads_current_role(client, store):
    store.collection("users").update_one({"email": ADMIN_EMAIL}, {"$unset": {"role": ""}})

    response = client.get("/admin/orders", headers=bearer("admin-token"))

    assert response.status_code == 403


def test_grant_admin_without_target_email(client, store):
    store.collection("users").insert_one({"displayName": "Legacy Profile"})

    response = client.put("/admin/addadmin", json={}, headers=bearer("admin-token"))

    assert response.get_json()["matchedCount"] == 0
    assert store.collection("users").count_documents({"role": "admin"}) == 1


def test_admin_writes_reject_non_object_bodies(client, store):
    order_id = insert_order(store, user_uid="a", order_status="pending")

    for method, path in (
        ("post", "/admin/addproduct"),
        ("put", f"/admin/status/{order_id}"),
        ("put", "/admin/addadmin"),
    ):
        response = getattr(client, method)(path, json=["x"], headers=bearer("admin-token"))
        assert response.status_code == 400, path

    assert store.collection("products").count_documents({}) == 0
    assert store.collection("orders").find_one({"_id": ObjectId(order_id)})["order_status"] == "pending"
