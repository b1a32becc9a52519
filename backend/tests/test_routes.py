# Overview: Pytest coverage for the HTTP API, authentication and role permissions.

import pytest

from conftest import auth_headers, get_auth_token


def _create_sale(client, headers, product_id, **extra):
    body = {
        "product_id": product_id,
        "boxes_quantity": 3,
        "payment_method": "cash",
        "payment_status": "paid",
    }
    body.update(extra)
    return client.post("/api/sales", json=body, headers=headers)


def _product(client, headers, product_id):
    return client.get(f"/api/products/{product_id}", headers=headers).json["product"]


class TestAuth:

    def test_login_me_logout(self, client, worker_user):
        token = get_auth_token(client, "worker")
        assert token

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["role"] == "worker"
        assert "APPROVE_SALE_CHANGE" not in me.json["user"]["permissions"]

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_bad_password(self, client, worker_user):
        response = client.post("/api/auth/login", json={"username": "worker", "password": "nope-nope"})
        assert response.status_code == 401

    def test_missing_token(self, client, db_session):
        assert client.get("/api/sales").status_code == 401
        assert client.get("/api/sales", headers=auth_headers("not-a-token")).status_code == 401

    def test_inactive_user_rejected(self, client, db_session, worker_user):
        token = get_auth_token(client, "worker")
        worker_user.is_active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestSaleLifecycleApi:

    def test_worked_example_over_http(self, client, admin_headers, worker_headers, product):
        created = _create_sale(client, worker_headers, product.id)
        assert created.status_code == 201
        sale = created.json["sale"]
        assert _product(client, worker_headers, product.id)["stock_boxes"] == 7

        edit = client.post(
            f"/api/sales/{sale['id']}/edit-requests",
            json={"changes": {"boxes_quantity": 5}, "reason": "Two more boxes"},
            headers=worker_headers,
        )
        assert edit.status_code == 201
        audit = edit.json["audit"]
        assert audit["boxes_change"] == 2
        assert audit["approval_status"] == "pending"

        fetched = client.get(f"/api/sales/{sale['id']}", headers=worker_headers).json["sale"]
        assert fetched["has_pending_audit"] is True
        assert fetched["pending_audit_id"] == audit["id"]
        assert fetched["boxes_quantity"] == 3

        approved = client.post(
            f"/api/audits/{audit['id']}/approve", json={"reason": "Confirmed"}, headers=admin_headers
        )
        assert approved.status_code == 200
        assert approved.json["sale"]["boxes_quantity"] == 5
        assert approved.json["sale"]["has_pending_audit"] is False
        assert approved.json["stock_delta"] == {"boxes": -2, "kg": "0.000"}
        assert _product(client, worker_headers, product.id)["stock_boxes"] == 5

        deletion = client.post(
            f"/api/sales/{sale['id']}/delete-requests", json={"reason": "Cancelled"}, headers=worker_headers
        )
        assert deletion.status_code == 201
        client.post(
            f"/api/audits/{deletion.json['audit']['id']}/approve", json={"reason": "OK"}, headers=admin_headers
        )
        assert _product(client, worker_headers, product.id)["stock_boxes"] == 10

        listed = client.get("/api/sales", headers=worker_headers).json
        assert listed["pagination"]["total"] == 0
        with_deleted = client.get("/api/sales?include_deleted=true", headers=worker_headers).json
        assert with_deleted["sales"][0]["status"] == "deleted"

        history = client.get(f"/api/sales/{sale['id']}/audits", headers=worker_headers).json["audits"]
        assert [a["audit_type"] for a in history] == ["quantity_change", "deletion"]

    def test_insufficient_stock_is_409(self, client, worker_headers, product):
        response = _create_sale(client, worker_headers, product.id, boxes_quantity=11)
        assert response.status_code == 409
        assert response.json["code"] == "insufficient_stock"
        assert response.json["details"]["available"]["boxes"] == 10

    def test_validation_error_is_400(self, client, worker_headers, product):
        response = _create_sale(client, worker_headers, product.id, payment_status="pending")
        assert response.status_code == 400
        assert response.json["code"] == "validation_error"

    @pytest.mark.parametrize("extra", [
        {"boxes_quantity": 10**30},
        {"boxes_quantity": 0, "kg_quantity": "1e30"},
    ])
    def test_oversized_quantities_are_400(self, client, worker_headers, product, extra):
        response = _create_sale(client, worker_headers, product.id, **extra)
        assert response.status_code == 400
        assert response.json["code"] == "validation_error"
        assert _product(client, worker_headers, product.id)["stock_boxes"] == 10

        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        edit = client.post(
            f"/api/sales/{sale['id']}/edit-requests",
            json={"changes": {"boxes_quantity": 10**30}, "reason": "Typo"},
            headers=worker_headers,
        )
        assert edit.status_code == 400

    def test_duplicate_pending_is_409(self, client, worker_headers, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        first = client.post(
            f"/api/sales/{sale['id']}/delete-requests", json={"reason": "Dup"}, headers=worker_headers
        )
        second = client.post(
            f"/api/sales/{sale['id']}/edit-requests",
            json={"changes": {"boxes_quantity": 1}, "reason": "Fewer"},
            headers=worker_headers,
        )
        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json["code"] == "conflict"

    def test_missing_reason_is_400(self, client, worker_headers, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        response = client.post(f"/api/sales/{sale['id']}/delete-requests", json={}, headers=worker_headers)
        assert response.status_code == 400

    def test_reject_over_http(self, client, admin_headers, worker_headers, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        audit = client.post(
            f"/api/sales/{sale['id']}/delete-requests", json={"reason": "Dup"}, headers=worker_headers
        ).json["audit"]

        rejected = client.post(f"/api/audits/{audit['id']}/reject", json={"reason": "Not a dup"}, headers=admin_headers)
        assert rejected.status_code == 200
        assert rejected.json["audit"]["approval_status"] == "rejected"
        assert _product(client, worker_headers, product.id)["stock_boxes"] == 7

        again = client.post(f"/api/audits/{audit['id']}/approve", json={"reason": "x"}, headers=admin_headers)
        assert again.status_code == 409

    def test_audit_listing(self, client, admin_headers, worker_headers, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        client.post(f"/api/sales/{sale['id']}/delete-requests", json={"reason": "Dup"}, headers=worker_headers)

        listing = client.get("/api/audits?approval_status=pending", headers=admin_headers).json
        assert listing["pagination"]["total"] == 1
        audit_id = listing["audits"][0]["id"]
        assert client.get(f"/api/audits/{audit_id}", headers=admin_headers).json["audit"]["sale_id"] == sale["id"]

    def test_pagination_limit_bounds(self, client, worker_headers, db_session):
        assert client.get("/api/sales?limit=1000", headers=worker_headers).status_code == 400


class TestPermissions:

    def test_worker_cannot_decide(self, client, worker_headers, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        audit = client.post(
            f"/api/sales/{sale['id']}/delete-requests", json={"reason": "Dup"}, headers=worker_headers
        ).json["audit"]

        for action in ("approve", "reject"):
            response = client.post(f"/api/audits/{audit['id']}/{action}", json={"reason": "x"}, headers=worker_headers)
            assert response.status_code == 403
            assert response.json["details"]["required_permission"] == "APPROVE_SALE_CHANGE"

    def test_worker_cannot_manage_inventory(self, client, worker_headers, product):
        assert client.post("/api/products", json={"sku": "N", "name": "N"}, headers=worker_headers).status_code == 403
        restock = client.post(
            f"/api/products/{product.id}/restock", json={"boxes": 1, "reason": "x"}, headers=worker_headers
        )
        assert restock.status_code == 403

    def test_other_account_cannot_see_sale(self, client, worker_headers, other_admin, product):
        sale = _create_sale(client, worker_headers, product.id).json["sale"]
        other = auth_headers(get_auth_token(client, other_admin.username))
        assert client.get(f"/api/sales/{sale['id']}", headers=other).status_code == 404
        assert client.get(f"/api/products/{product.id}", headers=other).status_code == 404


class TestProductsApi:

    def test_create_restock_and_movements(self, client, admin_headers):
        created = client.post("/api/products", json={
            "sku": "SAL-9", "name": "Salmon", "box_to_kg_ratio": "10", "opening_kg": "3.5",
        }, headers=admin_headers)
        assert created.status_code == 201
        product = created.json["product"]
        assert product["stock_kg"] == "3.500"

        restocked = client.post(
            f"/api/products/{product['id']}/restock",
            json={"boxes": 2, "kg": "0.25", "reason": "Morning delivery"},
            headers=admin_headers,
        )
        assert restocked.status_code == 200
        assert restocked.json["product"]["stock_boxes"] == 2
        assert restocked.json["product"]["stock_kg"] == "3.750"

        movements = client.get(f"/api/products/{product['id']}/movements", headers=admin_headers).json["movements"]
        assert [m["movement_type"] for m in movements] == ["restock", "restock"]
        assert movements[0]["note"] == "Morning delivery"

    @pytest.mark.parametrize("body", [
        {"boxes": 0, "kg": "0", "reason": "Nothing"},
        {"boxes": 1},
        {"kg": "0.0001", "reason": "Too precise"},
        {"boxes": 10**19, "reason": "Typo"},
        {"kg": "1e30", "reason": "Typo"},
    ])
    def test_restock_validation(self, client, admin_headers, product, body):
        response = client.post(f"/api/products/{product.id}/restock", json=body, headers=admin_headers)
        assert response.status_code == 400


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"
