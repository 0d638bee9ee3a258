"""
HTTP layer: principal header, error mapping and the sale/audit flow end to end.
"""

import pytest


def _create_product(client, headers, **overrides):
    payload = {
        "sku": "TIL-10",
        "name": "Tilapia",
        "box_to_kg_ratio": "10",
        "unit_price_per_box": "100.00",
        "unit_price_per_kg": "12.00",
        "boxes": 2,
        "loose_kg": "5",
    }
    payload.update(overrides)
    resp = client.post("/api/products/", json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["product"]


def _create_sale(client, headers, product_id, **overrides):
    payload = {
        "product_id": product_id,
        "kg": "18",
        "payment_status": "paid",
        "payment_method": "cash",
    }
    payload.update(overrides)
    return client.post("/api/sales/", json=payload, headers=headers)


class TestPrincipal:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products/"),
            ("POST", "/api/sales/"),
            ("GET", "/api/sales/"),
            ("PATCH", "/api/sales/1"),
            ("DELETE", "/api/sales/1"),
            ("GET", "/api/audits/"),
            ("POST", "/api/audits/1/approve"),
            ("POST", "/api/stock/additions"),
        ],
    )
    def test_requires_principal(self, client, db_session, method, path):
        resp = client.open(path, method=method, json={})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "unauthorized"

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


class TestSalesApi:
    def test_create_sale_with_unboxing(self, client, db_session, headers):
        product = _create_product(client, headers)

        resp = _create_sale(client, headers, product["id"])

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sale"]["kg_sold"] == "18.000"
        assert body["sale"]["total_amount"] == "216.00"
        assert body["stock_info"]["final_stock"] == {"boxes": 0, "kg": "7.000"}
        assert body["stock_info"]["unboxing"]["boxes_unboxed"] == 2

        stock = client.get(f"/api/products/{product['id']}/stock", headers=headers).get_json()["stock"]
        assert stock["boxes"] == 0
        assert stock["loose_kg"] == "7.000"

    def test_insufficient_stock_is_409(self, client, db_session, headers):
        product = _create_product(client, headers, boxes=1, loose_kg="0")

        resp = _create_sale(client, headers, product["id"], kg="15")

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "insufficient_stock"
        assert body["details"]["shortfall"] == 5.0
        assert body["details"]["current_stock"]["boxes"] == 1

    def test_validation_is_400(self, client, db_session, headers):
        product = _create_product(client, headers)

        resp = _create_sale(client, headers, product["id"], kg="1", payment_status="pending")

        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "client_name"

    def test_unknown_product_is_404(self, client, db_session, headers):
        resp = _create_sale(client, headers, 999)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "not_found"

    def test_list_and_get(self, client, db_session, headers):
        product = _create_product(client, headers, boxes=10)
        sale_id = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]["id"]

        listed = client.get(f"/api/sales/?product_id={product['id']}", headers=headers).get_json()
        assert listed["count"] == 1
        assert client.get(f"/api/sales/{sale_id}", headers=headers).status_code == 200
        assert client.get("/api/sales/999", headers=headers).status_code == 404


class TestAuditApi:
    def test_patch_proposes_and_approve_applies(self, client, db_session, headers, reviewer_headers):
        product = _create_product(client, headers, boxes=5, loose_kg="0")
        sale = _create_sale(client, headers, product["id"], kg="5").get_json()["sale"]

        resp = client.patch(
            f"/api/sales/{sale['id']}", json={"kg_sold": "12", "reason": "Short-weighed"}, headers=headers
        )
        assert resp.status_code == 202
        audit = resp.get_json()["audit"]
        assert audit["approval_status"] == "pending"
        assert audit["requested_by"] == "clerk-1"

        unchanged = client.get(f"/api/sales/{sale['id']}", headers=headers).get_json()["sale"]
        assert unchanged["kg_sold"] == "5.000"

        resp = client.post(
            f"/api/audits/{audit['id']}/approve", json={"approval_reason": "Scale checked"}, headers=reviewer_headers
        )
        assert resp.status_code == 200
        decided = resp.get_json()["audit"]
        assert decided["approval_status"] == "approved"
        assert decided["approved_by"] == "manager-1"

        updated = client.get(f"/api/sales/{sale['id']}", headers=headers).get_json()["sale"]
        assert updated["kg_sold"] == "12.000"
        assert updated["total_amount"] == "144.00"

        recon = client.get(f"/api/products/{product['id']}/reconcile", headers=headers).get_json()
        assert recon["reconciliation"]["balanced"] is True

    def test_delete_then_approve_twice(self, client, db_session, headers, reviewer_headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"]).get_json()["sale"]

        resp = client.delete(f"/api/sales/{sale['id']}", json={"reason": "Duplicate"}, headers=headers)
        assert resp.status_code == 202
        audit_id = resp.get_json()["audit"]["id"]

        first = client.post(f"/api/audits/{audit_id}/approve", json={"approval_reason": "ok"}, headers=reviewer_headers)
        second = client.post(f"/api/audits/{audit_id}/approve", json={"approval_reason": "ok"}, headers=reviewer_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.get_json()["error"] == "already_processed"
        assert client.get(f"/api/sales/{sale['id']}", headers=headers).status_code == 404

        stock = client.get(f"/api/products/{product['id']}/stock", headers=headers).get_json()["stock"]
        assert (stock["boxes"], stock["loose_kg"]) == (2, "5.000")

    def test_delete_reason_from_query_string(self, client, db_session, headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]
        resp = client.delete(f"/api/sales/{sale['id']}?reason=Mistake", headers=headers)
        assert resp.status_code == 202

    def test_patch_while_deletion_pending_is_409(self, client, db_session, headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]
        client.delete(f"/api/sales/{sale['id']}?reason=Mistake", headers=headers)

        resp = client.patch(
            f"/api/sales/{sale['id']}",
            json={"payment_method": "momo_pay", "reason": "Wrong method"},
            headers=headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "conflict"

    def test_reject(self, client, db_session, headers, reviewer_headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]
        audit_id = client.delete(
            f"/api/sales/{sale['id']}", json={"reason": "Duplicate"}, headers=headers
        ).get_json()["audit"]["id"]

        resp = client.post(f"/api/audits/{audit_id}/reject", json={"approval_reason": "Valid sale"}, headers=reviewer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["audit"]["approval_status"] == "rejected"
        assert client.get(f"/api/sales/{sale['id']}", headers=headers).status_code == 200

    def test_approval_reason_required(self, client, db_session, headers, reviewer_headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]
        audit_id = client.delete(
            f"/api/sales/{sale['id']}", json={"reason": "Duplicate"}, headers=headers
        ).get_json()["audit"]["id"]

        resp = client.post(f"/api/audits/{audit_id}/approve", json={}, headers=reviewer_headers)
        assert resp.status_code == 400

    def test_list_pending_and_get(self, client, db_session, headers):
        product = _create_product(client, headers)
        sale = _create_sale(client, headers, product["id"], kg="1").get_json()["sale"]
        client.patch(
            f"/api/sales/{sale['id']}",
            json={"payment_method": "momo_pay", "reason": "Wrong method"},
            headers=headers,
        )

        listed = client.get("/api/audits/?approval_status=pending", headers=headers).get_json()
        assert listed["count"] == 1
        audit = listed["items"][0]
        assert audit["change_type"] == "payment_update"
        assert client.get(f"/api/audits/{audit['id']}", headers=headers).status_code == 200
        assert client.get("/api/audits/999", headers=headers).status_code == 404


class TestStockApi:
    def test_additions_damages_corrections_and_movements(self, client, db_session, headers):
        product = _create_product(client, headers, boxes=1, loose_kg="0")
        pid = product["id"]

        resp = client.post("/api/stock/additions", json={"product_id": pid, "boxes": 3, "total_cost": "300"}, headers=headers)
        assert resp.status_code == 201
        assert resp.get_json()["stock"]["boxes"] == 4

        resp = client.post(
            "/api/stock/damages", json={"product_id": pid, "boxes": 1, "reason": "Crushed"}, headers=headers
        )
        assert resp.status_code == 201

        resp = client.post(
            "/api/stock/corrections",
            json={"product_id": pid, "kg_adjustment": "2.5", "reason": "Count"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["stock"]["loose_kg"] == "2.500"

        movements = client.get(f"/api/stock/movements?product_id={pid}", headers=headers).get_json()
        assert [m["movement_type"] for m in movements["items"]] == ["correction", "damage", "addition", "addition"]

        recon = client.get(f"/api/products/{pid}/reconcile", headers=headers).get_json()["reconciliation"]
        assert recon["balanced"] is True

    def test_damage_without_reason_is_400(self, client, db_session, headers):
        product = _create_product(client, headers)
        resp = client.post("/api/stock/damages", json={"product_id": product["id"], "boxes": 1}, headers=headers)
        assert resp.status_code == 400

    def test_patch_product_rejects_stock_fields(self, client, db_session, headers):
        product = _create_product(client, headers)
        resp = client.patch(f"/api/products/{product['id']}", json={"boxes": 50}, headers=headers)
        assert resp.status_code == 400
        resp = client.patch(f"/api/products/{product['id']}", json={"unit_price_per_kg": "15"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["unit_price_per_kg"] == "15.00"

    def test_ratio_that_rounds_to_zero_is_400(self, client, db_session, headers):
        resp = client.post(
            "/api/products/",
            json={"sku": "T2", "name": "Tiny", "box_to_kg_ratio": "0.0004"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "box_to_kg_ratio"
