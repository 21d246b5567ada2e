"""
API route tests.

Verifies:
- Principal headers gate every route (401) and roles gate admin routes (403)
- Error bodies carry success/message/error/details
- Sale and return endpoints end to end
- Purchase order and stock adjustment endpoints
- Write payloads reject fields outside the allowlist
"""

import io

from storepos.services import category_service, expense_service
from storepos.services.category_service import EXPENSE_CATEGORIES
from storepos.services.media_service import UploadedFile

from conftest import principal_headers, sale_payload


class TestAuth:
    def test_missing_principal(self, client, db_session):
        response = client.post("/api/sales/", json={})
        assert response.status_code == 401
        body = response.get_json()
        assert body["success"] is False
        assert body["error"] == "UNAUTHENTICATED"

    def test_cashier_cannot_delete_sale(self, client, cashier_headers, db_session):
        response = client.delete("/api/sales/1", headers=cashier_headers)
        assert response.status_code == 403
        assert response.get_json()["error"] == "FORBIDDEN"

    def test_cashier_cannot_init_counter(self, client, cashier_headers, db_session):
        response = client.post("/api/sales/invoice-counter/init", headers=cashier_headers)
        assert response.status_code == 403

    def test_manager_can_create_category(self, client, db_session):
        headers = principal_headers("u-manager", "manager", "Morgan Manager")
        response = client.post("/api/categories/", json={"name": "Snacks"}, headers=headers)
        assert response.status_code == 201
        assert response.get_json()["category"]["created_by_name"] == "Morgan Manager"


class TestSalesApi:
    def test_create_sale(self, client, cashier_headers, make_product):
        product = make_product(
            name="Premium T-Shirt",
            combinations=[([("Color", "Red"), ("Size", "Large")], 5)],
        )
        combo_id = product.variation_combinations[0].id

        response = client.post(
            "/api/sales/",
            json=sale_payload((product.id, 2, 1500, combo_id)),
            headers=cashier_headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["success"] is True
        sale = body["sale"]
        assert sale["invoice_number"] == "S-001"
        assert sale["cashier_name"] == "Casey Cashier"
        assert sale["items"][0]["display_name"] == "Premium T-Shirt - Color: Red, Size: Large"
        assert sale["items"][0]["variation_details"]["stock"] == 3

    def test_insufficient_stock_body(self, client, cashier_headers, make_product):
        product = make_product(stock=1)

        response = client.post("/api/sales/", json=sale_payload((product.id, 2, 100)), headers=cashier_headers)

        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert body["details"]["available"] == 1
        assert body["details"]["requested"] == 2

    def test_unknown_product(self, client, cashier_headers, db_session):
        response = client.post("/api/sales/", json=sale_payload((31337, 1, 100)), headers=cashier_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "PRODUCT_NOT_FOUND"

    def test_get_missing_sale(self, client, cashier_headers, db_session):
        response = client.get("/api/sales/999", headers=cashier_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "SALE_NOT_FOUND"

    def test_list_sales(self, client, cashier_headers, make_product):
        product = make_product(stock=5)
        client.post("/api/sales/", json=sale_payload((product.id, 1, 100)), headers=cashier_headers)

        response = client.get("/api/sales/?limit=10", headers=cashier_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body["pagination"]["total"] == 1
        assert body["sales"][0]["invoice_number"] == "S-001"

    def test_admin_delete_sale(self, client, admin_headers, cashier_headers, make_product):
        product = make_product(stock=5)
        created = client.post("/api/sales/", json=sale_payload((product.id, 2, 100)), headers=cashier_headers)
        sale_id = created.get_json()["sale"]["id"]

        response = client.delete(f"/api/sales/{sale_id}", headers=admin_headers)

        assert response.status_code == 200
        assert client.get(f"/api/sales/{sale_id}", headers=admin_headers).status_code == 404

    def test_override_setting_allows_oversell(self, client, admin_headers, cashier_headers, make_product):
        product = make_product(stock=0)
        response = client.put("/api/settings/", json={"override_out_of_stock": True}, headers=admin_headers)
        assert response.get_json()["settings"]["override_out_of_stock"] is True

        response = client.post("/api/sales/", json=sale_payload((product.id, 1, 100)), headers=cashier_headers)

        assert response.status_code == 201


class TestInvoiceCounterApi:
    def test_status_previews_without_reserving(self, client, cashier_headers, db_session):
        first = client.get("/api/sales/invoice-counter/status", headers=cashier_headers).get_json()
        second = client.get("/api/sales/invoice-counter/status", headers=cashier_headers).get_json()
        assert first["next_invoice_number"] == second["next_invoice_number"] == "S-001"
        assert first["total_sales_count"] == 0

    def test_admin_init(self, client, admin_headers, db_session):
        response = client.post("/api/sales/invoice-counter/init", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["current_sequence"] == 0


class TestReturnsApi:
    def _sell(self, client, headers, product, quantity):
        response = client.post(
            "/api/sales/",
            json=sale_payload((product.id, quantity, 250)),
            headers=headers,
        )
        return response.get_json()["sale"]["id"]

    def test_return_round_trip(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        sale_id = self._sell(client, cashier_headers, product, 4)

        response = client.post(
            "/api/returns/",
            json={"sale_id": sale_id, "items": [{"product_id": product.id, "quantity": 4}]},
            headers=cashier_headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["total_refund_cents"] == 1000
        assert body["status"] == "refunded"
        assert body["processed_by"]["name"] == "Casey Cashier"

        details = client.get(f"/api/returns/{sale_id}", headers=cashier_headers).get_json()
        assert details["total_returned_quantity"] == 4

    def test_partial_return_details_keep_sale_status(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        sale_id = self._sell(client, cashier_headers, product, 2)
        created = client.post(
            "/api/returns/",
            json={"sale_id": sale_id, "items": [{"product_id": product.id, "quantity": 1}]},
            headers=cashier_headers,
        )
        assert created.status_code == 201
        assert created.get_json()["status"] == "partial"

        response = client.get(f"/api/returns/{sale_id}", headers=cashier_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["status"] == "partial"
        assert body["total_returned_quantity"] == 1

    def test_over_return_body(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        sale_id = self._sell(client, cashier_headers, product, 2)

        response = client.post(
            "/api/returns/",
            json={"sale_id": sale_id, "items": [{"product_id": product.id, "quantity": 3}]},
            headers=cashier_headers,
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "OVER_RETURN"
        assert body["details"]["remaining"] == 2

    def test_line_not_in_sale(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        other = make_product(stock=10)
        sale_id = self._sell(client, cashier_headers, product, 1)

        response = client.post(
            "/api/returns/",
            json={"sale_id": sale_id, "items": [{"product_id": other.id, "quantity": 1}]},
            headers=cashier_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Product not found in original sale"

    def test_sale_id_required(self, client, cashier_headers, db_session):
        response = client.post("/api/returns/", json={"items": []}, headers=cashier_headers)
        assert response.status_code == 400

    def test_unknown_sale(self, client, cashier_headers, db_session):
        response = client.post(
            "/api/returns/",
            json={"sale_id": 777, "items": [{"product_id": 1, "quantity": 1}]},
            headers=cashier_headers,
        )
        assert response.status_code == 404

    def test_summary(self, client, cashier_headers, make_product):
        product = make_product(name="Mug", stock=10)
        sale_id = self._sell(client, cashier_headers, product, 3)
        client.post(
            "/api/returns/",
            json={"sale_id": sale_id, "items": [{"product_id": product.id, "quantity": 2}]},
            headers=cashier_headers,
        )

        response = client.get("/api/returns/summary", headers=cashier_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["summary"]["total_returns"] == 1
        assert body["summary"]["total_refund_cents"] == 500
        assert body["top_returned_products"][0]["product_name"] == "Mug"
        assert body["top_returned_products"][0]["return_count"] == 2


class TestPurchaseOrdersApi:
    def test_admin_records_and_deletes_order(self, client, admin_headers, make_product):
        product = make_product(stock=1)

        response = client.post(
            "/api/purchase-orders/",
            json={"supplier": "Acme", "date": "2026-10-01", "items": [{"product_id": product.id, "quantity": 9}]},
            headers=admin_headers,
        )

        assert response.status_code == 201
        order = response.get_json()["purchase_order"]
        assert order["total_quantity"] == 9
        assert client.get(f"/api/products/{product.id}", headers=admin_headers).get_json()["product"]["stock"] == 10

        deleted = client.delete(f"/api/purchase-orders/{order['id']}", headers=admin_headers)

        assert deleted.status_code == 200
        assert client.get(f"/api/products/{product.id}", headers=admin_headers).get_json()["product"]["stock"] == 1
        assert client.get(f"/api/purchase-orders/{order['id']}", headers=admin_headers).status_code == 404

    def test_manager_is_forbidden(self, client, db_session):
        headers = principal_headers("u-manager", "manager", "Morgan Manager")
        response = client.get("/api/purchase-orders/", headers=headers)
        assert response.status_code == 403

    def test_missing_supplier(self, client, admin_headers, db_session):
        response = client.post(
            "/api/purchase-orders/",
            json={"date": "2026-10-01", "items": [{"product_id": 1, "quantity": 1}]},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["message"] == "Missing required fields: supplier"


class TestStockAdjustApi:
    def test_manager_adjusts_stock(self, client, make_product):
        product = make_product(stock=4)
        headers = principal_headers("u-manager", "manager", "Morgan Manager")

        response = client.post(
            "/api/products/stock",
            json={"items": [{"product_id": product.id, "delta": -1}]},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.get_json()["stock_levels"][0]["stock"] == 3

    def test_cashier_is_forbidden(self, client, cashier_headers, make_product):
        product = make_product(stock=4)
        response = client.post(
            "/api/products/stock",
            json={"items": [{"product_id": product.id, "delta": 1}]},
            headers=cashier_headers,
        )
        assert response.status_code == 403

    def test_negative_result_body(self, client, admin_headers, make_product):
        product = make_product(stock=1)
        response = client.post(
            "/api/products/stock",
            json={"items": [{"product_id": product.id, "delta": -5}]},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "INSUFFICIENT_STOCK"


class TestFieldAllowlist:
    def test_unknown_settings_field_rejected(self, client, admin_headers, db_session):
        response = client.put("/api/settings/", json={"id": 5}, headers=admin_headers)
        assert response.status_code == 400
        assert response.get_json()["message"] == "Field not allowed: id"

    def test_expense_update_accepts_remove_receipt(self, client, admin_headers, fake_media, db_session):
        category_service.create_category(
            EXPENSE_CATEGORIES, {"name": "Rent"}, created_by_id="u-admin", created_by_name="Alex Admin"
        )
        expense = expense_service.create_expense(
            {"category": "Rent", "description": "October", "amount_cents": 100, "payment_method": "cash"},
            added_by_id="u-admin",
            added_by_name="Alex Admin",
            receipt=UploadedFile(filename="r.jpg", stream=io.BytesIO(b"x"), content_type="image/jpeg"),
        )

        response = client.put(
            f"/api/expenses/{expense.id}",
            json={"notes": "paid", "remove_receipt": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.get_json()["expense"]
        assert body["receipt_url"] is None
        assert body["notes"] == "paid"


def test_health(client, db_session):
    response = client.get("/health")
    body = response.get_json()
    assert response.status_code == 200
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["invoice_counter"]["next_invoice_number"] == "S-001"
    assert body["checks"]["media"]["status"] == "disabled"
