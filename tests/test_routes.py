"""
API Route Tests

Exercise the blueprints through the Flask test client:
- Tenant context from gateway headers (401 / 403)
- Product CRUD and tenant isolation
- Sale -> return flow with money serialized as strings
- Error envelope status codes
"""

import pytest

from posledger.services.tenant_service import create_tenant


class TestTenantContext:

    def test_health_needs_no_tenant(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["database"]["status"] == "healthy"

    def test_missing_tenant_header(self, client, db_session):
        response = client.get("/api/products/")
        assert response.status_code == 401

    def test_non_numeric_tenant_header(self, client, db_session):
        response = client.get("/api/products/", headers={"X-Tenant-ID": "acme"})
        assert response.status_code == 401

    def test_inactive_tenant_forbidden(self, client, db_session):
        dormant = create_tenant("Toko Tidur", code="DORM", is_active=False)

        response = client.get("/api/products/", headers={"X-Tenant-ID": str(dormant.id)})

        assert response.status_code == 403

    def test_unknown_tenant_forbidden(self, client, db_session):
        response = client.get("/api/products/", headers={"X-Tenant-ID": "424242"})
        assert response.status_code == 403


class TestProductRoutes:

    def test_crud(self, client, headers):
        created = client.post("/api/products/", json={
            "name": "Teh Botol",
            "sku": "TB-001",
            "price": "5000",
            "cost": "3500",
            "initial_quantity": 24,
            "min_stock": 5,
        }, headers=headers)
        assert created.status_code == 201
        product = created.get_json()["product"]
        assert product["price"] == "5000.00"
        assert product["quantity"] == 24

        fetched = client.get(f"/api/products/{product['id']}", headers=headers)
        assert fetched.get_json()["product"]["sku"] == "TB-001"

        updated = client.put(f"/api/products/{product['id']}", json={"price": "5500"}, headers=headers)
        assert updated.status_code == 200
        assert updated.get_json()["product"]["price"] == "5500.00"

        deleted = client.delete(f"/api/products/{product['id']}", headers=headers)
        assert deleted.status_code == 200

        listed = client.get("/api/products/", headers=headers).get_json()
        assert all(p["id"] != product["id"] for p in listed["items"])

    def test_validation_error_is_400(self, client, headers):
        response = client.post("/api/products/", json={"name": "", "price": "1"}, headers=headers)

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_other_tenant_product_is_404(self, client, headers, tenant_b, make_product):
        foreign = make_product(quantity=1, tenant=tenant_b)

        response = client.get(f"/api/products/{foreign.id}", headers=headers)

        assert response.status_code == 404


class TestSaleFlow:

    @pytest.fixture
    def product(self, make_product):
        return make_product(quantity=10, price="100", cost="60", name="Kopi Susu")

    def _sale(self, client, headers, product, quantity=3):
        response = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": quantity}],
        }, headers=headers)
        assert response.status_code == 201
        return response.get_json()["transaction"]

    def test_draft_complete_and_return(self, client, headers, product):
        sale = self._sale(client, headers, product)
        assert sale["status"] == "DRAFT"
        assert sale["total"] == "300.00"
        assert sale["cashier_id"] == 7

        completed = client.post(f"/api/sales/{sale['id']}/complete", json={
            "payment_amount": "500",
            "payment_method": "CASH",
        }, headers=headers)
        assert completed.status_code == 200
        assert completed.get_json()["transaction"]["change_amount"] == "200.00"

        balance = client.get("/api/cash-transactions/balance", headers=headers).get_json()
        assert balance["total_balance"] == "300.00"

        returned = client.post("/api/returns/", json={
            "transaction_id": sale["id"],
            "items": [{"product_id": product.id, "quantity": 1}],
        }, headers=headers)
        assert returned.status_code == 201
        assert returned.get_json()["return"]["refund_amount"] == "100.00"

        stock = client.get(f"/api/products/{product.id}", headers=headers).get_json()["product"]
        assert stock["quantity"] == 8

    def test_insufficient_stock_is_409_with_details(self, client, headers, product):
        response = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 11}],
        }, headers=headers)

        assert response.status_code == 409
        body = response.get_json()
        assert body["details"]["available"] == 10
        assert body["details"]["requested"] == 11

    def test_over_return_is_409(self, client, headers, product):
        sale = self._sale(client, headers, product, quantity=1)
        client.post(f"/api/sales/{sale['id']}/complete", json={"payment_amount": "100"}, headers=headers)

        response = client.post("/api/returns/", json={
            "transaction_id": sale["id"],
            "items": [{"product_id": product.id, "quantity": 2}],
        }, headers=headers)

        assert response.status_code == 409
        assert response.get_json()["details"]["max_returnable"] == 1

    def test_sale_is_invisible_to_other_tenant(self, client, headers, tenant_b, product):
        sale = self._sale(client, headers, product)

        response = client.get(f"/api/sales/{sale['id']}", headers={"X-Tenant-ID": str(tenant_b.id)})

        assert response.status_code == 404


class TestOpnameRoutes:

    def test_record_and_process(self, client, headers, make_product):
        product = make_product(quantity=20)

        created = client.post("/api/opnames/", json={"product_id": product.id, "actual_qty": 18}, headers=headers)
        assert created.status_code == 201
        opname = created.get_json()["stock_opname"]
        assert opname["difference"] == -2

        processed = client.post(f"/api/opnames/{opname['id']}/process", headers=headers)
        assert processed.status_code == 200
        assert processed.get_json()["stock_movement"]["after_qty"] == 18

        again = client.post(f"/api/opnames/{opname['id']}/process", headers=headers)
        assert again.status_code == 409


class TestErrorShape:

    def test_unknown_url_is_json_404(self, client, db_session):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}

    def test_wrong_method_is_json_405(self, client, headers):
        response = client.patch("/api/products/", headers=headers)
        assert response.status_code == 405

    def test_unknown_cash_category_type_is_400(self, client, headers):
        response = client.post("/api/cash-transactions/", json={
            "transaction_type": "EXPENSE",
            "amount": "10.00",
            "payment_method": "CASH",
            "category_type": "BOGUS",
        }, headers=headers)

        assert response.status_code == 400
        assert "SALES" in response.get_json()["details"]["allowed"]
