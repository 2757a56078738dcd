# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

import pytest

from posledger.extensions import db
from posledger.models import ExpenseCategory, Product, SaleTransaction, Tenant
from posledger.services import sales_service
from posledger.time_utils import business_date


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemCommands:

    def test_seed_categories_global_then_again(self, runner, db_session):
        first = runner.invoke(args=["system", "seed-categories"])
        second = runner.invoke(args=["system", "seed-categories"])

        assert first.exit_code == 0
        assert "9 created" in first.output
        assert "0 created, 9 already present" in second.output
        assert db.session.query(ExpenseCategory).filter(ExpenseCategory.tenant_id.is_(None)).count() == 9

    def test_seed_categories_unknown_tenant(self, runner, db_session):
        result = runner.invoke(args=["system", "seed-categories", "--tenant-id", "999"])
        assert result.exit_code != 0
        assert "not found" in result.output


class TestTenantCommands:

    def test_create_and_list(self, runner, db_session):
        created = runner.invoke(args=["tenants", "create", "--name", "Toko Maju", "--code", "MAJU"])

        assert created.exit_code == 0
        tenant = db.session.query(Tenant).filter_by(code="MAJU").one()
        assert db.session.query(ExpenseCategory).filter_by(tenant_id=tenant.id).count() == 9

        listed = runner.invoke(args=["tenants", "list"])
        assert "Toko Maju" in listed.output

    def test_create_without_seed(self, runner, db_session):
        runner.invoke(args=["tenants", "create", "--name", "Toko Kecil", "--no-seed"])
        assert db.session.query(ExpenseCategory).count() == 0


class TestSalesCommands:

    def test_lock_completed(self, runner, tenant_a, make_product):
        product = make_product(quantity=5)
        sale = sales_service.create_sale(tenant_a.id, 7, [{"product_id": product.id, "quantity": 1}])
        sales_service.complete_sale(sale.id, "100", tenant_id=tenant_a.id)
        tomorrow = (business_date() + timedelta(days=1)).isoformat()

        result = runner.invoke(args=["sales", "lock-completed", "--before", tomorrow])

        assert result.exit_code == 0
        assert "Locked 1 sale(s)" in result.output
        db.session.expire_all()
        assert db.session.get(SaleTransaction, sale.id).status == "LOCKED"

    def test_bad_date(self, runner, db_session):
        result = runner.invoke(args=["sales", "lock-completed", "--before", "yesterday"])
        assert result.exit_code == 2


class TestStockCommands:

    def test_low_stock(self, runner, tenant_a, make_product):
        make_product(quantity=1, min_stock=5, name="Mie Instan")

        result = runner.invoke(args=["stock", "low-stock", "--tenant-id", str(tenant_a.id)])

        assert result.exit_code == 0
        assert "Mie Instan" in result.output

    def test_valuation(self, runner, tenant_a, make_product):
        make_product(quantity=10, price="100", cost="60")

        result = runner.invoke(args=["stock", "valuation", "--tenant-id", str(tenant_a.id)])

        assert "Cost value:        600.00" in result.output

    def test_verify_ledger_passes_then_detects_drift(self, runner, tenant_a, make_product):
        product = make_product(quantity=10)

        clean = runner.invoke(args=["stock", "verify-ledger", "--tenant-id", str(tenant_a.id)])
        assert clean.exit_code == 0
        assert "PASS 1 product(s)" in clean.output

        row = db.session.get(Product, product.id)
        row.quantity = 99
        db.session.commit()

        drifted = runner.invoke(args=["stock", "verify-ledger", "--tenant-id", str(tenant_a.id)])
        assert drifted.exit_code == 1
        assert "replayed=10" in drifted.output

    def test_unknown_tenant(self, runner, db_session):
        result = runner.invoke(args=["stock", "low-stock", "--tenant-id", "12345"])
        assert result.exit_code == 1

    def test_unknown_tenant_message(self, runner, db_session):
        result = runner.invoke(args=["stock", "valuation", "--tenant-id", "12345"])

        assert result.exit_code == 1
        assert "Tenant 12345 not found" in result.output
