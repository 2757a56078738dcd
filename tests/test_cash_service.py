# Overview: Pytest coverage for the cash ledger: entries, verification, balances and sale sync.

from datetime import date, datetime
from decimal import Decimal

import pytest

from posledger.extensions import db
from posledger.models import CashTransaction
from posledger.services import cash_service, sales_service
from posledger.services.category_service import create_category
from posledger.services.errors import (
    AlreadySyncedError,
    AlreadyVerifiedError,
    NotFoundError,
    ValidationError,
)
from posledger.time_utils import business_date


def _entry(tenant, transaction_type="EXPENSE", amount="50.00", **kwargs):
    return cash_service.create_cash_transaction(
        tenant_id=tenant.id,
        transaction_type=transaction_type,
        amount=amount,
        **kwargs,
    )


class TestCreateAndUpdate:

    def test_create_numbers_entries_per_day(self, db_session, tenant_a):
        first = _entry(tenant_a)
        second = _entry(tenant_a, "INCOME", "75")

        assert first.transaction_number == f"CSH-{business_date():%Y%m%d}-0001"
        assert second.transaction_number.endswith("-0002")
        assert second.amount == Decimal("75.00")
        assert second.payment_method == "CASH"

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
    def test_amount_must_be_positive_number(self, db_session, tenant_a, amount):
        with pytest.raises(ValidationError):
            _entry(tenant_a, amount=amount)

    def test_bad_type_and_method(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _entry(tenant_a, transaction_type="TRANSFER")
        with pytest.raises(ValidationError):
            _entry(tenant_a, payment_method="BITCOIN")

    def test_unknown_category_type_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError) as exc:
            _entry(tenant_a, category_type="BOGUS")

        assert exc.value.details["category_type"] == "BOGUS"
        assert "OPERATIONAL" in exc.value.details["allowed"]

    def test_category_type_accepts_plain_string(self, db_session, tenant_a):
        assert _entry(tenant_a, category_type="OPERATIONAL").category_type == "OPERATIONAL"

    def test_category_must_be_visible(self, db_session, tenant_a, tenant_b):
        foreign = create_category(tenant_b.id, code="ICE", name="Ice")
        with pytest.raises(NotFoundError):
            _entry(tenant_a, category_id=foreign.id)

    def test_transaction_date_from_date(self, db_session, tenant_a):
        entry = _entry(tenant_a, transaction_date=date(2024, 5, 1))
        assert entry.transaction_date == datetime(2024, 5, 1)

    def test_update_unverified(self, db_session, tenant_a):
        entry = _entry(tenant_a)

        updated = cash_service.update_cash_transaction(
            entry.id, tenant_a.id, {"amount": "80", "description": "Ice blocks", "transaction_number": "X"}, updated_by=3
        )

        assert updated.amount == Decimal("80.00")
        assert updated.description == "Ice blocks"
        assert updated.transaction_number != "X"
        assert updated.updated_by == 3

    def test_verified_entries_are_immutable(self, db_session, tenant_a):
        entry = _entry(tenant_a)
        verified = cash_service.verify_cash_transaction(entry.id, tenant_a.id, verified_by=1)
        assert verified.is_verified is True
        assert verified.verified_at is not None

        with pytest.raises(AlreadyVerifiedError):
            cash_service.update_cash_transaction(entry.id, tenant_a.id, {"amount": "1"})
        with pytest.raises(AlreadyVerifiedError):
            cash_service.delete_cash_transaction(entry.id, tenant_a.id)
        with pytest.raises(AlreadyVerifiedError):
            cash_service.verify_cash_transaction(entry.id, tenant_a.id, verified_by=1)

    def test_soft_delete_hides_entry(self, db_session, tenant_a):
        entry = _entry(tenant_a)

        cash_service.delete_cash_transaction(entry.id, tenant_a.id, deleted_by=2)

        assert db.session.get(CashTransaction, entry.id).deleted_at is not None
        with pytest.raises(NotFoundError):
            cash_service.get_cash_transaction(entry.id, tenant_a.id)
        assert cash_service.list_cash_transactions(tenant_a.id)["pagination"]["total"] == 0


class TestAggregates:

    def test_balance_by_method(self, db_session, tenant_a, tenant_b):
        _entry(tenant_a, "INCOME", "300")
        _entry(tenant_a, "EXPENSE", "120")
        _entry(tenant_a, "INCOME", "50", payment_method="QRIS")
        _entry(tenant_b, "INCOME", "999")

        balance = cash_service.get_balance(tenant_a.id)

        assert balance["balance_by_method"] == {
            "CASH": Decimal("180.00"),
            "QRIS": Decimal("50.00"),
            "DEBIT": Decimal("0.00"),
        }
        assert balance["total_balance"] == Decimal("230.00")
        assert cash_service.get_balance(tenant_a.id, "QRIS")["total_balance"] == Decimal("50.00")

    def test_cash_flow_summary(self, db_session, tenant_a):
        _entry(tenant_a, "INCOME", "300")
        _entry(tenant_a, "EXPENSE", "120", payment_method="DEBIT")

        summary = cash_service.get_cash_flow_summary(tenant_a.id)

        assert summary["total_income"] == Decimal("300.00")
        assert summary["total_expense"] == Decimal("120.00")
        assert summary["net_cash_flow"] == Decimal("180.00")
        assert summary["expense_by_method"]["DEBIT"] == Decimal("120.00")
        assert summary["transaction_count"] == 2

    def test_expense_by_category(self, db_session, tenant_a):
        rent = create_category(tenant_a.id, code="rent", name="Store Rent")
        _entry(tenant_a, amount="500", category_id=rent.id)
        _entry(tenant_a, amount="200", category_id=rent.id)
        _entry(tenant_a, amount="30")
        _entry(tenant_a, "INCOME", "1000")

        report = cash_service.get_expense_by_category(tenant_a.id)

        assert report["total_expense"] == Decimal("730.00")
        assert [c["category_code"] for c in report["categories"]] == ["RENT", "UNCATEGORIZED"]
        assert report["categories"][0]["transaction_count"] == 2

    def test_list_filters(self, db_session, tenant_a):
        _entry(tenant_a, "INCOME", "300")
        expense = _entry(tenant_a, "EXPENSE", "120")
        cash_service.verify_cash_transaction(expense.id, tenant_a.id, verified_by=1)

        assert cash_service.list_cash_transactions(tenant_a.id, transaction_type="EXPENSE")["count"] == 1
        assert cash_service.list_cash_transactions(tenant_a.id, is_verified=False)["count"] == 1
        assert cash_service.list_cash_transactions(tenant_a.id, start_date=business_date())["count"] == 2


class TestSyncFromSale:

    def _completed(self, tenant, product, quantity=2):
        sale = sales_service.create_sale(tenant.id, 7, [{"product_id": product.id, "quantity": quantity}])
        return sales_service.complete_sale(sale.id, "1000", tenant_id=tenant.id)

    def test_completed_sale_already_synced(self, db_session, tenant_a, make_product):
        sale = self._completed(tenant_a, make_product(quantity=10, price="100"))

        with pytest.raises(AlreadySyncedError):
            cash_service.sync_from_sale(sale.id, tenant_a.id)

    def test_resync_after_entry_deleted(self, db_session, tenant_a, make_product):
        sale = self._completed(tenant_a, make_product(quantity=10, price="100"))
        entry = db.session.query(CashTransaction).filter_by(sale_transaction_id=sale.id).one()
        cash_service.delete_cash_transaction(entry.id, tenant_a.id)

        synced = cash_service.sync_from_sale(sale.id, tenant_a.id, created_by=4)

        assert synced.id != entry.id
        assert synced.amount == Decimal("200.00")
        assert synced.transaction_type == "INCOME"

    def test_draft_cannot_be_synced(self, db_session, tenant_a, make_product):
        product = make_product(quantity=10)
        sale = sales_service.create_sale(tenant_a.id, 7, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(NotFoundError):
            cash_service.sync_from_sale(sale.id, tenant_a.id)
