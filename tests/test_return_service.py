# Overview: Pytest coverage for returns: window, bounds, stock restoration and refunds.

"""
Return Manager Tests

Covers:
- Return of part of a sale, then the remainder, then an over-return
- Refund entry under the RETURN_REFUND system category
- Eligibility: status and the return window (locked sales stay returnable)
- Line resolution by sale_item_id or product_id
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from posledger.extensions import db
from posledger.models import CashTransaction, ExpenseCategory, Product, SaleTransaction, StockMovement
from posledger.services import sales_service
from posledger.services.errors import IneligibleError, NotFoundError, OverReturnError, ValidationError
from posledger.services.return_service import (
    create_return,
    get_returnable_transactions,
    list_returns,
    returned_quantities,
)
from posledger.time_utils import business_date, utcnow


@pytest.fixture
def completed_sale(db_session, tenant_a, make_product):
    """Product at qty 10, price 100, cost 60; sale of 3 units completed."""
    product = make_product(quantity=10, price="100", cost="60", name="Kopi Susu")
    sale = sales_service.create_sale(tenant_a.id, 7, [{"product_id": product.id, "quantity": 3}])
    sales_service.complete_sale(sale.id, "300", tenant_id=tenant_a.id)
    return sale, product


class TestCreateReturn:
    """Returns within the window."""

    def test_partial_return_then_remainder_then_over_return(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        assert db.session.get(Product, product.id).quantity == 7

        first = create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 2}])

        assert db.session.get(Product, product.id).quantity == 9
        movement = db.session.query(StockMovement).filter_by(reference_type="RETURN", reference_id=first.id).one()
        assert (movement.movement_type, movement.before_qty, movement.after_qty) == ("RETURN", 7, 9)
        assert first.return_total == Decimal("200.00")
        assert first.refund_amount == Decimal("200.00")
        assert first.return_number == 1
        assert first.sequence_date == business_date()

        refund = db.session.get(CashTransaction, first.cash_transaction_id)
        assert refund.transaction_type == "EXPENSE"
        assert refund.amount == Decimal("200.00")
        assert refund.category_type == "RETURN"
        assert refund.category.code == "RETURN_REFUND"

        second = create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])
        assert second.return_number == 2
        assert db.session.get(Product, product.id).quantity == 10

        with pytest.raises(OverReturnError) as exc:
            create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 2}])

        assert exc.value.details["max_returnable"] == 0
        assert exc.value.details["already_returned"] == 3
        assert exc.value.details["product_name"] == "Kopi Susu"
        assert db.session.get(Product, product.id).quantity == 10

    def test_over_return_in_one_request(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale

        with pytest.raises(OverReturnError) as exc:
            create_return(tenant_a.id, 7, sale.id, [
                {"product_id": product.id, "quantity": 2},
                {"product_id": product.id, "quantity": 2},
            ])

        assert exc.value.details["requested"] == 4
        assert exc.value.details["max_returnable"] == 3
        assert returned_quantities(sale.id) == {}

    def test_by_sale_item_id(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        line = sale.items[0]

        ret = create_return(tenant_a.id, 7, sale.id, [{"sale_item_id": line.id, "quantity": 1}], notes="dented")

        assert returned_quantities(sale.id) == {line.id: 1}
        assert ret.notes == "dented"
        assert ret.items[0].unit_price == Decimal("100.00")

    def test_refund_category_created_once(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])
        create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])

        assert db.session.query(ExpenseCategory).filter_by(code="RETURN_REFUND").count() == 1

    def test_product_not_on_sale(self, db_session, tenant_a, completed_sale, make_product):
        sale, _ = completed_sale
        other = make_product(quantity=5)
        with pytest.raises(ValidationError):
            create_return(tenant_a.id, 7, sale.id, [{"product_id": other.id, "quantity": 1}])

    def test_unknown_sale(self, db_session, tenant_a):
        with pytest.raises(NotFoundError):
            create_return(tenant_a.id, 7, 9999, [{"product_id": 1, "quantity": 1}])

    def test_other_tenant_sale_not_found(self, db_session, tenant_b, completed_sale):
        sale, product = completed_sale
        with pytest.raises(NotFoundError):
            create_return(tenant_b.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])


class TestEligibility:
    """Status and window prerequisites."""

    def test_draft_is_ineligible(self, db_session, tenant_a, make_product):
        product = make_product(quantity=10)
        sale = sales_service.create_sale(tenant_a.id, 7, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(IneligibleError):
            create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])

    def test_outside_window(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        row = db.session.get(SaleTransaction, sale.id)
        row.completed_at = utcnow() - timedelta(days=5)
        db.session.commit()

        with pytest.raises(IneligibleError):
            create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])

    def test_window_starts_at_midnight(self, db_session, app, tenant_a, completed_sale):
        sale, product = completed_sale
        row = db.session.get(SaleTransaction, sale.id)
        # midnight three days ago is still inside the window
        row.completed_at = utcnow().replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=3)
        db.session.commit()

        ret = create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])
        assert ret.id is not None

    def test_locked_sale_still_returnable(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        sales_service.lock_completed_sales(business_date() + timedelta(days=1))
        db.session.expire_all()
        assert db.session.get(SaleTransaction, sale.id).status == "LOCKED"

        ret = create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])
        assert ret.return_total == Decimal("100.00")


class TestQueries:
    """Returnable listing and history."""

    def test_returnable_transactions_annotated(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 2}])

        (row,) = get_returnable_transactions(tenant_a.id)

        assert row["id"] == sale.id
        assert row["items"][0]["returned_quantity"] == 2
        assert row["items"][0]["returnable_quantity"] == 1
        assert row["fully_returned"] is False

    def test_list_returns_by_transaction(self, db_session, tenant_a, completed_sale):
        sale, product = completed_sale
        create_return(tenant_a.id, 7, sale.id, [{"product_id": product.id, "quantity": 1}])

        result = list_returns(tenant_a.id, transaction_id=sale.id)
        assert result["pagination"]["total"] == 1
        assert result["items"][0]["sale_transaction_id"] == sale.id
