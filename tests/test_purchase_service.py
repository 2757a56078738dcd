# Overview: Pytest coverage for purchase orders and manual purchases.

"""
Purchase Tests

Covers:
- PO numbering and totals
- Receipt: WAC per line, IN movement per line, no cash entry
- Terminal states (received, cancelled)
- Manual purchase: WAC, IN movement without reference, PURCHASE_INVENTORY expense
"""

from decimal import Decimal

import pytest

from posledger.extensions import db
from posledger.models import CashTransaction, Product, StockMovement
from posledger.services.errors import InvalidStateError, NotFoundError, ValidationError
from posledger.services.purchase_service import (
    cancel_purchase_order,
    create_purchase_order,
    get_manual_purchase_history,
    get_purchase_summary,
    list_purchase_orders,
    receive_purchase_order,
    record_manual_purchase,
    update_purchase_order,
)
from posledger.time_utils import business_date


def _order(tenant, product, quantity=10, cost="20"):
    return create_purchase_order(
        tenant.id,
        supplier_name="PT Sumber Rejeki",
        items=[{"product_id": product.id, "quantity": quantity, "cost_per_unit": cost}],
    )


class TestPurchaseOrders:
    """PENDING -> RECEIVED | CANCELLED."""

    def test_create_numbers_monthly_and_totals(self, db_session, tenant_a, make_product):
        product = make_product(quantity=0)

        first = create_purchase_order(
            tenant_a.id,
            supplier_name="  PT Sumber Rejeki ",
            items=[
                {"product_id": product.id, "quantity": 10, "cost_per_unit": "20"},
                {"product_id": product.id, "quantity": 3, "cost_per_unit": "1.50"},
            ],
        )
        second = _order(tenant_a, product)

        assert first.po_number == f"PO-{business_date():%Y%m}-0001"
        assert second.po_number.endswith("-0002")
        assert first.supplier_name == "PT Sumber Rejeki"
        assert first.status == "PENDING"
        assert first.total_amount == Decimal("204.50")

    def test_unknown_or_foreign_product(self, db_session, tenant_b, make_product):
        product = make_product(quantity=0)
        with pytest.raises(NotFoundError):
            _order(tenant_b, product)

    @pytest.mark.parametrize("items", [[], [{"product_id": 1, "quantity": 0, "cost_per_unit": "1"}], None])
    def test_bad_items(self, db_session, tenant_a, items):
        with pytest.raises(ValidationError):
            create_purchase_order(tenant_a.id, supplier_name="X", items=items)

    def test_receive_blends_cost_and_adds_stock(self, db_session, tenant_a, make_product):
        product = make_product(quantity=10, cost="10")
        po = _order(tenant_a, product, quantity=10, cost="20")

        received = receive_purchase_order(po.id, actor_id=3, tenant_id=tenant_a.id)

        refreshed = db.session.get(Product, product.id)
        assert received.status == "RECEIVED"
        assert received.received_at is not None
        assert refreshed.quantity == 20
        assert refreshed.cost == Decimal("15.00")

        movement = db.session.query(StockMovement).filter_by(reference_type="PURCHASE", reference_id=po.id).one()
        assert (movement.before_qty, movement.after_qty) == (10, 20)
        assert received.items[0].stock_movement_id == movement.id
        assert db.session.query(CashTransaction).count() == 0

    def test_received_order_is_terminal(self, db_session, tenant_a, make_product):
        po = _order(tenant_a, make_product(quantity=0))
        receive_purchase_order(po.id, tenant_id=tenant_a.id)

        with pytest.raises(InvalidStateError):
            receive_purchase_order(po.id, tenant_id=tenant_a.id)
        with pytest.raises(InvalidStateError):
            cancel_purchase_order(po.id, tenant_id=tenant_a.id)
        with pytest.raises(InvalidStateError):
            update_purchase_order(po.id, tenant_a.id, {"notes": "late"})

    def test_cancelled_order_cannot_be_received(self, db_session, tenant_a, make_product):
        product = make_product(quantity=4)
        po = _order(tenant_a, product)

        cancelled = cancel_purchase_order(po.id, cancelled_by=2, tenant_id=tenant_a.id)

        assert cancelled.status == "CANCELLED"
        with pytest.raises(InvalidStateError):
            receive_purchase_order(po.id, tenant_id=tenant_a.id)
        assert db.session.get(Product, product.id).quantity == 4

    def test_update_pending_header(self, db_session, tenant_a, make_product):
        po = _order(tenant_a, make_product(quantity=0))

        updated = update_purchase_order(po.id, tenant_a.id, {"notes": "call first", "status": "RECEIVED"}, updated_by=5)

        assert updated.notes == "call first"
        assert updated.status == "PENDING"

    def test_list_by_status(self, db_session, tenant_a, make_product):
        product = make_product(quantity=0)
        _order(tenant_a, product)
        po = _order(tenant_a, product)
        cancel_purchase_order(po.id, tenant_id=tenant_a.id)

        result = list_purchase_orders(tenant_a.id, status="PENDING")
        assert result["pagination"]["total"] == 1
        assert "items" not in result["items"][0]


class TestManualPurchase:
    """Single-line purchase paid from the till."""

    def test_manual_purchase_books_movement_and_expense(self, db_session, tenant_a, make_product):
        product = make_product(quantity=5, cost="40", name="Gula Pasir")

        result = record_manual_purchase(product.id, 10, "500", tenant_a.id, actor_id=3)

        summary = result["product"]
        assert summary["old_qty"] == 5
        assert summary["new_qty"] == 15
        assert summary["old_cost"] == Decimal("40.00")
        assert summary["new_cost"] == Decimal("46.67")
        assert summary["total_amount"] == Decimal("500.00")

        movement = result["stock_movement"]
        assert movement.movement_type == "IN"
        assert movement.reference_type == "PURCHASE"
        assert movement.reference_id is None
        assert movement.cost_per_unit == Decimal("50.00")

        entry = result["cash_transaction"]
        assert entry.transaction_type == "EXPENSE"
        assert entry.amount == Decimal("500.00")
        assert entry.category_type == "PURCHASE"
        assert entry.category.code == "PURCHASE_INVENTORY"

    def test_invalid_inputs_write_nothing(self, db_session, tenant_a, make_product):
        product = make_product(quantity=5)
        with pytest.raises(ValidationError):
            record_manual_purchase(product.id, 0, "500", tenant_a.id)
        with pytest.raises(ValidationError):
            record_manual_purchase(product.id, 2, "0", tenant_a.id)
        with pytest.raises(ValidationError):
            record_manual_purchase(product.id, 2, "10", tenant_a.id, payment_method="GOLD")
        assert db.session.query(CashTransaction).count() == 0
        assert db.session.get(Product, product.id).quantity == 5

    def test_history_excludes_purchase_orders(self, db_session, tenant_a, make_product):
        product = make_product(quantity=0, cost="0")
        record_manual_purchase(product.id, 4, "100", tenant_a.id)
        po = _order(tenant_a, product)
        receive_purchase_order(po.id, tenant_id=tenant_a.id)

        history = get_manual_purchase_history(tenant_a.id)

        assert history["pagination"]["total"] == 1
        assert history["items"][0]["total_cost"] == Decimal("100.00")

    def test_purchase_summary(self, db_session, tenant_a, make_product):
        product = make_product(quantity=0)
        record_manual_purchase(product.id, 4, "100", tenant_a.id)
        record_manual_purchase(product.id, 1, "30", tenant_a.id, payment_method="QRIS")

        summary = get_purchase_summary(tenant_a.id)

        assert summary["total_purchase"] == Decimal("130.00")
        assert summary["transaction_count"] == 2
        assert summary["by_payment_method"]["QRIS"] == Decimal("30.00")
