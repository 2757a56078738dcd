# Overview: Pytest coverage for the stock ledger: transitions, WAC, replay and read models.

"""
Stock Ledger Tests

Covers:
- Quantity transition per movement type (IN, OUT, RETURN, ADJUSTMENT)
- OUT clamping at zero
- Weighted average cost
- Movement replay reproduces Product.quantity
- Append-only movements
- Valuation, low-stock, dead-stock and statistics read models
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from posledger.extensions import db
from posledger.models import MovementType, Product, ReferenceType, StockMovement
from posledger.services import stock_service
from posledger.services.errors import NotFoundError, ValidationError
from posledger.services.stock_service import (
    get_dead_stock_products,
    get_inventory_valuation,
    get_low_stock_products,
    get_movement_statistics,
    list_movements,
    next_quantity,
    record_movement,
    replay_quantity,
    update_cost_wac,
    weighted_average_cost,
)
from posledger.time_utils import utcnow


def _move(product, movement_type, quantity, reference_type=ReferenceType.SALE, **kwargs):
    return record_movement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        tenant_id=product.tenant_id,
        **kwargs,
    )


class TestTransitions:
    """Quantity transition function per movement type."""

    def test_next_quantity_table(self):
        assert next_quantity(MovementType.IN, 5, 3) == 8
        assert next_quantity(MovementType.RETURN, 5, 3) == 8
        assert next_quantity(MovementType.OUT, 5, 3) == 2
        assert next_quantity(MovementType.OUT, 2, 5) == 0
        assert next_quantity(MovementType.ADJUSTMENT, 5, 18) == 18

    def test_in_movement_records_before_and_after(self, db_session, make_product):
        product = make_product(quantity=10)

        movement = _move(product, MovementType.IN, 4, ReferenceType.PURCHASE, cost_per_unit="60.00")

        assert movement.before_qty == 10
        assert movement.after_qty == 14
        assert movement.cost_per_unit == Decimal("60.00")
        assert db.session.get(Product, product.id).quantity == 14

    def test_out_clamps_at_zero_and_logs(self, db_session, make_product, caplog):
        product = make_product(quantity=3)

        with caplog.at_level("WARNING"):
            movement = _move(product, MovementType.OUT, 5)

        assert movement.before_qty == 3
        assert movement.after_qty == 0
        assert db.session.get(Product, product.id).quantity == 0
        assert "clamped" in caplog.text

    def test_adjustment_sets_absolute_quantity(self, db_session, make_product):
        product = make_product(quantity=20)

        movement = _move(product, MovementType.ADJUSTMENT, 18, ReferenceType.OPNAME)

        assert movement.after_qty == 18
        assert movement.delta == -2

    def test_adjustment_to_zero_allowed(self, db_session, make_product):
        product = make_product(quantity=4)
        movement = _move(product, MovementType.ADJUSTMENT, 0, ReferenceType.OPNAME)
        assert movement.after_qty == 0

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, db_session, make_product, quantity):
        product = make_product(quantity=5)
        with pytest.raises(ValidationError):
            _move(product, MovementType.IN, quantity, ReferenceType.PURCHASE)

    def test_unknown_movement_type_rejected(self, db_session, make_product):
        product = make_product(quantity=5)
        with pytest.raises(ValidationError):
            _move(product, "TELEPORT", 1)

    def test_movement_for_other_tenant_product_not_found(self, db_session, make_product, tenant_b):
        product = make_product(quantity=5)
        with pytest.raises(NotFoundError):
            record_movement(
                product_id=product.id,
                movement_type=MovementType.IN,
                quantity=1,
                reference_type=ReferenceType.PURCHASE,
                tenant_id=tenant_b.id,
            )

    def test_deferred_product_update_writes_movement_only(self, db_session, make_product):
        product = make_product(quantity=10)

        movement = _move(product, MovementType.OUT, 4, defer_product_update=True)

        assert (movement.before_qty, movement.after_qty) == (10, 6)
        assert db.session.get(Product, product.id).quantity == 10

    def test_movements_are_append_only(self, db_session, make_product):
        product = make_product(quantity=5)
        movement = _move(product, MovementType.OUT, 1)

        movement.quantity = 99
        with pytest.raises(ValueError):
            db.session.flush()
        db.session.rollback()


class TestWeightedAverageCost:
    """WAC blending of incoming lots."""

    def test_two_lots_from_empty(self, db_session, make_product):
        product = make_product(quantity=0, cost="0")

        first = update_cost_wac(product.id, "10", 5)
        _move(product, MovementType.IN, 5, ReferenceType.PURCHASE, cost_per_unit="10")
        second = update_cost_wac(product.id, "20", 5)

        assert first["new_cost"] == Decimal("10.00")
        assert second["old_qty"] == 5
        assert second["new_cost"] == Decimal("15.00")

    def test_rounds_half_up_to_cent(self):
        assert weighted_average_cost(Decimal("40"), 5, Decimal("50"), 10) == Decimal("46.67")
        assert weighted_average_cost(Decimal("0"), 0, Decimal("0.005"), 1) == Decimal("0.01")

    def test_zero_resulting_quantity_is_zero_cost(self):
        assert weighted_average_cost(Decimal("10"), 0, Decimal("10"), 0) == Decimal("0.00")

    def test_update_cost_does_not_touch_quantity(self, db_session, make_product):
        product = make_product(quantity=5, cost="40")
        update_cost_wac(product.id, "50", 10)
        refreshed = db.session.get(Product, product.id)
        assert refreshed.quantity == 5
        assert refreshed.cost == Decimal("46.67")

    def test_receive_stock_updates_cost_then_quantity(self, db_session, make_product):
        product = make_product(quantity=10, cost="10")

        wac, movement = stock_service.receive_stock(
            product_id=product.id,
            quantity=10,
            cost_per_unit="20",
            reference_type=ReferenceType.PURCHASE,
            tenant_id=product.tenant_id,
        )

        assert wac["new_cost"] == Decimal("15.00")
        assert movement.before_qty == 10
        assert movement.after_qty == 20
        assert movement.cost_per_unit == Decimal("20.00")


class TestReplay:
    """Replaying movements reproduces the running quantity."""

    def test_replay_matches_quantity(self, db_session, make_product):
        product = make_product(quantity=10)
        _move(product, MovementType.OUT, 3)
        _move(product, MovementType.RETURN, 1, ReferenceType.RETURN)
        _move(product, MovementType.OUT, 20)
        _move(product, MovementType.IN, 6, ReferenceType.PURCHASE)
        _move(product, MovementType.ADJUSTMENT, 4, ReferenceType.OPNAME)

        assert replay_quantity(product.id) == db.session.get(Product, product.id).quantity == 4

    def test_movements_chain(self, db_session, make_product):
        product = make_product(quantity=10)
        _move(product, MovementType.OUT, 3)
        _move(product, MovementType.IN, 2, ReferenceType.PURCHASE)

        movements = (
            db.session.query(StockMovement)
            .filter_by(product_id=product.id)
            .order_by(StockMovement.id.asc())
            .all()
        )
        for previous, current in zip(movements, movements[1:]):
            assert previous.after_qty == current.before_qty

    def test_opening_stock_is_an_initial_movement(self, db_session, make_product):
        product = make_product(quantity=12, cost="5")
        movement = db.session.query(StockMovement).filter_by(product_id=product.id).one()
        assert movement.reference_type == ReferenceType.INITIAL.value
        assert movement.before_qty == 0
        assert movement.after_qty == 12


class TestReadModels:
    """Valuation, low stock, dead stock, listings and statistics."""

    def test_valuation_counts_out_and_low_stock_separately(self, db_session, make_product, tenant_a):
        make_product(quantity=10, price="100", cost="60", min_stock=2)
        make_product(quantity=1, price="10", cost="5", min_stock=3)
        empty = make_product(quantity=0, price="10", cost="5", min_stock=3)

        result = get_inventory_valuation(tenant_a.id)

        summary = result["summary"]
        assert summary["total_products"] == 3
        assert summary["total_cost_value"] == Decimal("605.00")
        assert summary["total_selling_value"] == Decimal("1010.00")
        assert summary["low_stock_count"] == 1
        assert summary["out_of_stock_count"] == 1
        assert any(row["product_id"] == empty.id for row in result["products"])

    def test_low_stock_lists_tracked_products_only(self, db_session, make_product, tenant_a):
        low = make_product(quantity=2, min_stock=5)
        make_product(quantity=2, min_stock=5, is_track_stock=False)
        make_product(quantity=9, min_stock=5)

        rows = get_low_stock_products(tenant_a.id)

        assert [r["product_id"] for r in rows] == [low.id]
        assert rows[0]["shortage"] == 3

    def test_dead_stock(self, db_session, make_product, tenant_a):
        idle = make_product(quantity=5, cost="10")
        sold = make_product(quantity=5, cost="10")
        _move(sold, MovementType.OUT, 1)

        rows = get_dead_stock_products(tenant_a.id, days=30)
        assert [r["product_id"] for r in rows] == [idle.id]
        assert rows[0]["tied_capital"] == Decimal("50.00")
        assert rows[0]["last_movement_date"] is None

        later = get_dead_stock_products(tenant_a.id, days=30, now=utcnow() + timedelta(days=31))
        assert {r["product_id"] for r in later} == {idle.id, sold.id}

    def test_list_movements_filters_and_paginates(self, db_session, make_product, tenant_a):
        product = make_product(quantity=10)
        _move(product, MovementType.OUT, 1)
        _move(product, MovementType.OUT, 1)

        result = list_movements(tenant_a.id, movement_type="OUT", per_page=1)

        assert result["count"] == 1
        assert result["pagination"]["total"] == 2
        assert result["pagination"]["has_next"] is True

    def test_list_movements_is_tenant_scoped(self, db_session, make_product, tenant_a, tenant_b):
        make_product(quantity=10)
        make_product(quantity=10, tenant=tenant_b)

        assert list_movements(tenant_a.id)["pagination"]["total"] == 1
        assert list_movements(tenant_b.id)["pagination"]["total"] == 1

    def test_movement_statistics(self, db_session, make_product, tenant_a):
        product = make_product(quantity=10)
        _move(product, MovementType.OUT, 3)
        _move(product, MovementType.RETURN, 1, ReferenceType.RETURN)
        _move(product, MovementType.ADJUSTMENT, 6, ReferenceType.OPNAME)

        stats = get_movement_statistics(tenant_a.id)

        assert stats["incoming_total"] == 10
        assert stats["return_total"] == 1
        assert stats["outgoing_transaction_total"] == 3
        assert stats["outgoing_nontransaction_total"] == 2
