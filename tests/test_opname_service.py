# Overview: Pytest coverage for stock counts and their reconciliation.

import pytest

from posledger.extensions import db
from posledger.models import Product, StockMovement, StockOpname
from posledger.services import sales_service
from posledger.services.errors import AlreadyProcessedError, NotFoundError, ValidationError
from posledger.services.opname_service import (
    bulk_create_stock_opnames,
    create_stock_opname,
    get_stock_opname,
    list_stock_opnames,
    process_stock_opname,
)


def _adjustments(product_id):
    return db.session.query(StockMovement).filter_by(product_id=product_id, movement_type="ADJUSTMENT").all()


class TestProcess:

    def test_shortfall_sets_absolute_quantity(self, db_session, tenant_a, make_product):
        product = make_product(quantity=20)

        opname = create_stock_opname(tenant_a.id, product.id, 18, notes="shelf B", created_by=4)
        assert (opname.system_qty, opname.actual_qty, opname.difference) == (20, 18, -2)

        result = process_stock_opname(opname.id, actor_id=4, tenant_id=tenant_a.id)

        movement = result["stock_movement"]
        assert movement.movement_type == "ADJUSTMENT"
        assert movement.quantity == 18
        assert (movement.before_qty, movement.after_qty) == (20, 18)
        assert movement.reference_id == opname.id
        assert "-2 units" in movement.notes
        assert db.session.get(Product, product.id).quantity == 18
        assert result["opname"].processed is True
        assert result["opname"].stock_movement_id == movement.id

    def test_second_process_fails_without_new_movement(self, db_session, tenant_a, make_product):
        product = make_product(quantity=20)
        opname = create_stock_opname(tenant_a.id, product.id, 25)
        process_stock_opname(opname.id, tenant_id=tenant_a.id)

        with pytest.raises(AlreadyProcessedError):
            process_stock_opname(opname.id, tenant_id=tenant_a.id)

        assert len(_adjustments(product.id)) == 1
        assert db.session.get(Product, product.id).quantity == 25

    def test_matching_count_writes_no_movement(self, db_session, tenant_a, make_product):
        product = make_product(quantity=7)
        opname = create_stock_opname(tenant_a.id, product.id, 7)

        result = process_stock_opname(opname.id, tenant_id=tenant_a.id)

        assert result["stock_movement"] is None
        assert result["opname"].processed is True
        assert _adjustments(product.id) == []

    def test_adjusts_to_counted_value_after_intervening_sale(self, db_session, tenant_a, make_product):
        product = make_product(quantity=20)
        opname = create_stock_opname(tenant_a.id, product.id, 18)
        sale = sales_service.create_sale(tenant_a.id, 7, [{"product_id": product.id, "quantity": 5}])
        sales_service.complete_sale(sale.id, "1000", tenant_id=tenant_a.id)

        result = process_stock_opname(opname.id, tenant_id=tenant_a.id)

        assert (result["stock_movement"].before_qty, result["stock_movement"].after_qty) == (15, 18)

    def test_other_tenant_cannot_process(self, db_session, tenant_a, tenant_b, make_product):
        opname = create_stock_opname(tenant_a.id, make_product(quantity=3).id, 1)
        with pytest.raises(NotFoundError):
            process_stock_opname(opname.id, tenant_id=tenant_b.id)


class TestRecording:

    @pytest.mark.parametrize("actual_qty", [-1, "5", None, True])
    def test_actual_qty_must_be_non_negative_int(self, db_session, tenant_a, make_product, actual_qty):
        product = make_product(quantity=3)
        with pytest.raises(ValidationError):
            create_stock_opname(tenant_a.id, product.id, actual_qty)

    def test_bulk_is_all_or_none(self, db_session, tenant_a, make_product):
        product = make_product(quantity=3)

        with pytest.raises(NotFoundError):
            bulk_create_stock_opnames(tenant_a.id, [
                {"product_id": product.id, "actual_qty": 2},
                {"product_id": 99999, "actual_qty": 1},
            ])

        assert db.session.query(StockOpname).count() == 0

    def test_bulk_records_each_count(self, db_session, tenant_a, make_product):
        first = make_product(quantity=3)
        second = make_product(quantity=8)

        rows = bulk_create_stock_opnames(tenant_a.id, [
            {"product_id": first.id, "actual_qty": 3},
            {"product_id": second.id, "actual_qty": 6, "notes": "broken seal"},
        ], created_by=2)

        assert [r.difference for r in rows] == [0, -2]
        assert get_stock_opname(rows[1].id, tenant_a.id).notes == "broken seal"

    def test_list_filters_processed(self, db_session, tenant_a, make_product):
        product = make_product(quantity=3)
        done = create_stock_opname(tenant_a.id, product.id, 2)
        create_stock_opname(tenant_a.id, product.id, 2)
        process_stock_opname(done.id, tenant_id=tenant_a.id)

        assert list_stock_opnames(tenant_a.id, processed=True)["pagination"]["total"] == 1
        assert list_stock_opnames(tenant_a.id, processed=False)["pagination"]["total"] == 1
        assert list_stock_opnames(tenant_a.id, product_id=product.id)["pagination"]["total"] == 2
