"""
Stock additions, damages, corrections, catalog and ledger reconciliation.
"""

from decimal import Decimal

import pytest

from fishstock.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from fishstock.extensions import db
from fishstock.models import Product, StockMovement
from fishstock.services import ledger_service, products_service, stock_service


D = Decimal
CLERK = "clerk-1"


class TestProducts:
    def test_opening_stock_is_booked_to_ledger(self, make_product):
        product = make_product(boxes=4, loose_kg="2.5", ratio="10")

        entries = ledger_service.list_movements(product_id=product.id)
        assert len(entries) == 1
        assert entries[0].movement_type == "addition"
        assert entries[0].box_delta == 4
        assert entries[0].kg_delta == D("2.500")
        assert ledger_service.reconcile_product(product.id)["balanced"]

    def test_no_opening_entry_for_empty_product(self, make_product):
        product = make_product(boxes=0, loose_kg="0")
        assert ledger_service.list_movements(product_id=product.id) == []

    def test_duplicate_sku(self, make_product):
        make_product(sku="TIL-1")
        with pytest.raises(ConflictError):
            make_product(sku="TIL-1")

    @pytest.mark.parametrize(
        "payload",
        [
            {"sku": "X", "name": "X"},
            {"sku": "X", "name": "X", "box_to_kg_ratio": "0"},
            {"sku": "X", "name": "X", "box_to_kg_ratio": "0.0004"},
            {"sku": "X", "name": "X", "box_to_kg_ratio": "10", "boxes": -1},
            {"sku": "X", "name": "X", "box_to_kg_ratio": "10", "unit_price_per_kg": "-2"},
            {"sku": "X", "name": "X", "box_to_kg_ratio": "10", "version_id": 7},
        ],
    )
    def test_invalid_product_payloads(self, db_session, payload):
        with pytest.raises(ValidationError):
            products_service.create_product(payload=payload, performed_by=CLERK)

    def test_update_cannot_touch_stock(self, make_product):
        product = make_product(boxes=3)
        with pytest.raises(ValidationError):
            products_service.update_product(product_id=product.id, payload={"boxes": 10}, performed_by=CLERK)

    def test_update_rejects_ratio_that_rounds_to_zero(self, make_product):
        product = make_product(boxes=3, ratio="10")
        with pytest.raises(ValidationError):
            products_service.update_product(
                product_id=product.id, payload={"box_to_kg_ratio": "0.0004"}, performed_by=CLERK
            )
        assert products_service.get_product(product.id).box_to_kg_ratio == Decimal("10")

    def test_update_catalog_fields(self, make_product):
        product = make_product(boxes=3, name="Tilapia")
        updated = products_service.update_product(
            product_id=product.id, payload={"name": "Red Tilapia", "low_stock_threshold": 2}, performed_by=CLERK
        )
        assert updated.name == "Red Tilapia"
        assert updated.low_stock_threshold == 2
        assert updated.boxes == 3

    def test_list_products(self, make_product):
        make_product(name="Mackerel")
        make_product(name="Tilapia", is_active=False)

        assert [p.name for p in products_service.list_products()] == ["Mackerel", "Tilapia"]
        assert [p.name for p in products_service.list_products(active_only=True)] == ["Mackerel"]
        assert [p.name for p in products_service.list_products(search="tila")] == ["Tilapia"]


class TestStockOperations:
    def test_add_stock(self, make_product):
        product = make_product(boxes=1, ratio="10")

        movement = stock_service.add_stock(
            product_id=product.id, boxes=4, kg=D("3.5"), total_cost=D("420"), performed_by=CLERK, note="Delivery"
        )

        assert movement.movement_type == "addition"
        assert movement.total_cost == D("420.00")
        summary = stock_service.get_stock_summary(product.id)
        assert summary["boxes"] == 5
        assert summary["loose_kg"] == "3.500"
        assert summary["total_kg_equivalent"] == "53.500"
        assert ledger_service.reconcile_product(product.id)["balanced"]

    def test_add_stock_requires_quantity(self, make_product):
        product = make_product(boxes=1)
        with pytest.raises(ValidationError):
            stock_service.add_stock(product_id=product.id, boxes=0, kg=D("0"), performed_by=CLERK)

    def test_record_damage(self, make_product):
        product = make_product(boxes=3, loose_kg="4")

        stock_service.record_damage(product_id=product.id, boxes=1, kg=D("1.5"), reason="Thawed", performed_by=CLERK)

        product = db.session.get(Product, product.id)
        assert product.boxes == 2
        assert product.loose_kg == D("2.500")
        entry = db.session.query(StockMovement).filter_by(movement_type="damage").one()
        assert entry.box_delta == -1
        assert entry.kg_delta == D("-1.500")

    def test_damage_cannot_exceed_stock(self, make_product):
        product = make_product(boxes=1, loose_kg="0")
        with pytest.raises(InsufficientStockError):
            stock_service.record_damage(product_id=product.id, kg=D("2"), reason="Spoiled", performed_by=CLERK)
        assert db.session.get(Product, product.id).boxes == 1

    def test_correction_signed(self, make_product):
        product = make_product(boxes=3, loose_kg="4")

        stock_service.correct_stock(
            product_id=product.id, box_adjustment=-1, kg_adjustment=D("0.75"), reason="Count", performed_by=CLERK
        )

        product = db.session.get(Product, product.id)
        assert product.boxes == 2
        assert product.loose_kg == D("4.750")
        assert ledger_service.reconcile_product(product.id)["balanced"]

    def test_correction_cannot_go_negative(self, make_product):
        product = make_product(boxes=1, loose_kg="1")
        with pytest.raises(ValidationError):
            stock_service.correct_stock(
                product_id=product.id, box_adjustment=-2, reason="Count", performed_by=CLERK
            )

    def test_correction_needs_a_change(self, make_product):
        product = make_product(boxes=1)
        with pytest.raises(ValidationError):
            stock_service.correct_stock(product_id=product.id, reason="Count", performed_by=CLERK)

    def test_low_stock_flag(self, make_product):
        product = make_product(boxes=2, low_stock_threshold=5)
        assert stock_service.get_stock_summary(product.id)["is_low_stock"] is True

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.add_stock(product_id=99, boxes=1, performed_by=CLERK)


class TestReconciliation:
    def test_detects_untracked_change(self, make_product):
        product = make_product(boxes=3)
        db.session.query(Product).filter_by(id=product.id).update({"boxes": 5})
        db.session.commit()

        result = ledger_service.reconcile_product(product.id)
        assert result["balanced"] is False
        assert result["box_drift"] == 2

    def test_rejects_zero_entry(self, make_product):
        product = make_product(boxes=3)
        with pytest.raises(ValidationError):
            ledger_service.append_movement(
                product_id=product.id, movement_type="correction", box_delta=0, kg_delta=D("0"), performed_by=CLERK
            )

    def test_unknown_movement_type(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.list_movements(movement_type="transfer")
