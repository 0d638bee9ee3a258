"""
Sale creation: stock deduction, unboxing, pricing and the sale ledger entry.
"""

from decimal import Decimal

import pytest

from fishstock.errors import InsufficientStockError, NotFoundError, ValidationError
from fishstock.extensions import db
from fishstock.models import Product, Sale, StockMovement
from fishstock.services import ledger_service, products_service, sales_service


D = Decimal


def _sell(product, **kwargs):
    params = {
        "product_id": product.id,
        "payment_status": "paid",
        "payment_method": "cash",
        "performed_by": "clerk-1",
    }
    params.update(kwargs)
    return sales_service.create_sale(**params)


class TestCreateSale:
    def test_unboxing_sale(self, make_product):
        product = make_product(boxes=2, loose_kg="5", ratio="10")

        sale, plan = _sell(product, kg=D("18"))

        product = db.session.get(Product, product.id)
        assert product.boxes == 0
        assert product.loose_kg == D("7.000")
        assert plan.boxes_unboxed == 2
        assert sale.boxes_sold == 0
        assert sale.kg_sold == D("18.000")
        assert sale.stock_box_delta == -2
        assert sale.stock_kg_delta == D("2.000")

    def test_sale_writes_one_linked_ledger_entry(self, make_product):
        product = make_product(boxes=2, loose_kg="5", ratio="10")
        sale, _ = _sell(product, kg=D("18"))

        entries = ledger_service.list_movements(sale_id=sale.id)
        assert len(entries) == 1
        assert entries[0].movement_type == "sale"
        assert entries[0].box_delta == -2
        assert entries[0].kg_delta == D("2.000")
        assert ledger_service.reconcile_product(product.id)["balanced"]

    def test_insufficient_stock_changes_nothing(self, make_product):
        product = make_product(boxes=1, loose_kg="0", ratio="10")

        with pytest.raises(InsufficientStockError) as exc:
            _sell(product, kg=D("15"))

        assert exc.value.shortfall == D("5")
        product = db.session.get(Product, product.id)
        assert product.boxes == 1
        assert product.loose_kg == D("0.000")
        assert db.session.query(Sale).count() == 0
        assert db.session.query(StockMovement).filter_by(movement_type="sale").count() == 0

    def test_prices_default_to_catalog_and_are_snapshotted(self, make_product):
        product = make_product(boxes=3, loose_kg="10", ratio="10", box_price="100.00", kg_price="12.50")

        sale, _ = _sell(product, boxes=1, kg=D("2"))
        assert sale.box_unit_price == D("100.00")
        assert sale.kg_unit_price == D("12.50")
        assert sale.total_amount == D("125.00")

        products_service.update_product(
            product_id=product.id,
            payload={"unit_price_per_box": "150.00", "unit_price_per_kg": "20.00"},
            performed_by="manager-1",
        )
        sale = db.session.get(Sale, sale.id)
        assert sale.box_unit_price == D("100.00")
        assert sale.total_amount == D("125.00")

    def test_explicit_prices_override_catalog(self, make_product):
        product = make_product(boxes=3, ratio="10", box_price="100.00")
        sale, _ = _sell(product, boxes=2, box_price=D("90"))
        assert sale.total_amount == D("180.00")

    def test_partial_payment_amounts(self, make_product):
        product = make_product(boxes=3, ratio="10", box_price="100.00")
        sale, _ = _sell(
            product, boxes=1, payment_status="partial", amount_paid=D("30"), client_name="Ama Mensah"
        )
        assert sale.amount_paid == D("30.00")
        assert sale.remaining_amount == D("70.00")

    def test_client_name_required_unless_paid(self, make_product):
        product = make_product(boxes=3)
        with pytest.raises(ValidationError) as exc:
            _sell(product, boxes=1, payment_status="pending")
        assert exc.value.details["field"] == "client_name"

    def test_unknown_payment_method(self, make_product):
        product = make_product(boxes=3)
        with pytest.raises(ValidationError):
            _sell(product, boxes=1, payment_method="cheque")

    def test_zero_quantities_rejected(self, make_product):
        product = make_product(boxes=3)
        with pytest.raises(ValidationError):
            _sell(product, boxes=0, kg=D("0"))

    def test_inactive_product_rejected(self, make_product):
        product = make_product(boxes=3, is_active=False)
        with pytest.raises(ValidationError):
            _sell(product, boxes=1)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                product_id=999, boxes=1, payment_status="paid", payment_method="cash", performed_by="clerk-1"
            )


class TestListSales:
    def test_filters(self, make_product):
        a = make_product(boxes=10)
        b = make_product(boxes=10)
        _sell(a, boxes=1)
        _sell(a, boxes=1, payment_status="pending", client_name="Kofi")
        _sell(b, boxes=1)

        assert len(sales_service.list_sales(product_id=a.id)) == 2
        pending = sales_service.list_sales(payment_status="pending")
        assert [s.client_name for s in pending] == ["Kofi"]
        assert len(sales_service.list_sales(client_name="kof")) == 1

    def test_bad_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(payment_status="refunded")

    def test_get_missing_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(12345)
