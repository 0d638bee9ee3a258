"""
Flask CLI commands.
"""

from fishstock.extensions import db
from fishstock.models import Product
from fishstock.services import audit_service


def test_products_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "products", "create", "--sku", "MAC-5", "--name", "Mackerel", "--ratio", "5", "--boxes", "4",
    ])
    assert result.exit_code == 0, result.output
    assert "PASS Created product" in result.output

    result = runner.invoke(args=["products", "list"])
    assert result.exit_code == 0
    assert "MAC-5" in result.output


def test_products_create_reports_validation_errors(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["products", "create", "--sku", "BAD", "--name", "Bad", "--ratio", "0"])
    assert result.exit_code != 0
    assert "box_to_kg_ratio" in result.output


def test_stock_reconcile(app, db_session, make_product, make_sale):
    product = make_product(boxes=2, loose_kg="5")
    make_sale(product, kg="18")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "reconcile"])
    assert result.exit_code == 0, result.output
    assert f"PASS product {product.id}" in result.output

    db.session.query(Product).filter_by(id=product.id).update({"boxes": 9})
    db.session.commit()

    result = runner.invoke(args=["stock", "reconcile", "--product-id", str(product.id)])
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_audits_pending(app, db_session, make_product, make_sale):
    runner = app.test_cli_runner()
    assert "No pending audit records." in runner.invoke(args=["audits", "pending"]).output

    product = make_product(boxes=3)
    sale = make_sale(product, boxes=1)
    audit_service.propose_deletion(sale_id=sale.id, reason="Entered twice", requested_by="clerk-1")

    result = runner.invoke(args=["audits", "pending"])
    assert result.exit_code == 0
    assert "deletion" in result.output
    assert "Entered twice" in result.output
