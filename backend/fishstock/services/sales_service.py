# Overview: Service-layer operations for sales; stock deduction with unboxing, pricing and the sale ledger entry.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, PAYMENT_METHODS, PAYMENT_STATUSES
from .concurrency import run_with_retry
from .ledger_service import append_movement
from .quantities import DeductionPlan, as_kg, as_money, compute_amounts, plan_deduction
from .stock_service import apply_stock, load_product
"""
Sale Invariants (authoritative)

- Creating a sale is one unit of work: the product's stock, the Sale row and
  its "sale" ledger entry commit together or not at all.
- Unit prices are captured on the sale and never re-read from the catalog.
- total_amount = boxes_sold * box_unit_price + kg_sold * kg_unit_price
- remaining_amount = 0 when paid, else total_amount - amount_paid.
- A sale is only changed or deleted through an approved SaleAudit
  (see audit_service / audit_executor).
"""


def validate_payment(
    *,
    payment_status: str,
    payment_method: str,
    client_name: str | None,
) -> None:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            {"field": "payment_status"},
        )
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            {"field": "payment_method"},
        )
    if payment_status != "paid" and not (client_name and client_name.strip()):
        raise ValidationError(
            "Client name is required for pending and partial payments",
            {"field": "client_name"},
        )


def create_sale(
    *,
    product_id: int,
    boxes: int = 0,
    kg: Decimal = Decimal("0"),
    box_price: Decimal | None = None,
    kg_price: Decimal | None = None,
    payment_status: str = "pending",
    payment_method: str,
    amount_paid: Decimal = Decimal("0"),
    client_name: str | None = None,
    client_email: str | None = None,
    client_phone: str | None = None,
    performed_by: str,
) -> tuple[Sale, DeductionPlan]:
    """
    Record a sale and deduct its stock.

    Kilograms come from loose stock first, then from opened boxes (leftover
    kilograms go back to loose stock); boxes come from the boxes left after
    opening. Prices default to the product's catalog prices when not given.

    Returns the committed Sale and the DeductionPlan that was applied.

    Raises:
        NotFoundError: product does not exist
        ValidationError: bad quantities, prices or payment data
        InsufficientStockError: the product cannot cover the request
    """
    kg = as_kg(kg)
    if boxes < 0 or kg < 0:
        raise ValidationError("Quantities must be non-negative")
    if boxes == 0 and kg == 0:
        raise ValidationError("At least one of boxes or kg must be greater than 0")
    for field, value in (("box_price", box_price), ("kg_price", kg_price), ("amount_paid", amount_paid)):
        if value is not None and Decimal(value) < 0:
            raise ValidationError(f"{field} must be >= 0", {"field": field})
    validate_payment(payment_status=payment_status, payment_method=payment_method, client_name=client_name)

    def _op():
        product = load_product(product_id, lock=True, require_active=True)

        plan = plan_deduction(
            boxes=product.boxes,
            loose_kg=product.loose_kg,
            ratio=product.box_to_kg_ratio,
            boxes_requested=boxes,
            kg_requested=kg,
        )

        unit_box = as_money(box_price if box_price is not None else product.unit_price_per_box)
        unit_kg = as_money(kg_price if kg_price is not None else product.unit_price_per_kg)
        total, paid, remaining = compute_amounts(
            boxes_sold=boxes,
            kg_sold=kg,
            box_unit_price=unit_box,
            kg_unit_price=unit_kg,
            amount_paid=amount_paid,
            payment_status=payment_status,
        )

        apply_stock(product, plan.new_boxes, plan.new_loose_kg)

        sale = Sale(
            product_id=product.id,
            boxes_sold=boxes,
            kg_sold=kg,
            stock_box_delta=plan.box_delta,
            stock_kg_delta=plan.kg_delta,
            box_unit_price=unit_box,
            kg_unit_price=unit_kg,
            total_amount=total,
            amount_paid=paid,
            remaining_amount=remaining,
            payment_status=payment_status,
            payment_method=payment_method,
            client_name=client_name.strip() if client_name else None,
            client_email=client_email,
            client_phone=client_phone,
            performed_by=performed_by,
        )
        db.session.add(sale)
        db.session.flush()  # sale.id for the ledger link

        append_movement(
            product_id=product.id,
            movement_type="sale",
            box_delta=plan.box_delta,
            kg_delta=plan.kg_delta,
            sale_id=sale.id,
            reason=f"Sale {sale.id}",
            performed_by=performed_by,
        )

        db.session.commit()
        current_app.logger.info(
            "Sale created: id=%s product=%s boxes=%s kg=%s unboxed=%s total=%s by=%s",
            sale.id, product.id, boxes, kg, plan.boxes_unboxed, total, performed_by,
        )
        return sale, plan

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def list_sales(
    *,
    product_id: int | None = None,
    payment_status: str | None = None,
    client_name: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[Sale]:
    q = db.session.query(Sale)
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)
    if payment_status is not None:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(
                f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
                {"field": "payment_status"},
            )
        q = q.filter(Sale.payment_status == payment_status)
    if client_name:
        q = q.filter(Sale.client_name.ilike(f"%{client_name}%"))
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)

    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
