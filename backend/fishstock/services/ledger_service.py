# Overview: Service-layer operations for the stock ledger; append, query and reconcile.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement, MOVEMENT_TYPES
from .quantities import KG_QUANT
"""
Stock Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Entries are written inside the same DB transaction as the stock change
  they record. A failed ledger write fails the whole operation.
- For every product: sum(box_delta) == boxes and sum(kg_delta) == loose_kg,
  provided the opening stock was itself recorded as an addition.
"""


def append_movement(
    *,
    product_id: int,
    movement_type: str,
    box_delta: int,
    kg_delta: Decimal,
    performed_by: str,
    reason: str | None = None,
    sale_id: int | None = None,
    audit_id: int | None = None,
    total_cost: Decimal | None = None,
) -> StockMovement:
    """
    Append one ledger entry. Flushes but never commits; the caller's unit of
    work owns the transaction.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type {movement_type!r}")
    if box_delta == 0 and Decimal(kg_delta) == 0:
        raise ValidationError("Ledger entry must change boxes or kilograms")

    entry = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        box_delta=box_delta,
        kg_delta=kg_delta,
        reason=reason,
        sale_id=sale_id,
        audit_id=audit_id,
        total_cost=total_cost,
        performed_by=performed_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    sale_id: int | None = None,
    audit_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type {movement_type!r}")
        q = q.filter(StockMovement.movement_type == movement_type)
    if sale_id is not None:
        q = q.filter(StockMovement.sale_id == sale_id)
    if audit_id is not None:
        q = q.filter(StockMovement.audit_id == audit_id)

    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def ledger_totals(product_id: int) -> tuple[int, Decimal]:
    row = db.session.query(
        func.coalesce(func.sum(StockMovement.box_delta), 0).label("boxes"),
        func.coalesce(func.sum(StockMovement.kg_delta), 0).label("kg"),
    ).filter(StockMovement.product_id == product_id).one()
    # SQLite sums NUMERIC as float; pin back to the column scale
    return int(row.boxes or 0), Decimal(str(row.kg or 0)).quantize(KG_QUANT)


def reconcile_product(product_id: int) -> dict:
    """
    Compare a product's current stock with the sum of its ledger entries.

    Drift means a stock change happened without a matching ledger entry
    (or the opening stock predates the ledger).
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    expected_boxes, expected_kg = ledger_totals(product_id)
    actual_kg = Decimal(product.loose_kg)
    box_drift = product.boxes - expected_boxes
    kg_drift = actual_kg - expected_kg

    return {
        "product_id": product_id,
        "expected_boxes": expected_boxes,
        "expected_kg": str(expected_kg),
        "actual_boxes": product.boxes,
        "actual_kg": str(actual_kg),
        "box_drift": box_drift,
        "kg_drift": str(kg_drift),
        "balanced": box_drift == 0 and kg_drift == 0,
    }


def reconcile_all() -> list[dict]:
    ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]
    return [reconcile_product(pid) for pid in ids]
