# Overview: Service-layer operations for product stock; additions, damages, corrections and summaries.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_movement
from .quantities import (
    DeductionPlan,
    Restoration,
    as_kg,
    as_money,
    check_feasibility,
    plan_deduction,
    plan_restoration,
)
"""
Stock Invariants (authoritative)

- Product.boxes and Product.loose_kg are the stock of record. They are
  changed only here, in sales_service and in audit_executor.
- Every change appends a StockMovement in the same transaction.
- Neither quantity is ever negative after a committed operation.
- Stock-changing reads lock the product row (FOR UPDATE where supported);
  every write is version-checked.
"""

__all__ = [
    "DeductionPlan",
    "Restoration",
    "check_feasibility",
    "plan_deduction",
    "plan_restoration",
    "load_product",
    "apply_stock",
    "add_stock",
    "record_damage",
    "correct_stock",
    "get_stock_summary",
]


def load_product(product_id: int, *, lock: bool = False, require_active: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product", product_id)
    if require_active and not product.is_active:
        raise ValidationError("Product is inactive", {"product_id": product_id})
    return product


def apply_stock(product: Product, new_boxes: int, new_loose_kg: Decimal) -> None:
    """Write a new stock position onto a (locked) product row."""
    if new_boxes < 0 or new_loose_kg < 0:
        available = product.total_kg_equivalent
        remaining = Decimal(new_boxes) * Decimal(product.box_to_kg_ratio) + Decimal(new_loose_kg)
        raise InsufficientStockError(
            "Stock change would leave negative stock",
            needed=available - remaining,
            available=available,
            current_stock=product.stock_snapshot(),
            extra={"new_boxes": new_boxes, "new_loose_kg": new_loose_kg},
        )
    product.boxes = new_boxes
    product.loose_kg = as_kg(new_loose_kg)


def _check_quantities(boxes: int, kg: Decimal, *, allow_negative: bool = False) -> None:
    if not allow_negative and (boxes < 0 or kg < 0):
        raise ValidationError("Quantities must be non-negative")
    if boxes == 0 and kg == 0:
        raise ValidationError("At least one of boxes or kg must be non-zero")


def add_stock(
    *,
    product_id: int,
    boxes: int = 0,
    kg: Decimal = Decimal("0"),
    total_cost: Decimal | None = None,
    performed_by: str,
    note: str | None = None,
) -> StockMovement:
    """Receive stock into a product. total_cost is what the delivery cost, if known."""
    kg = as_kg(kg)
    _check_quantities(boxes, kg)
    if total_cost is not None:
        total_cost = as_money(total_cost)
        if total_cost < 0:
            raise ValidationError("total_cost must be >= 0", {"field": "total_cost"})

    def _op():
        product = load_product(product_id, lock=True)
        apply_stock(product, product.boxes + boxes, Decimal(product.loose_kg) + kg)

        movement = append_movement(
            product_id=product.id,
            movement_type="addition",
            box_delta=boxes,
            kg_delta=kg,
            total_cost=total_cost,
            reason=note,
            performed_by=performed_by,
        )
        db.session.commit()
        current_app.logger.info(
            "Stock added: product=%s boxes=%s kg=%s by=%s", product.id, boxes, kg, performed_by
        )
        return movement

    return run_with_retry(_op)


def record_damage(
    *,
    product_id: int,
    boxes: int = 0,
    kg: Decimal = Decimal("0"),
    reason: str,
    performed_by: str,
) -> StockMovement:
    """
    Write off damaged stock.

    Damage is taken from the unit it is reported in; it never opens boxes.
    """
    kg = as_kg(kg)
    _check_quantities(boxes, kg)

    def _op():
        product = load_product(product_id, lock=True)
        loose = Decimal(product.loose_kg)
        if boxes > product.boxes or kg > loose:
            raise InsufficientStockError(
                "Damage exceeds current stock",
                needed=Decimal(boxes) * Decimal(product.box_to_kg_ratio) + kg,
                available=product.total_kg_equivalent,
                current_stock=product.stock_snapshot(),
                extra={"boxes_damaged": boxes, "kg_damaged": kg},
            )
        apply_stock(product, product.boxes - boxes, loose - kg)

        movement = append_movement(
            product_id=product.id,
            movement_type="damage",
            box_delta=-boxes,
            kg_delta=-kg,
            reason=reason,
            performed_by=performed_by,
        )
        db.session.commit()
        current_app.logger.info(
            "Damage recorded: product=%s boxes=%s kg=%s by=%s", product.id, boxes, kg, performed_by
        )
        return movement

    return run_with_retry(_op)


def correct_stock(
    *,
    product_id: int,
    box_adjustment: int = 0,
    kg_adjustment: Decimal = Decimal("0"),
    reason: str,
    performed_by: str,
) -> StockMovement:
    """Signed manual correction after a physical count."""
    kg_adjustment = as_kg(kg_adjustment)
    _check_quantities(box_adjustment, kg_adjustment, allow_negative=True)

    def _op():
        product = load_product(product_id, lock=True)
        new_boxes = product.boxes + box_adjustment
        new_loose = Decimal(product.loose_kg) + kg_adjustment
        if new_boxes < 0 or new_loose < 0:
            raise ValidationError(
                "Correction would result in negative stock",
                {
                    "current_stock": product.stock_snapshot(),
                    "box_adjustment": box_adjustment,
                    "kg_adjustment": kg_adjustment,
                },
            )
        apply_stock(product, new_boxes, new_loose)

        movement = append_movement(
            product_id=product.id,
            movement_type="correction",
            box_delta=box_adjustment,
            kg_delta=kg_adjustment,
            reason=reason,
            performed_by=performed_by,
        )
        db.session.commit()
        current_app.logger.info(
            "Stock corrected: product=%s boxes=%+d kg=%s by=%s",
            product.id, box_adjustment, kg_adjustment, performed_by,
        )
        return movement

    return run_with_retry(_op)


def get_stock_summary(product_id: int) -> dict:
    product = load_product(product_id)
    total = product.total_kg_equivalent
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "boxes": product.boxes,
        "loose_kg": str(Decimal(product.loose_kg)),
        "box_to_kg_ratio": str(Decimal(product.box_to_kg_ratio)),
        "total_kg_equivalent": str(total),
        "low_stock_threshold": product.low_stock_threshold,
        "is_low_stock": product.boxes <= product.low_stock_threshold,
    }
