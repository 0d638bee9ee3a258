# Overview: Applies an approved SaleAudit to the sale, product stock and ledger.

"""
Mutation executor.

An audit record is turned into one of three change objects and applied
inside the caller's unit of work (audit_service.decide). Nothing here
commits: if any step raises, the caller rolls back and the audit record
stays pending.

QUANTITY CHANGE:
    The sale's current stock effect is given back in memory, then the new
    quantities are deducted from that restored position with the normal
    sale algorithm (loose kilograms first, then opened boxes). Stock is
    written once, so no intermediate state is ever negative. Totals are
    recomputed from the unit prices captured on the sale.

PAYMENT UPDATE:
    Payment and client fields only. No stock effect.

DELETION:
    The sale's stock effect is reversed, the sale row is deleted and a
    reversal ledger entry links sale and audit.

A proposal is only applied to the sale it was made against: if the sale's
quantities or payment no longer match the audit's old_values, a
ConflictError is raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, SaleAudit
from .concurrency import lock_for_update
from .ledger_service import append_movement
from .quantities import as_kg, compute_amounts, plan_deduction, plan_restoration
from .stock_service import apply_stock, load_product


# Fields compared against old_values before applying a proposal
TRACKED_FIELDS = (
    "boxes_sold",
    "kg_sold",
    "total_amount",
    "amount_paid",
    "payment_status",
    "payment_method",
    "client_name",
)

_DECIMAL_FIELDS = {"kg_sold", "total_amount", "amount_paid"}

PAYMENT_FIELDS = (
    "amount_paid",
    "payment_status",
    "payment_method",
    "client_name",
    "client_email",
    "client_phone",
)


@dataclass(frozen=True)
class QuantityChange:
    boxes_sold: int
    kg_sold: Decimal


@dataclass(frozen=True)
class PaymentUpdate:
    amount_paid: Decimal
    payment_status: str
    payment_method: str
    client_name: str | None
    client_email: str | None
    client_phone: str | None


@dataclass(frozen=True)
class Deletion:
    pass


SaleChange = QuantityChange | PaymentUpdate | Deletion


def change_from_audit(audit: SaleAudit) -> SaleChange:
    """Rebuild the change object from an audit record's new_values."""
    if audit.change_type == "deletion":
        return Deletion()

    new_values = audit.new_values or {}
    if audit.change_type == "quantity_change":
        return QuantityChange(
            boxes_sold=int(new_values["boxes_sold"]),
            kg_sold=as_kg(new_values["kg_sold"]),
        )
    if audit.change_type == "payment_update":
        return PaymentUpdate(
            amount_paid=Decimal(str(new_values["amount_paid"])),
            payment_status=new_values["payment_status"],
            payment_method=new_values["payment_method"],
            client_name=new_values.get("client_name"),
            client_email=new_values.get("client_email"),
            client_phone=new_values.get("client_phone"),
        )
    raise ValidationError(f"Unknown change type {audit.change_type!r}", {"audit_id": audit.id})


def _same(field: str, current, recorded) -> bool:
    if field in _DECIMAL_FIELDS:
        if current is None or recorded is None:
            return current is None and recorded is None
        return Decimal(str(current)) == Decimal(str(recorded))
    return current == recorded


def _assert_unchanged(sale: Sale, audit: SaleAudit) -> None:
    current = sale.snapshot()
    recorded = audit.old_values or {}
    drifted = [f for f in TRACKED_FIELDS if f in recorded and not _same(f, current.get(f), recorded.get(f))]
    if drifted:
        raise ConflictError(
            "Sale has changed since this proposal was made",
            {"audit_id": audit.id, "sale_id": sale.id, "fields": drifted},
        )


def _load_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def _restore(sale: Sale, product):
    return plan_restoration(
        boxes=product.boxes,
        loose_kg=product.loose_kg,
        stock_box_delta=sale.stock_box_delta,
        stock_kg_delta=sale.stock_kg_delta,
        boxes_sold=sale.boxes_sold,
        kg_sold=sale.kg_sold,
    )


def _apply_quantity_change(sale: Sale, change: QuantityChange, audit: SaleAudit, performed_by: str) -> Sale:
    product = load_product(sale.product_id, lock=True)
    restored = _restore(sale, product)
    plan = plan_deduction(
        boxes=restored.new_boxes,
        loose_kg=restored.new_loose_kg,
        ratio=product.box_to_kg_ratio,
        boxes_requested=change.boxes_sold,
        kg_requested=change.kg_sold,
    )
    total, paid, remaining = compute_amounts(
        boxes_sold=change.boxes_sold,
        kg_sold=change.kg_sold,
        box_unit_price=sale.box_unit_price,
        kg_unit_price=sale.kg_unit_price,
        amount_paid=sale.amount_paid,
        payment_status=sale.payment_status,
    )

    apply_stock(product, plan.new_boxes, plan.new_loose_kg)

    append_movement(
        product_id=product.id,
        movement_type="reversal",
        box_delta=restored.box_delta,
        kg_delta=restored.kg_delta,
        sale_id=sale.id,
        audit_id=audit.id,
        reason=f"Quantity change on sale {sale.id}: previous quantities returned",
        performed_by=performed_by,
    )
    append_movement(
        product_id=product.id,
        movement_type="sale",
        box_delta=plan.box_delta,
        kg_delta=plan.kg_delta,
        sale_id=sale.id,
        audit_id=audit.id,
        reason=f"Quantity change on sale {sale.id}: new quantities deducted",
        performed_by=performed_by,
    )

    sale.boxes_sold = change.boxes_sold
    sale.kg_sold = change.kg_sold
    sale.stock_box_delta = plan.box_delta
    sale.stock_kg_delta = plan.kg_delta
    sale.total_amount = total
    sale.amount_paid = paid
    sale.remaining_amount = remaining
    db.session.flush()
    return sale


def _apply_payment_update(sale: Sale, change: PaymentUpdate) -> Sale:
    total, paid, remaining = compute_amounts(
        boxes_sold=sale.boxes_sold,
        kg_sold=sale.kg_sold,
        box_unit_price=sale.box_unit_price,
        kg_unit_price=sale.kg_unit_price,
        amount_paid=change.amount_paid,
        payment_status=change.payment_status,
    )
    sale.amount_paid = paid
    sale.remaining_amount = remaining
    sale.payment_status = change.payment_status
    sale.payment_method = change.payment_method
    sale.client_name = change.client_name
    sale.client_email = change.client_email
    sale.client_phone = change.client_phone
    db.session.flush()
    return sale


def _apply_deletion(sale: Sale, audit: SaleAudit, performed_by: str) -> None:
    product = load_product(sale.product_id, lock=True)
    restored = _restore(sale, product)
    apply_stock(product, restored.new_boxes, restored.new_loose_kg)

    append_movement(
        product_id=product.id,
        movement_type="reversal",
        box_delta=restored.box_delta,
        kg_delta=restored.kg_delta,
        sale_id=sale.id,
        audit_id=audit.id,
        reason=f"Sale {sale.id} deleted",
        performed_by=performed_by,
    )
    if not restored.exact:
        current_app.logger.warning(
            "Sale %s restored by sold quantities; unboxing leftovers were no longer loose", sale.id
        )
    db.session.delete(sale)
    db.session.flush()


def execute(audit: SaleAudit, *, performed_by: str) -> Sale | None:
    """
    Apply an audit's change. Returns the updated sale, or None for a deletion.

    Raises:
        NotFoundError: sale or product is gone
        ConflictError: sale no longer matches the proposal
        InsufficientStockError: new quantities cannot be covered any more
        ValidationError: resulting payment data is invalid
    """
    sale = _load_sale(audit.sale_id)
    _assert_unchanged(sale, audit)

    change = change_from_audit(audit)
    if isinstance(change, Deletion):
        _apply_deletion(sale, audit, performed_by)
        return None
    if isinstance(change, QuantityChange):
        return _apply_quantity_change(sale, change, audit, performed_by)
    if isinstance(change, PaymentUpdate):
        return _apply_payment_update(sale, change)
    raise TypeError(f"Unhandled change {change!r}")
