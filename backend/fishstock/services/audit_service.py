# Overview: Service-layer operations for the sale audit workflow; propose, approve and reject.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import AlreadyProcessedError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import SaleAudit, CHANGE_TYPES, APPROVAL_STATUSES
from ..time_utils import utcnow
from ..validation import optional_text, parse_decimal, parse_int, require_text
from .audit_executor import PAYMENT_FIELDS, execute
from .concurrency import lock_for_update, run_with_retry
from .quantities import as_kg, as_money, compute_amounts, plan_deduction, plan_restoration
from .sales_service import get_sale, validate_payment
from .stock_service import load_product
"""
Audit Workflow Invariants (authoritative)

- Historical sales are never edited directly. A change or deletion is a
  SaleAudit proposal with full old_values and new_values snapshots.
- Proposals do not touch the sale, the product or the ledger.
- No proposal is accepted for a sale while a deletion of it is pending.
- A record moves pending -> approved or pending -> rejected exactly once.
  Both transitions are a conditional UPDATE on approval_status = 'pending';
  when it matches no row, another decision already won and the whole unit
  of work (including any executed change) is rolled back.
- Approval applies the change and flips the status in one transaction.
"""

QUANTITY_FIELDS = ("boxes_sold", "kg_sold")
DECISIONS = {"approve": "approved", "reject": "rejected"}


def _classify(changes: dict) -> str:
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes provided")

    unknown = sorted(k for k in changes if k not in QUANTITY_FIELDS and k not in PAYMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}", {"fields": unknown})

    has_quantity = any(k in changes for k in QUANTITY_FIELDS)
    has_payment = any(k in changes for k in PAYMENT_FIELDS)
    if has_quantity and has_payment:
        raise ValidationError("Quantity and payment changes must be proposed separately")
    return "quantity_change" if has_quantity else "payment_update"


def _quantity_proposal(sale, changes: dict) -> tuple[dict, int, Decimal]:
    new_boxes = parse_int(changes.get("boxes_sold", sale.boxes_sold), "boxes_sold", minimum=0)
    new_kg = as_kg(parse_decimal(changes.get("kg_sold", sale.kg_sold), "kg_sold", minimum=Decimal("0")))
    if new_boxes == 0 and new_kg == 0:
        raise ValidationError("At least one of boxes_sold or kg_sold must be greater than 0")
    if new_boxes == sale.boxes_sold and new_kg == Decimal(sale.kg_sold):
        raise ValidationError("Proposed quantities are unchanged")

    # Feasibility against the stock the sale would have with its own effect given back
    product = load_product(sale.product_id)
    restored = plan_restoration(
        boxes=product.boxes,
        loose_kg=product.loose_kg,
        stock_box_delta=sale.stock_box_delta,
        stock_kg_delta=sale.stock_kg_delta,
        boxes_sold=sale.boxes_sold,
        kg_sold=sale.kg_sold,
    )
    plan_deduction(
        boxes=restored.new_boxes,
        loose_kg=restored.new_loose_kg,
        ratio=product.box_to_kg_ratio,
        boxes_requested=new_boxes,
        kg_requested=new_kg,
    )

    total, paid, remaining = compute_amounts(
        boxes_sold=new_boxes,
        kg_sold=new_kg,
        box_unit_price=sale.box_unit_price,
        kg_unit_price=sale.kg_unit_price,
        amount_paid=sale.amount_paid,
        payment_status=sale.payment_status,
    )

    new_values = sale.snapshot()
    # Applied stock deltas depend on stock at approval time
    new_values.pop("stock_box_delta", None)
    new_values.pop("stock_kg_delta", None)
    new_values.update({
        "boxes_sold": new_boxes,
        "kg_sold": str(new_kg),
        "total_amount": str(total),
        "amount_paid": str(paid),
        "remaining_amount": str(remaining),
    })
    return new_values, new_boxes - sale.boxes_sold, new_kg - Decimal(sale.kg_sold)


def _payment_proposal(sale, changes: dict) -> dict:
    merged = {
        "amount_paid": sale.amount_paid,
        "payment_status": sale.payment_status,
        "payment_method": sale.payment_method,
        "client_name": sale.client_name,
        "client_email": sale.client_email,
        "client_phone": sale.client_phone,
    }
    merged.update(changes)

    amount_paid = parse_decimal(merged["amount_paid"], "amount_paid", minimum=Decimal("0"), default=Decimal("0"))
    client_name = optional_text(merged["client_name"], "client_name", max_length=200)
    client_email = optional_text(merged["client_email"], "client_email", max_length=150)
    client_phone = optional_text(merged["client_phone"], "client_phone", max_length=20)
    validate_payment(
        payment_status=merged["payment_status"],
        payment_method=merged["payment_method"],
        client_name=client_name,
    )
    total, paid, remaining = compute_amounts(
        boxes_sold=sale.boxes_sold,
        kg_sold=sale.kg_sold,
        box_unit_price=sale.box_unit_price,
        kg_unit_price=sale.kg_unit_price,
        amount_paid=amount_paid,
        payment_status=merged["payment_status"],
    )

    new_values = sale.snapshot()
    new_values.update({
        "amount_paid": str(paid),
        "remaining_amount": str(remaining),
        "total_amount": str(total),
        "payment_status": merged["payment_status"],
        "payment_method": merged["payment_method"],
        "client_name": client_name,
        "client_email": client_email,
        "client_phone": client_phone,
    })
    old_values = sale.snapshot()
    if all(new_values[k] == old_values[k] for k in PAYMENT_FIELDS) and as_money(sale.amount_paid) == paid:
        raise ValidationError("Proposed payment details are unchanged")
    return new_values


def _refuse_if_deletion_pending(sale_id: int) -> None:
    pending = (
        db.session.query(SaleAudit.id)
        .filter_by(sale_id=sale_id, change_type="deletion", approval_status="pending")
        .first()
    )
    if pending is not None:
        raise ConflictError(
            f"Sale {sale_id} has a pending deletion",
            {"sale_id": sale_id, "audit_id": pending.id},
        )


def propose_change(*, sale_id: int, changes: dict, reason: str, requested_by: str) -> SaleAudit:
    """
    Record a pending change to a historical sale.

    boxes_sold / kg_sold make it a quantity change; payment and client fields
    make it a payment update. The sale itself is not modified.

    Raises:
        NotFoundError: sale does not exist
        ValidationError: empty, mixed or invalid changes; missing reason
        ConflictError: a deletion of the sale is pending
        InsufficientStockError: new quantities cannot be covered by current stock
    """
    reason = require_text(reason, "reason")
    change_type = _classify(changes)

    def _op():
        sale = get_sale(sale_id)
        _refuse_if_deletion_pending(sale.id)
        if change_type == "quantity_change":
            new_values, boxes_delta, kg_delta = _quantity_proposal(sale, changes)
        else:
            new_values, boxes_delta, kg_delta = _payment_proposal(sale, changes), 0, Decimal("0")

        audit = SaleAudit(
            sale_id=sale.id,
            change_type=change_type,
            boxes_delta=boxes_delta,
            kg_delta=kg_delta,
            reason=reason,
            requested_by=requested_by,
            old_values=sale.snapshot(),
            new_values=new_values,
            approval_status="pending",
        )
        db.session.add(audit)
        db.session.commit()
        current_app.logger.info(
            "Audit proposed: id=%s sale=%s type=%s by=%s", audit.id, sale_id, change_type, requested_by
        )
        return audit

    return run_with_retry(_op)


def propose_deletion(*, sale_id: int, reason: str, requested_by: str) -> SaleAudit:
    reason = require_text(reason, "reason")

    def _op():
        sale = get_sale(sale_id)
        _refuse_if_deletion_pending(sale.id)
        audit = SaleAudit(
            sale_id=sale.id,
            change_type="deletion",
            boxes_delta=sale.boxes_sold,
            kg_delta=sale.kg_sold,
            reason=reason,
            requested_by=requested_by,
            old_values=sale.snapshot(),
            new_values=None,
            approval_status="pending",
        )
        db.session.add(audit)
        db.session.commit()
        current_app.logger.info(
            "Audit proposed: id=%s sale=%s type=deletion by=%s", audit.id, sale_id, requested_by
        )
        return audit

    return run_with_retry(_op)


def decide(*, audit_id: int, decision: str, decided_by: str, approval_reason: str) -> SaleAudit:
    """
    Approve or reject a pending audit record.

    Approval runs the executor first and then flips the status with a
    conditional UPDATE; both commit together. A record that is no longer
    pending, or that another decision flips first, raises
    AlreadyProcessedError and nothing is committed.
    """
    if decision not in DECISIONS:
        raise ValidationError("decision must be one of: approve, reject", {"field": "decision"})
    approval_reason = require_text(approval_reason, "approval_reason")
    new_status = DECISIONS[decision]

    def _op():
        audit = (
            lock_for_update(db.session.query(SaleAudit).filter_by(id=audit_id))
            .populate_existing()
            .first()
        )
        if audit is None:
            raise NotFoundError("Audit record", audit_id)
        if not audit.is_pending:
            raise AlreadyProcessedError(
                f"Audit record {audit_id} has already been {audit.approval_status}",
                {"audit_id": audit_id, "approval_status": audit.approval_status},
            )

        if decision == "approve":
            execute(audit, performed_by=decided_by)

        now = utcnow()
        result = db.session.execute(
            update(SaleAudit)
            .where(SaleAudit.id == audit_id, SaleAudit.approval_status == "pending")
            .values(
                approval_status=new_status,
                approved_by=decided_by,
                approval_timestamp=now,
                approval_reason=approval_reason,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyProcessedError(
                f"Audit record {audit_id} was decided concurrently",
                {"audit_id": audit_id},
            )

        closed = 0
        if decision == "approve" and audit.change_type == "deletion":
            closed = db.session.execute(
                update(SaleAudit)
                .where(
                    SaleAudit.sale_id == audit.sale_id,
                    SaleAudit.id != audit_id,
                    SaleAudit.approval_status == "pending",
                )
                .values(
                    approval_status="rejected",
                    approved_by=decided_by,
                    approval_timestamp=now,
                    approval_reason=f"Sale deleted by audit {audit_id}",
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            ).rowcount

        db.session.commit()
        if closed:
            current_app.logger.info("Closed %s pending audit(s) on deleted sale %s", closed, audit.sale_id)
        current_app.logger.info(
            "Audit %s: id=%s sale=%s type=%s by=%s",
            new_status, audit_id, audit.sale_id, audit.change_type, decided_by,
        )
        return audit

    return run_with_retry(_op)


def approve(*, audit_id: int, approved_by: str, approval_reason: str) -> SaleAudit:
    return decide(audit_id=audit_id, decision="approve", decided_by=approved_by, approval_reason=approval_reason)


def reject(*, audit_id: int, rejected_by: str, approval_reason: str) -> SaleAudit:
    return decide(audit_id=audit_id, decision="reject", decided_by=rejected_by, approval_reason=approval_reason)


def get_audit(audit_id: int) -> SaleAudit:
    audit = db.session.get(SaleAudit, audit_id)
    if audit is None:
        raise NotFoundError("Audit record", audit_id)
    return audit


def list_audits(
    *,
    sale_id: int | None = None,
    change_type: str | None = None,
    approval_status: str | None = None,
    limit: int = 200,
) -> list[SaleAudit]:
    q = db.session.query(SaleAudit)
    if sale_id is not None:
        q = q.filter(SaleAudit.sale_id == sale_id)
    if change_type is not None:
        if change_type not in CHANGE_TYPES:
            raise ValidationError(f"change_type must be one of: {', '.join(CHANGE_TYPES)}")
        q = q.filter(SaleAudit.change_type == change_type)
    if approval_status is not None:
        if approval_status not in APPROVAL_STATUSES:
            raise ValidationError(f"approval_status must be one of: {', '.join(APPROVAL_STATUSES)}")
        q = q.filter(SaleAudit.approval_status == approval_status)

    return q.order_by(SaleAudit.created_at.desc(), SaleAudit.id.desc()).limit(limit).all()
