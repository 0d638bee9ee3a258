from __future__ import annotations

from ..extensions import db
from fishstock.time_utils import to_utc_z


CHANGE_TYPES = ("quantity_change", "payment_update", "deletion")
APPROVAL_STATUSES = ("pending", "approved", "rejected")


class SaleAudit(db.Model):
    """
    Pending-change proposal against a historical sale.

    LIFECYCLE:
        pending --approve--> approved   (change applied in the same transaction)
        pending --reject---> rejected   (no data change)

    approved and rejected are terminal. The transition is a conditional
    UPDATE on approval_status = 'pending', so two concurrent decisions on the
    same record cannot both succeed.

    sale_id is deliberately not a foreign key: an approved deletion removes
    the sale row while its audit history stays.
    """
    __tablename__ = "sale_audits"
    __table_args__ = (
        db.CheckConstraint(
            "change_type IN ('quantity_change', 'payment_update', 'deletion')",
            name="ck_sale_audits_change_type",
        ),
        db.CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_sale_audits_approval_status",
        ),
        db.Index("ix_sale_audits_sale_status", "sale_id", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, nullable=False, index=True)

    change_type = db.Column(db.String(32), nullable=False, index=True)
    boxes_delta = db.Column(db.Integer, nullable=False, default=0)
    kg_delta = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    reason = db.Column(db.String(500), nullable=False)
    requested_by = db.Column(db.String(64), nullable=False, index=True)

    old_values = db.Column(db.JSON, nullable=False)
    new_values = db.Column(db.JSON, nullable=True)

    approval_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_by = db.Column(db.String(64), nullable=True)
    approval_timestamp = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_pending(self) -> bool:
        return self.approval_status == "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "change_type": self.change_type,
            "boxes_delta": self.boxes_delta,
            "kg_delta": str(self.kg_delta) if self.kg_delta is not None else None,
            "reason": self.reason,
            "requested_by": self.requested_by,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approval_timestamp": to_utc_z(self.approval_timestamp) if self.approval_timestamp else None,
            "approval_reason": self.approval_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
