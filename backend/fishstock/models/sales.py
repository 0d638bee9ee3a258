from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from fishstock.time_utils import to_utc_z


PAYMENT_STATUSES = ("paid", "pending", "partial")
PAYMENT_METHODS = ("momo_pay", "cash", "bank_transfer")


class Sale(db.Model):
    """
    A single-product sale.

    boxes_sold / kg_sold are what the customer bought and what the sale is
    priced on. stock_box_delta / stock_kg_delta are the signed changes the
    sale applied to the product's box and loose-kg columns; they differ from
    the sold quantities when boxes were opened to cover a kilogram demand,
    and they are what a deletion reverses.

    Unit prices are snapshots taken at sale time. Later catalog price changes
    never touch existing sales.

    Sales are created directly but only ever changed or deleted through an
    approved SaleAudit.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("boxes_sold >= 0", name="ck_sales_boxes_non_negative"),
        db.CheckConstraint("kg_sold >= 0", name="ck_sales_kg_non_negative"),
        db.CheckConstraint("boxes_sold > 0 OR kg_sold > 0", name="ck_sales_quantity_present"),
        db.CheckConstraint("payment_status IN ('paid', 'pending', 'partial')", name="ck_sales_payment_status"),
        db.Index("ix_sales_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    boxes_sold = db.Column(db.Integer, nullable=False, default=0)
    kg_sold = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    stock_box_delta = db.Column(db.Integer, nullable=False, default=0)
    stock_kg_delta = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    box_unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    kg_unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    remaining_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))

    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(32), nullable=False)

    client_name = db.Column(db.String(200), nullable=True, index=True)
    client_email = db.Column(db.String(150), nullable=True)
    client_phone = db.Column(db.String(20), nullable=True)

    performed_by = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def snapshot(self) -> dict:
        """JSON-safe image of the sale, used for audit old_values/new_values."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "boxes_sold": self.boxes_sold,
            "kg_sold": str(self.kg_sold),
            "stock_box_delta": self.stock_box_delta,
            "stock_kg_delta": str(self.stock_kg_delta),
            "box_unit_price": str(self.box_unit_price),
            "kg_unit_price": str(self.kg_unit_price),
            "total_amount": str(self.total_amount),
            "amount_paid": str(self.amount_paid),
            "remaining_amount": str(self.remaining_amount),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "performed_by": self.performed_by,
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data.update({
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        })
        return data
