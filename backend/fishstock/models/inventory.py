from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from fishstock.time_utils import to_utc_z


def _num(value):
    return str(value) if value is not None else None


class Product(db.Model):
    """
    Product master data plus current stock.

    STOCK MODEL:
    Stock is held in two fungible units: whole boxes and loose kilograms.
    One box represents box_to_kg_ratio kilograms. Quantities are mutated only
    by the stock, sales and audit services, never by catalog updates.

    CONCURRENCY:
    version_id is SQLAlchemy's version counter. Every UPDATE is issued as
    "... WHERE id = ? AND version_id = ?" so a write based on a stale read
    raises StaleDataError instead of silently overwriting stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("boxes >= 0", name="ck_products_boxes_non_negative"),
        db.CheckConstraint("loose_kg >= 0", name="ck_products_loose_kg_non_negative"),
        db.CheckConstraint("box_to_kg_ratio > 0", name="ck_products_ratio_positive"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    supplier = db.Column(db.String(200), nullable=True)

    boxes = db.Column(db.Integer, nullable=False, default=0)
    loose_kg = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    box_to_kg_ratio = db.Column(db.Numeric(10, 3), nullable=False)

    unit_cost_per_box = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    unit_cost_per_kg = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    unit_price_per_box = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    unit_price_per_kg = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))

    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_kg_equivalent(self) -> Decimal:
        return Decimal(self.loose_kg) + Decimal(self.boxes) * Decimal(self.box_to_kg_ratio)

    def stock_snapshot(self) -> dict:
        return {
            "boxes": self.boxes,
            "kg": Decimal(self.loose_kg),
            "box_to_kg_ratio": Decimal(self.box_to_kg_ratio),
        }

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} boxes={self.boxes} loose_kg={self.loose_kg}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "supplier": self.supplier,
            "boxes": self.boxes,
            "loose_kg": _num(self.loose_kg),
            "box_to_kg_ratio": _num(self.box_to_kg_ratio),
            "unit_cost_per_box": _num(self.unit_cost_per_box),
            "unit_cost_per_kg": _num(self.unit_cost_per_kg),
            "unit_price_per_box": _num(self.unit_price_per_box),
            "unit_price_per_kg": _num(self.unit_price_per_kg),
            "low_stock_threshold": self.low_stock_threshold,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


MOVEMENT_TYPES = ("addition", "damage", "correction", "sale", "reversal")


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    One row per quantity change of a product, with signed box and loose-kg
    deltas. sale_id and audit_id are plain columns rather than foreign keys:
    a reversal entry must outlive the sale row it reverses.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "movement_type IN ('addition', 'damage', 'correction', 'sale', 'reversal')",
            name="ck_stock_movements_type",
        ),
        db.CheckConstraint("box_delta != 0 OR kg_delta != 0", name="ck_stock_movements_nonzero"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    box_delta = db.Column(db.Integer, nullable=False, default=0)
    kg_delta = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    # Only meaningful for additions
    total_cost = db.Column(db.Numeric(12, 2), nullable=True)

    reason = db.Column(db.String(500), nullable=True)

    sale_id = db.Column(db.Integer, nullable=True, index=True)
    audit_id = db.Column(db.Integer, nullable=True, index=True)

    performed_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "box_delta": self.box_delta,
            "kg_delta": _num(self.kg_delta),
            "total_cost": _num(self.total_cost),
            "reason": self.reason,
            "sale_id": self.sale_id,
            "audit_id": self.audit_id,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }
