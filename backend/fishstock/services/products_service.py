# backend/fishstock/services/products_service.py
"""
Product catalog service.

Catalog fields (names, prices, ratio, threshold) are edited here. Stock
quantities are only set once, at creation, where they are booked as an
opening "addition" so the ledger sums to the product's stock from day one.
Afterwards quantities move only through stock_service, sales_service and
approved audits.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import run_with_retry
from .ledger_service import append_movement
from .quantities import as_kg, as_money


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "supplier",
        "boxes",
        "loose_kg",
        "box_to_kg_ratio",
        "unit_cost_per_box",
        "unit_cost_per_kg",
        "unit_price_per_box",
        "unit_price_per_kg",
        "low_stock_threshold",
        "is_active",
    },
    required_on_create={"sku", "name", "box_to_kg_ratio"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "supplier",
        "box_to_kg_ratio",
        "unit_cost_per_box",
        "unit_cost_per_kg",
        "unit_price_per_box",
        "unit_price_per_kg",
        "low_stock_threshold",
        "is_active",
    },
)

PRODUCT_MUTABLE_FIELDS = PRODUCT_UPDATE_POLICY.writable_fields

_MONEY_FIELDS = ("unit_cost_per_box", "unit_cost_per_kg", "unit_price_per_box", "unit_price_per_kg")


def _normalize(patch: dict) -> dict:
    for field in _MONEY_FIELDS:
        if patch.get(field) is not None:
            patch[field] = as_money(patch[field])
    if patch.get("loose_kg") is not None:
        patch["loose_kg"] = as_kg(patch["loose_kg"])
    if patch.get("box_to_kg_ratio") is not None:
        patch["box_to_kg_ratio"] = as_kg(patch["box_to_kg_ratio"])
    return patch


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def list_products(*, active_only: bool = False, search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(Product.name.ilike(like), Product.sku.ilike(like)))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(*, payload: dict, performed_by: str) -> Product:
    """
    Create a product from a client payload.

    Raises:
        ValidationError: bad or missing fields
        ConflictError: SKU already exists
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    patch = _normalize(patch)
    enforce_rules_product(patch)

    opening_boxes = patch.pop("boxes", None) or 0
    opening_kg = patch.pop("loose_kg", None) or Decimal("0")

    def _op():
        existing = db.session.query(Product).filter(Product.sku == patch["sku"]).first()
        if existing:
            raise ConflictError("SKU already exists.", {"sku": patch["sku"]})

        p = Product(sku=patch["sku"], boxes=opening_boxes, loose_kg=opening_kg)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        if opening_boxes or opening_kg:
            append_movement(
                product_id=p.id,
                movement_type="addition",
                box_delta=opening_boxes,
                kg_delta=opening_kg,
                reason="Opening stock",
                performed_by=performed_by,
            )

        db.session.commit()
        current_app.logger.info("Product created: id=%s sku=%s by=%s", p.id, p.sku, performed_by)
        return p

    return run_with_retry(_op)


def update_product(*, product_id: int, payload: dict, performed_by: str) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    patch = _normalize(patch)
    enforce_rules_product(patch)

    def _op():
        p = get_product(product_id)
        apply_product_patch(p, patch)
        db.session.commit()
        current_app.logger.info(
            "Product updated: id=%s fields=%s by=%s", p.id, sorted(patch), performed_by
        )
        return p

    return run_with_retry(_op)
