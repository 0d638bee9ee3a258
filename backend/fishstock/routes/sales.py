# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/fishstock/routes/sales.py
"""
Sales API Routes

DESIGN:
- POST creates a sale and deducts stock immediately.
- Existing sales are never edited in place: PATCH and DELETE file a pending
  audit record (202 Accepted) that a reviewer approves or rejects through
  /api/audits.
"""

from decimal import Decimal

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_principal
from ..errors import StockError, ValidationError
from ..models import PAYMENT_METHODS, PAYMENT_STATUSES
from ..services import audit_service, sales_service
from ..time_utils import parse_iso_datetime
from ..validation import optional_text, parse_choice, parse_decimal, parse_int, parse_limit


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _optional_decimal(data: dict, field: str) -> Decimal | None:
    value = data.get(field)
    if value is None:
        return None
    return parse_decimal(value, field, minimum=Decimal("0"))


def _parse_datetime_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", {"field": name})


@sales_bp.post("/")
@require_principal
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "product_id": 1,
        "boxes": 1,                   (optional, default 0)
        "kg": "18",                   (optional, default 0)
        "box_price": "120.00",        (optional, defaults to catalog price)
        "kg_price": "13.00",          (optional, defaults to catalog price)
        "payment_status": "pending",  (paid | pending | partial)
        "payment_method": "cash",     (momo_pay | cash | bank_transfer)
        "amount_paid": "0",           (optional)
        "client_name": "Ama",         (required unless paid)
        "client_email": null,
        "client_phone": null
    }

    Returns:
        201: sale plus stock_info describing how stock was taken
        400: invalid input
        404: product not found
        409: insufficient stock
    """
    try:
        data = _json_body()
        sale, plan = sales_service.create_sale(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            boxes=parse_int(data.get("boxes"), "boxes", minimum=0, default=0),
            kg=parse_decimal(data.get("kg"), "kg", minimum=Decimal("0"), default=Decimal("0")),
            box_price=_optional_decimal(data, "box_price"),
            kg_price=_optional_decimal(data, "kg_price"),
            payment_status=parse_choice(data.get("payment_status"), "payment_status", PAYMENT_STATUSES, default="pending"),
            payment_method=parse_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS),
            amount_paid=parse_decimal(data.get("amount_paid"), "amount_paid", minimum=Decimal("0"), default=Decimal("0")),
            client_name=optional_text(data.get("client_name"), "client_name", max_length=200),
            client_email=optional_text(data.get("client_email"), "client_email", max_length=150),
            client_phone=optional_text(data.get("client_phone"), "client_phone", max_length=20),
            performed_by=g.principal_id,
        )
        return jsonify({"sale": sale.to_dict(), "stock_info": plan.to_dict()}), 201
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_principal
def list_sales_route():
    """
    List sales, newest first.

    Query params: product_id, payment_status, client_name, start, end, limit
    """
    try:
        args = request.args
        product_id = args.get("product_id")
        sales = sales_service.list_sales(
            product_id=parse_int(product_id, "product_id") if product_id else None,
            payment_status=args.get("payment_status") or None,
            client_name=args.get("client_name") or None,
            start=_parse_datetime_arg("start"),
            end=_parse_datetime_arg("end"),
            limit=parse_limit(
                args.get("limit"),
                default=current_app.config["LIST_LIMIT_DEFAULT"],
                maximum=current_app.config["LIST_LIMIT_MAX"],
            ),
        )
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_principal
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
@require_principal
def propose_sale_change_route(sale_id: int):
    """
    Propose a change to an existing sale. The sale is not modified.

    Request body:
    {
        "reason": "Customer returned 2kg",
        "kg_sold": "16"
    }
    or payment fields (amount_paid, payment_status, payment_method,
    client_name, client_email, client_phone).

    Returns:
        202: pending audit record
    """
    try:
        data = dict(_json_body())
        reason = data.pop("reason", None)
        audit = audit_service.propose_change(
            sale_id=sale_id,
            changes=data,
            reason=reason,
            requested_by=g.principal_id,
        )
        return jsonify({"audit": audit.to_dict(), "message": "Change submitted for approval"}), 202
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to propose sale change")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_principal
def propose_sale_deletion_route(sale_id: int):
    """
    Propose deleting a sale. The reason comes from the JSON body or ?reason=.

    Returns:
        202: pending audit record
    """
    try:
        data = request.get_json(silent=True) or {}
        reason = data.get("reason") if isinstance(data, dict) else None
        if not reason:
            reason = request.args.get("reason")
        audit = audit_service.propose_deletion(
            sale_id=sale_id,
            reason=reason,
            requested_by=g.principal_id,
        )
        return jsonify({"audit": audit.to_dict(), "message": "Deletion submitted for approval"}), 202
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to propose sale deletion")
        return jsonify({"error": "Internal server error"}), 500
