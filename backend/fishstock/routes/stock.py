# Overview: Flask API routes for stock movements; additions, damages, corrections and the ledger.

from decimal import Decimal

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_principal
from ..errors import StockError, ValidationError
from ..services import ledger_service, stock_service
from ..validation import optional_text, parse_decimal, parse_int, parse_limit, require_text


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


@stock_bp.post("/additions")
@require_principal
def add_stock_route():
    """
    Receive stock.

    Request body:
    {
        "product_id": 1,
        "boxes": 10,              (optional, default 0)
        "kg": "4.5",              (optional, default 0)
        "total_cost": "900.00",   (optional)
        "note": "Delivery 14"     (optional)
    }
    """
    try:
        data = _json_body()
        total_cost = data.get("total_cost")
        movement = stock_service.add_stock(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            boxes=parse_int(data.get("boxes"), "boxes", minimum=0, default=0),
            kg=parse_decimal(data.get("kg"), "kg", minimum=Decimal("0"), default=Decimal("0")),
            total_cost=parse_decimal(total_cost, "total_cost", minimum=Decimal("0")) if total_cost is not None else None,
            note=optional_text(data.get("note"), "note", max_length=500),
            performed_by=g.principal_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_service.get_stock_summary(movement.product_id),
        }), 201
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/damages")
@require_principal
def record_damage_route():
    """
    Write off damaged stock.

    Request body:
    {
        "product_id": 1,
        "boxes": 1,
        "kg": "0",
        "reason": "Freezer failure"
    }
    """
    try:
        data = _json_body()
        movement = stock_service.record_damage(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            boxes=parse_int(data.get("boxes"), "boxes", minimum=0, default=0),
            kg=parse_decimal(data.get("kg"), "kg", minimum=Decimal("0"), default=Decimal("0")),
            reason=require_text(data.get("reason"), "reason"),
            performed_by=g.principal_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_service.get_stock_summary(movement.product_id),
        }), 201
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record damage")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/corrections")
@require_principal
def correct_stock_route():
    """
    Signed correction after a physical count.

    Request body:
    {
        "product_id": 1,
        "box_adjustment": -2,
        "kg_adjustment": "1.25",
        "reason": "Weekly count"
    }
    """
    try:
        data = _json_body()
        movement = stock_service.correct_stock(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            box_adjustment=parse_int(data.get("box_adjustment"), "box_adjustment", default=0),
            kg_adjustment=parse_decimal(data.get("kg_adjustment"), "kg_adjustment", default=Decimal("0")),
            reason=require_text(data.get("reason"), "reason"),
            performed_by=g.principal_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_service.get_stock_summary(movement.product_id),
        }), 201
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to correct stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
@require_principal
def list_movements_route():
    """
    List ledger entries, newest first.

    Query params: product_id, movement_type, sale_id, audit_id, limit
    """
    try:
        args = request.args
        product_id = args.get("product_id")
        sale_id = args.get("sale_id")
        audit_id = args.get("audit_id")
        movements = ledger_service.list_movements(
            product_id=parse_int(product_id, "product_id") if product_id else None,
            movement_type=args.get("movement_type") or None,
            sale_id=parse_int(sale_id, "sale_id") if sale_id else None,
            audit_id=parse_int(audit_id, "audit_id") if audit_id else None,
            limit=parse_limit(
                args.get("limit"),
                default=current_app.config["LIST_LIMIT_DEFAULT"],
                maximum=current_app.config["LIST_LIMIT_MAX"],
            ),
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
