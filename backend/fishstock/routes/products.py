# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_principal
from ..errors import StockError
from ..services import ledger_service, products_service, stock_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@require_principal
def list_products_route():
    """
    List products.

    Query params:
    - active_only: "1"/"true" to hide inactive products
    - search: substring match on name or SKU
    """
    try:
        active_only = (request.args.get("active_only") or "").lower() in ("1", "true", "yes")
        search = request.args.get("search") or None
        products = products_service.list_products(active_only=active_only, search=search)
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/")
@require_principal
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "sku": "TIL-10",
        "name": "Tilapia",
        "box_to_kg_ratio": "10",
        "unit_price_per_box": "120.00",   (optional)
        "unit_price_per_kg": "13.00",     (optional)
        "boxes": 5,                       (optional opening stock)
        "loose_kg": "2.5"                 (optional opening stock)
    }
    """
    try:
        payload = request.get_json(silent=True)
        product = products_service.create_product(payload=payload, performed_by=g.principal_id)
        return jsonify({"product": product.to_dict()}), 201
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_principal
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_principal
def update_product_route(product_id: int):
    """Update catalog fields. Stock quantities are not editable here."""
    try:
        payload = request.get_json(silent=True)
        product = products_service.update_product(
            product_id=product_id,
            payload=payload,
            performed_by=g.principal_id,
        )
        return jsonify({"product": product.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/stock")
@require_principal
def product_stock_route(product_id: int):
    try:
        return jsonify({"stock": stock_service.get_stock_summary(product_id)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock summary")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/reconcile")
@require_principal
def reconcile_product_route(product_id: int):
    """Compare current stock with the sum of the product's ledger entries."""
    try:
        return jsonify({"reconciliation": ledger_service.reconcile_product(product_id)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile product")
        return jsonify({"error": "Internal server error"}), 500
