# Overview: Flask API routes for sale audit records; review queue and decisions.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_principal
from ..errors import StockError
from ..services import audit_service
from ..validation import parse_int, parse_limit


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.get("/")
@require_principal
def list_audits_route():
    """
    List audit records, newest first.

    Query params: sale_id, change_type, approval_status, limit
    """
    try:
        args = request.args
        sale_id = args.get("sale_id")
        audits = audit_service.list_audits(
            sale_id=parse_int(sale_id, "sale_id") if sale_id else None,
            change_type=args.get("change_type") or None,
            approval_status=args.get("approval_status") or None,
            limit=parse_limit(
                args.get("limit"),
                default=current_app.config["LIST_LIMIT_DEFAULT"],
                maximum=current_app.config["LIST_LIMIT_MAX"],
            ),
        )
        return jsonify({"items": [a.to_dict() for a in audits], "count": len(audits)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audit records")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/<int:audit_id>")
@require_principal
def get_audit_route(audit_id: int):
    try:
        audit = audit_service.get_audit(audit_id)
        return jsonify({"audit": audit.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get audit record")
        return jsonify({"error": "Internal server error"}), 500


def _decide(audit_id: int, decision: str):
    data = request.get_json(silent=True) or {}
    reason = (data.get("approval_reason") or data.get("reason")) if isinstance(data, dict) else None
    audit = audit_service.decide(
        audit_id=audit_id,
        decision=decision,
        decided_by=g.principal_id,
        approval_reason=reason,
    )
    return jsonify({"audit": audit.to_dict()}), 200


@audits_bp.post("/<int:audit_id>/approve")
@require_principal
def approve_audit_route(audit_id: int):
    """
    Approve a pending record and apply its change.

    Request body:
    {
        "approval_reason": "Checked against delivery note"
    }

    Returns:
        200: approved record
        404: record, sale or product not found
        409: already decided, stale proposal or insufficient stock
    """
    try:
        return _decide(audit_id, "approve")
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve audit record")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/<int:audit_id>/reject")
@require_principal
def reject_audit_route(audit_id: int):
    """Reject a pending record. No data changes."""
    try:
        return _decide(audit_id, "reject")
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject audit record")
        return jsonify({"error": "Internal server error"}), 500
