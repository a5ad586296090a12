# Overview: Flask API routes for the ledger and payment audit trail; read-only reporting.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission
from ..extensions import db
from ..models import Order
from ..services import audit_service, ledger_service
from ..validation import ValidationError, coerce_date


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _optional_date(name: str):
    value = request.args.get(name)
    return coerce_date(value, name) if value else None


@ledger_bp.get("/transactions")
@require_actor
@require_permission("VIEW_REPORTS")
def list_transactions_route():
    """Ledger entries, newest first. Filters: ?start=&end=&type=&limit="""
    try:
        transaction_type = request.args.get("type")
        if transaction_type and transaction_type not in ledger_service.VALID_TRANSACTION_TYPES:
            return jsonify({"error": f"Invalid type: {transaction_type}"}), 400
        limit = min(request.args.get("limit", 500, type=int), 1000)
        entries = ledger_service.list_transactions(
            g.branch_scope,
            start=_optional_date("start"),
            end=_optional_date("end"),
            transaction_type=transaction_type,
            limit=limit,
        )
        return jsonify({"transactions": [t.to_dict() for t in entries]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/daily-summary/<day>")
@require_actor
@require_permission("VIEW_REPORTS")
def daily_income_route(day: str):
    try:
        summary = ledger_service.daily_income_summary(g.branch_scope, coerce_date(day, "date"))
        return jsonify({"summary": summary}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute daily income summary")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/audit-log")
@require_actor
@require_permission("VIEW_REPORTS")
def audit_log_route():
    """Recent payment audit entries. Filter: ?action="""
    try:
        action = request.args.get("action")
        if action and action not in audit_service.VALID_ACTIONS:
            return jsonify({"error": f"Invalid action: {action}"}), 400
        entries = audit_service.list_audit_entries(g.branch_scope, action=action)
        return jsonify({"audit_log": [e.to_dict() for e in entries]}), 200
    except Exception:
        current_app.logger.exception("Failed to list audit log")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/orders/<int:order_id>/history")
@require_actor
@require_permission("VIEW_REPORTS")
def order_history_route(order_id: int):
    """Audit trail and ledger entries of one order."""
    try:
        order = g.branch_scope.apply(db.session.query(Order).filter(Order.id == order_id), Order.branch_id).first()
        if order is None:
            return jsonify({"error": "Order not found"}), 404
        return jsonify({
            "order_id": order_id,
            "audit_log": [e.to_dict() for e in audit_service.get_order_history(order_id)],
            "transactions": [t.to_dict() for t in ledger_service.get_order_transactions(order_id)],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to get payment history")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/validate")
@require_actor
@require_permission("VIEW_REPORTS")
def validate_orders_route():
    """Integrity audit: receipts whose paid total disagrees with the ledger. Filter: ?date="""
    try:
        report = ledger_service.audit_ledger_integrity(g.branch_scope, day=_optional_date("date"))
        return jsonify({
            "receipts_checked": report["receipts_checked"],
            "orders_checked": report["orders_checked"],
            "inconsistent_receipts": len(report["warnings"]),
            "warnings": [w.to_dict() for w in report["warnings"]],
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to validate orders")
        return jsonify({"error": "Internal server error"}), 500
