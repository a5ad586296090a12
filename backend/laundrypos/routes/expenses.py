# Overview: Flask API routes for expenses and bank deposits; parses input and returns JSON responses.

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission
from ..services import expense_service
from ..services.branch_scope_service import BranchScopeError
from ..time_utils import business_today
from ..validation import ValidationError, coerce_date, coerce_money


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_range():
    """?start=&end= (inclusive); defaults to the last 7 days."""
    today = business_today()
    start = request.args.get("start")
    end = request.args.get("end")
    start_day = coerce_date(start, "start") if start else today - timedelta(days=6)
    end_day = coerce_date(end, "end") if end else today
    if end_day < start_day:
        raise ValidationError("end date must not be before start date")
    return start_day, end_day


@expenses_bp.post("")
@require_actor
@require_permission("MANAGE_EXPENSES")
def create_expense_route():
    """
    Record an expense for the caller's branch.

    Request body:
    {
        "amount": 1500,
        "category": "detergent",
        "description": "...",        (optional)
        "payment_source": "cash"     (cash, bank, mpesa; default cash)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        expense = expense_service.record_expense(
            g.branch_scope,
            g.actor,
            amount=coerce_money(data.get("amount"), "amount", allow_zero=False),
            category=data.get("category"),
            description=data.get("description"),
            payment_source=data.get("payment_source") or expense_service.SOURCE_CASH,
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("")
@require_actor
@require_permission("MANAGE_EXPENSES")
def list_expenses_route():
    try:
        start, end = _date_range()
        expenses = expense_service.list_expenses(g.branch_scope, start, end)
        return jsonify({"expenses": [e.to_dict() for e in expenses]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("/bank-deposits")
@require_actor
@require_permission("MANAGE_EXPENSES")
def create_bank_deposit_route():
    """
    Record cash banked from the drawer.

    Request body:
    {
        "amount": 3000,
        "reference": "DEP-001",   (optional)
        "bank_name": "CRDB"       (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        deposit = expense_service.record_bank_deposit(
            g.branch_scope,
            g.actor,
            amount=coerce_money(data.get("amount"), "amount", allow_zero=False),
            reference=data.get("reference"),
            bank_name=data.get("bank_name"),
        )
        return jsonify({"bank_deposit": deposit.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to record bank deposit")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/bank-deposits")
@require_actor
@require_permission("MANAGE_EXPENSES")
def list_bank_deposits_route():
    try:
        start, end = _date_range()
        deposits = expense_service.list_bank_deposits(g.branch_scope, start, end)
        return jsonify({"bank_deposits": [d.to_dict() for d in deposits]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list bank deposits")
        return jsonify({"error": "Internal server error"}), 500
