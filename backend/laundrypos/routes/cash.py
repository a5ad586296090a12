# Overview: Flask API routes for daily cash management; parses input and returns JSON responses.

"""
Cash Management API Routes

DESIGN:
- All endpoints act on the caller's effective branch; an unpinned admin
  must pin a branch (X-Branch-Id) for single-day operations
- Reads never persist; save and reconcile are explicit
- Gated by the cash_management branch feature
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission, require_branch_feature
from ..services import cash_service
from ..services.branch_scope_service import BranchScopeError, FEATURE_CASH_MANAGEMENT
from ..time_utils import business_today
from ..validation import ValidationError, ConflictError, coerce_date, coerce_money


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.get("/today")
@require_actor
@require_permission("MANAGE_CASH")
@require_branch_feature(FEATURE_CASH_MANAGEMENT)
def today_route():
    """Live cash position for today (not persisted)."""
    try:
        return jsonify({"summary": cash_service.get_today_summary(g.branch_scope)}), 200
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to compute today's cash summary")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/daily/<day>")
@require_actor
@require_permission("MANAGE_CASH")
@require_branch_feature(FEATURE_CASH_MANAGEMENT)
def daily_route(day: str):
    """Saved summary for a date, or computed figures if the day was never saved."""
    try:
        summary = cash_service.get_daily_summary(g.branch_scope, coerce_date(day, "date"))
        return jsonify({"summary": summary}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to get daily cash summary")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/daily")
@require_actor
@require_permission("MANAGE_CASH")
@require_branch_feature(FEATURE_CASH_MANAGEMENT)
def save_daily_route():
    """
    Recompute and save a day's summary.

    Request body (all optional):
    {
        "date": "2026-10-18",     (default today)
        "bank_payments": 0,
        "mpesa_received": 0,
        "mpesa_paid": 0,
        "notes": "..."
    }

    Returns:
        200: Saved summary
        409: Day already reconciled
    """
    try:
        data = request.get_json(silent=True) or {}
        day = coerce_date(data["date"], "date") if data.get("date") else business_today()
        manual = {}
        for key in cash_service.MANUAL_FIELDS:
            if data.get(key) is not None:
                manual[key] = coerce_money(data[key], key)
        if "notes" in data:
            manual["notes"] = data.get("notes")

        row = cash_service.save_daily_summary(g.branch_scope, g.actor, day, manual)
        return jsonify({"summary": row.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to save daily cash summary")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/reconcile/<day>")
@require_actor
@require_permission("MANAGE_CASH")
@require_branch_feature(FEATURE_CASH_MANAGEMENT)
def reconcile_route(day: str):
    """
    Lock a day's summary (saving it first if needed).

    report_sent tells whether the closing report went out; a failed report
    does not fail the reconciliation.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = cash_service.reconcile_day(
            g.branch_scope, g.actor, coerce_date(day, "date"), notes=data.get("notes"),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to reconcile day")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/range")
@require_actor
@require_permission("MANAGE_CASH")
@require_branch_feature(FEATURE_CASH_MANAGEMENT)
def range_route():
    """Saved summaries between ?start= and ?end= (inclusive)."""
    try:
        start = request.args.get("start")
        end = request.args.get("end")
        if not start or not end:
            return jsonify({"error": "start and end are required"}), 400
        rows = cash_service.list_summaries(g.branch_scope, coerce_date(start, "start"), coerce_date(end, "end"))
        return jsonify({"summaries": [r.to_dict() for r in rows]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list cash summaries")
        return jsonify({"error": "Internal server error"}), 500
