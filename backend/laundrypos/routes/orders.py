# Overview: Flask API routes for receipts and orders; parses input and returns JSON responses.

"""
Receipt & Order API Routes

DESIGN:
- Receipts are addressed by receipt number; payment and collection act
  on every line of the receipt
- Branch scope comes from the request headers (see decorators)
- Permission-based access control

ERRORS:
- 400 validation, 403 branch scope, 404 not found, 409 conflict
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission, require_branch_feature
from ..services import receipt_service
from ..services.branch_scope_service import BranchScopeError, FEATURE_COLLECTION
from ..validation import ValidationError, ConflictError, NotFoundError, coerce_money, coerce_int, coerce_date


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _optional_money(data: dict, key: str):
    value = data.get(key)
    if value is None or value == "":
        return None
    return coerce_money(value, key)


# =============================================================================
# INTAKE
# =============================================================================

@orders_bp.post("/receipts")
@require_actor
@require_permission("CREATE_ORDERS")
def create_receipt_route():
    """
    Take in a new receipt.

    Request body:
    {
        "customer_id": 12,
        "items": [
            {"item_name": "Shirt", "service_type": "wash", "quantity": 3, "unit_price": 1000},
            {"item_name": "Suit", "service_type": "dry_clean", "quantity": 1, "unit_price": 2000}
        ],
        "payment_method": "cash",       (optional, default cash)
        "paid_amount": 1000,            (optional)
        "payment_status": "advance",    (optional, derived when omitted)
        "due_date": "2026-10-20",       (optional)
        "notes": "..."                  (optional)
    }

    Returns:
        201: Receipt with lines
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("customer_id") is None:
            return jsonify({"error": "customer_id is required"}), 400

        due_date = data.get("due_date")
        receipt = receipt_service.create_receipt(
            g.branch_scope,
            g.actor,
            customer_id=coerce_int(data.get("customer_id"), "customer_id"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            paid_amount=_optional_money(data, "paid_amount"),
            payment_status=data.get("payment_status"),
            due_date=coerce_date(due_date, "due_date") if due_date else None,
            notes=data.get("notes"),
        )
        return jsonify({"receipt": receipt.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create receipt")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("/receipts/<receipt_number>")
@require_actor
def get_receipt_route(receipt_number: str):
    """Receipt totals and lines. Receipt numbers are matched case-insensitively."""
    try:
        receipt = receipt_service.get_receipt(g.branch_scope, receipt_number)
        return jsonify({"receipt": receipt.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get receipt")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/receipt")
@require_actor
def get_order_receipt_route(order_id: int):
    try:
        receipt = receipt_service.get_receipt_for_order(g.branch_scope, order_id)
        return jsonify({"receipt": receipt.to_dict()}), 200
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get receipt for order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STATUS
# =============================================================================

@orders_bp.patch("/<int:order_id>/status")
@require_actor
@require_permission("MANAGE_ORDERS")
def update_status_route(order_id: int):
    """
    Move an order line to pending, processing or ready.

    Request body:
    {
        "status": "ready"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status is required"}), 400

        order = receipt_service.update_order_status(g.branch_scope, g.actor, order_id, status)
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COLLECTION & PAYMENT
# =============================================================================

@orders_bp.post("/receipts/<receipt_number>/collect")
@require_actor
@require_permission("MANAGE_ORDERS")
@require_branch_feature(FEATURE_COLLECTION)
def collect_receipt_route(receipt_number: str):
    """
    Collect every item on a receipt.

    Request body (all optional):
    {
        "payment_amount": 2000,
        "payment_method": "cash",
        "notes": "..."
    }

    Returns:
        200: Collected receipt, payment taken, loyalty result
        409: Already collected, balance outstanding, overpayment, duplicate
    """
    try:
        data = request.get_json(silent=True) or {}
        result = receipt_service.collect_receipt(
            g.branch_scope,
            g.actor,
            receipt_number,
            payment_amount=_optional_money(data, "payment_amount"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to collect receipt")
        return jsonify({"error": "Internal server error"}), 500


def _payment_fields() -> dict:
    data = request.get_json(silent=True) or {}
    payment_amount = _optional_money(data, "payment_amount")
    if payment_amount is None:
        raise ValidationError("payment_amount is required")
    return {
        "payment_amount": payment_amount,
        "payment_method": data.get("payment_method"),
        "notes": data.get("notes"),
    }


@orders_bp.post("/receipts/<receipt_number>/receive-payment")
@require_actor
@require_permission("MANAGE_CASH")
def receive_payment_route(receipt_number: str):
    """
    Settle a receipt's full balance without collecting it.

    Request body:
    {
        "payment_amount": 3000,
        "payment_method": "mobile_money",
        "notes": "..."  (optional)
    }
    """
    try:
        result = receipt_service.receive_receipt_payment(g.branch_scope, g.actor, receipt_number, **_payment_fields())
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to receive payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/receive-payment")
@require_actor
@require_permission("MANAGE_CASH")
def receive_order_payment_route(order_id: int):
    """Same as receive-payment on the receipt the order line belongs to."""
    try:
        result = receipt_service.receive_order_payment(g.branch_scope, g.actor, order_id, **_payment_fields())
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchScopeError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to receive payment")
        return jsonify({"error": "Internal server error"}), 500
