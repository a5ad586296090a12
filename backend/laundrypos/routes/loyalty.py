# Overview: Flask API routes for loyalty points; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission
from ..services import loyalty_service
from ..validation import ValidationError, ConflictError, NotFoundError, coerce_int


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("/tiers")
def tiers_route():
    return jsonify({"tiers": loyalty_service.list_tiers()}), 200


@loyalty_bp.get("/customers/<int:customer_id>")
@require_actor
def summary_route(customer_id: int):
    try:
        return jsonify(loyalty_service.get_loyalty_summary(customer_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get loyalty summary")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/customers/<int:customer_id>/redeem")
@require_actor
@require_permission("CREATE_ORDERS")
def redeem_route(customer_id: int):
    """
    Redeem points for a discount (100 points = 10000).

    Request body:
    {
        "points": 100,
        "order_id": 55   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order_id = data.get("order_id")
        result = loyalty_service.redeem_points(
            customer_id,
            coerce_int(data.get("points"), "points"),
            order_id=coerce_int(order_id, "order_id") if order_id is not None else None,
            created_by=g.actor.label,
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return jsonify({"error": "Internal server error"}), 500
