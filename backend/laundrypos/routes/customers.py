# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_permission
from ..services import customer_service
from ..validation import ValidationError, ConflictError, NotFoundError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_actor
@require_permission("CREATE_ORDERS")
def create_customer_route():
    """
    Register a customer.

    Request body:
    {
        "name": "Amina",
        "phone": "+255700000001",
        "email": "amina@example.com",  (optional)
        "notes": "..."                 (optional)
    }
    """
    try:
        customer = customer_service.create_customer(g.branch_scope, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
@require_actor
def search_customers_route():
    try:
        customers = customer_service.search_customers(request.args.get("q"))
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except Exception:
        current_app.logger.exception("Failed to search customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_actor
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500
