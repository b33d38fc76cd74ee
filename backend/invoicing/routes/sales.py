# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

DESIGN:
- Create / replace sales with their typed line items
- Soft-delete a sale (cascades to payments and possibly its invoice)
- Restore a soft-deleted sale with its payments
"""

from flask import Blueprint, request, jsonify, current_app

from ..services.concurrency import StorageError
from ..services.ledger_service import get_ledger_service
from ..validation import ValidationError, ConflictError, NotFoundError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "client_id": 1,
        "date": "2024-06-10",
        "tax_rate": "0.19",                  (optional, default 0)
        "transportation_fee_cents": 5000,    (optional)
        "total_amount_cents": 100000,        (optional, derived from items)
        "total_amount_ttc_cents": 119000,    (optional, derived)
        "items": [
            {"description": "Coil 2mm", "product_type": "coil",
             "thickness": "2", "width": "1250", "weight": "1.5",
             "price_per_ton_cents": 9000000}
        ]
    }

    Returns:
        201: Sale created
        400: Invalid input
        404: Unknown client
    """
    try:
        sale = get_ledger_service().create_sale(request.get_json(silent=True) or {})
        return jsonify({"sale": sale.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StorageError:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - include_deleted: include soft-deleted sales (default: false)
    - client_id: filter by client
    """
    try:
        client_id = request.args.get("client_id", type=int)
        sales = get_ledger_service().list_sales(include_deleted=_flag("include_deleted"), client_id=client_id)
        return jsonify({"sales": [s.to_dict(include_items=False) for s in sales]}), 200
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = get_ledger_service().get_sale(sale_id, include_deleted=_flag("include_deleted"))
        return jsonify({"sale": sale.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>")
def update_sale_route(sale_id: int):
    """
    Update a live sale.

    When "items" is sent the whole item set is replaced. Totals left out
    are re-derived from the new items.

    Returns:
        200: Updated sale
        400: Invalid input
        404: Sale missing or deleted
        409: Client change on an invoiced/paid sale
    """
    try:
        sale = get_ledger_service().update_sale(sale_id, request.get_json(silent=True) or {})
        return jsonify({"sale": sale.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """
    Soft-delete a sale.

    Its live payments are soft-deleted with it. An invoice left without live
    sales is soft-deleted too.

    Returns:
        200: Cascade summary
        404: Sale missing or already deleted
        409: A linked invoice is paid (nothing modified)
    """
    try:
        result = get_ledger_service().delete_sale(sale_id)
        return jsonify({"deleted": True, "cascade": result.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/restore")
def restore_sale_route(sale_id: int):
    """Restore a soft-deleted sale, its payments and (when complete) its invoice."""
    try:
        result = get_ledger_service().restore_sale(sale_id)
        return jsonify({"restored": True, "cascade": result.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to restore sale")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to restore sale")
        return jsonify({"error": "Internal server error"}), 500
