# Overview: Flask API routes for invoices; creation, patching, guarded deletion and restore.

"""
Invoice API Routes

DESIGN:
- An invoice groups sales of one client
- is_paid / paid_at are derived from live payments and never writable
- DELETE picks hard (draft) or soft (paid or with payments) automatically
"""

from flask import Blueprint, request, jsonify, current_app

from ..services.concurrency import StorageError
from ..services.ledger_service import get_ledger_service
from ..validation import ValidationError, ConflictError, NotFoundError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@invoices_bp.post("")
def create_invoice_route():
    """
    Create an invoice over existing sales.

    Request body:
    {
        "invoice_number": "F-2024-001",
        "client_id": 1,
        "date": "2024-06-10",
        "due_date": "2024-07-10",           (optional)
        "total_amount_ht_cents": 100000,    (optional, sum of sales)
        "total_amount_ttc_cents": 119000,   (optional, sum of sales)
        "sale_ids": [3, 4]
    }

    Returns:
        201: Invoice created
        400: Invalid input / client mismatch
        404: Unknown client or sale
        409: Duplicate number or sale already invoiced
    """
    try:
        invoice = get_ledger_service().create_invoice(request.get_json(silent=True) or {})
        return jsonify({"invoice": invoice.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
def list_invoices_route():
    try:
        client_id = request.args.get("client_id", type=int)
        invoices = get_ledger_service().list_invoices(include_deleted=_flag("include_deleted"), client_id=client_id)
        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    """Invoice with member sale ids, live payments and payment summary."""
    try:
        detail = get_ledger_service().get_invoice_detail(invoice_id, include_deleted=_flag("include_deleted"))
        return jsonify(detail), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/payments")
def get_invoice_payments_route(invoice_id: int):
    try:
        service = get_ledger_service()
        payments = service.list_invoice_payments(invoice_id)
        summary = service.get_invoice_payment_summary(invoice_id)
        return jsonify({
            "invoice_id": invoice_id,
            "payments": [p.to_dict() for p in payments],
            "summary": summary,
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load invoice payments")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/summary")
def get_invoice_summary_route(invoice_id: int):
    """
    Payment summary for an invoice.

    Returns:
    - total_due_cents: invoice TTC total
    - total_paid_cents: sum of live payments
    - remaining_cents: amount still owed
    - payment_status: UNPAID, PARTIAL, PAID, OVERPAID
    """
    try:
        return jsonify(get_ledger_service().get_invoice_payment_summary(invoice_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load invoice summary")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>")
def update_invoice_route(invoice_id: int):
    """
    Patch invoice fields (number, dates, totals, notes).

    Sending is_paid or paid_at is rejected: both are derived.
    """
    try:
        invoice = get_ledger_service().update_invoice(invoice_id, request.get_json(silent=True) or {})
        return jsonify({"invoice": invoice.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    """
    Delete an invoice.

    Returns:
        200: {"deleted": true, "mode": "hard" | "soft"}
        404: Invoice missing or already deleted
    """
    try:
        mode = get_ledger_service().delete_invoice(invoice_id)
        return jsonify({"deleted": True, "mode": mode.value}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/restore")
def restore_invoice_route(invoice_id: int):
    try:
        result = get_ledger_service().restore_invoice(invoice_id)
        return jsonify({"restored": True, "cascade": result.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to restore invoice")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to restore invoice")
        return jsonify({"error": "Internal server error"}), 500
