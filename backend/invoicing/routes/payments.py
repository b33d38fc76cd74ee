# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

"""
Payment API Routes

WHY: Record client payments against sales and invoices over REST.
Supports cash, check, bank transfer and credit card.

DESIGN:
- A payment on an invoiced sale is attached to that sale's invoice
- Every write re-runs the paid-status reconciliation of the affected invoice
- Delete is soft; restore is refused while the payment's sale is deleted
"""

from flask import Blueprint, request, jsonify, current_app

from ..services.concurrency import StorageError
from ..services.ledger_service import get_ledger_service
from ..validation import ValidationError, ConflictError, NotFoundError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
def create_payment_route():
    """
    Record a payment.

    Request body:
    {
        "client_id": 1,
        "sale_id": 12,               (optional if invoice_id given)
        "invoice_id": 4,             (optional if sale_id given)
        "amount_cents": 50000,
        "date": "2024-06-15",
        "method": "check",
        "check_number": "0012345",   (required for checks only)
        "notes": "..."               (optional)
    }

    METHODS: cash, check, bank_transfer, credit_card

    Returns:
        201: Payment created, with the invoice summary when attached
        400: Invalid input
        404: Unknown or deleted sale/invoice/client
    """
    try:
        service = get_ledger_service()
        payment = service.create_payment(request.get_json(silent=True) or {})

        summary = None
        if payment.invoice_id is not None:
            summary = service.get_invoice_payment_summary(payment.invoice_id)

        return jsonify({"payment": payment.to_dict(), "summary": summary}), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StorageError:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("")
def list_payments_route():
    try:
        include_deleted = request.args.get("include_deleted", "false").lower() == "true"
        client_id = request.args.get("client_id", type=int)
        payments = get_ledger_service().list_payments(include_deleted=include_deleted, client_id=client_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:payment_id>")
def get_payment_route(payment_id: int):
    try:
        include_deleted = request.args.get("include_deleted", "false").lower() == "true"
        payment = get_ledger_service().get_payment(payment_id, include_deleted=include_deleted)
        return jsonify({"payment": payment.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT CHANGES
# =============================================================================

@payments_bp.patch("/<int:payment_id>")
def update_payment_route(payment_id: int):
    """Edit amount, date, method, check number or notes of a live payment."""
    try:
        payment = get_ledger_service().update_payment(payment_id, request.get_json(silent=True) or {})
        return jsonify({"payment": payment.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StorageError:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/<int:payment_id>")
def delete_payment_route(payment_id: int):
    try:
        payment = get_ledger_service().delete_payment(payment_id)
        return jsonify({"deleted": True, "payment": payment.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StorageError:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/restore")
def restore_payment_route(payment_id: int):
    """
    Restore a soft-deleted payment.

    Returns:
        200: Restored payment
        404: Unknown payment
        409: Payment is live, or its sale is still deleted
    """
    try:
        payment = get_ledger_service().restore_payment(payment_id)
        return jsonify({"restored": True, "payment": payment.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError:
        current_app.logger.exception("Failed to restore payment")
        return jsonify({"error": "Storage error"}), 500
    except Exception:
        current_app.logger.exception("Failed to restore payment")
        return jsonify({"error": "Internal server error"}), 500
